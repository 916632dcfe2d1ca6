"""
Bonding curve account reader.

Account layout (little-endian, after the 8-byte Anchor account discriminator):
    [8:16]   virtual_token_reserves  u64
    [16:24]  virtual_sol_reserves    u64
    [24:32]  real_token_reserves     u64
    [32:40]  real_sol_reserves       u64
    [40:48]  token_total_supply      u64
    [48]     complete                bool
    [49:81]  creator                 pubkey
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.pubkey import Pubkey

from pumptrade.config.programs import (
    DEFAULT_TOKEN_DECIMALS,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from pumptrade.curve import addresses
from pumptrade.errors import CurveNotFoundError, PreconditionError
from pumptrade.rpc import rpc_call

CURVE_ACCOUNT_MIN_LEN = 81


@dataclass(frozen=True)
class CurveState:
    """
    Snapshot of a mint's bonding curve. Read-only; re-read for every trade.

    Once complete is True the native path is permanently closed for the mint.
    """
    mint: Pubkey
    curve_address: Pubkey
    curve_token_account: Pubkey
    token_program: Pubkey
    virtual_token_reserves: int
    virtual_sol_reserves: int
    real_token_reserves: int
    real_sol_reserves: int
    token_total_supply: int
    complete: bool
    creator: Pubkey
    lamports: int = 0


def decode_curve_account(
    data: bytes,
    mint: Pubkey,
    curve_address: Pubkey,
    curve_token_account: Pubkey,
    token_program: Pubkey,
    lamports: int = 0,
) -> CurveState:
    """Decode raw curve account bytes. Rejects truncated data and empty reserves."""
    if len(data) < CURVE_ACCOUNT_MIN_LEN:
        raise PreconditionError(
            f"bonding curve account too short: {len(data)} bytes (need {CURVE_ACCOUNT_MIN_LEN})"
        )

    vtoken, vsol, rtoken, rsol, supply = struct.unpack_from("<5Q", data, 8)
    complete = data[48] == 1
    creator = Pubkey.from_bytes(bytes(data[49:81]))

    if not complete and (vtoken == 0 or vsol == 0):
        raise PreconditionError(
            f"bonding curve {curve_address} has zero virtual reserves "
            f"(token={vtoken}, sol={vsol}) but is not complete"
        )

    return CurveState(
        mint=mint,
        curve_address=curve_address,
        curve_token_account=curve_token_account,
        token_program=token_program,
        virtual_token_reserves=vtoken,
        virtual_sol_reserves=vsol,
        real_token_reserves=rtoken,
        real_sol_reserves=rsol,
        token_total_supply=supply,
        complete=complete,
        creator=creator,
        lamports=lamports,
    )


async def token_program_for_mint(
    client: AsyncClient,
    mint: Pubkey,
    commitment: Optional[Commitment] = None,
) -> Pubkey:
    """Token-2022 if the mint is owned by it, else the legacy token program."""
    info = await rpc_call("get_account_info(mint)", client.get_account_info(mint, commitment=commitment))
    if info is None:
        raise PreconditionError(f"Mint not found: {mint}")
    return TOKEN_2022_PROGRAM_ID if info.owner == TOKEN_2022_PROGRAM_ID else TOKEN_PROGRAM_ID


async def read_curve_state(
    client: AsyncClient,
    mint: Pubkey,
    token_program: Pubkey,
    commitment: Optional[Commitment] = None,
) -> CurveState:
    """
    Fetch and decode the curve for a mint.

    Raises CurveNotFoundError if the mint never launched on the curve.
    """
    curve_address = addresses.bonding_curve_address(mint)
    curve_token_account = addresses.associated_token_address(curve_address, mint, token_program)

    info = await rpc_call(
        "get_account_info(bonding_curve)",
        client.get_account_info(curve_address, commitment=commitment),
    )
    if info is None:
        raise CurveNotFoundError(f"Bonding curve not found for mint {mint}")

    state = decode_curve_account(
        bytes(info.data),
        mint=mint,
        curve_address=curve_address,
        curve_token_account=curve_token_account,
        token_program=token_program,
        lamports=info.lamports,
    )
    logger.debug(
        f"CURVE_STATE | mint={str(mint)[:8]}... | complete={state.complete} | "
        f"vsol={state.virtual_sol_reserves} | vtoken={state.virtual_token_reserves}"
    )
    return state


async def read_token_decimals(
    client: AsyncClient,
    token_account: Pubkey,
    default: int = DEFAULT_TOKEN_DECIMALS,
) -> int:
    """Best-effort decimals lookup; falls back to `default` if the read fails."""
    try:
        resp = await client.get_token_account_balance(token_account)
        return int(resp.value.decimals)
    except Exception as e:
        logger.warning(
            f"TOKEN_DECIMALS | fallback={default} | account={str(token_account)[:8]}... | "
            f"{type(e).__name__}: {e}"
        )
        return default
