"""
Program-derived addresses for the pump.fun programs.

Each address is namespaced by a fixed seed literal plus instance key material.
Seed bytes and ordering must match what the on-chain program uses exactly,
any deviation yields a different (wrong) address.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Sequence, Tuple

from solders.pubkey import Pubkey

from pumptrade.config.programs import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    MPL_TOKEN_METADATA_PROGRAM_ID,
    PUMP_FEE_PROGRAM_ID,
    PUMP_PROGRAM_ID,
    SEED_BONDING_CURVE,
    SEED_CREATOR_VAULT,
    SEED_EVENT_AUTHORITY,
    SEED_FEE_CONFIG,
    SEED_GLOBAL,
    SEED_GLOBAL_VOLUME_ACCUMULATOR,
    SEED_METADATA,
    SEED_MINT_AUTHORITY,
    SEED_USER_VOLUME_ACCUMULATOR,
    TOKEN_PROGRAM_ID,
)
from pumptrade.errors import AddressDerivationError

MAX_SEEDS = 16
MAX_SEED_LEN = 32
PDA_MARKER = b"ProgramDerivedAddress"


@dataclass(frozen=True)
class DerivedAddress:
    """Result of a PDA search. Recomputed on demand, never stored."""
    seeds: Tuple[bytes, ...]
    program_id: Pubkey
    address: Pubkey
    bump: int


def derive_address(seeds: Sequence[bytes], program_id: Pubkey) -> DerivedAddress:
    """
    Find the canonical (highest-bump) off-curve address for seeds + program.

    Raises AddressDerivationError if the seeds are malformed or no bump in
    255..0 yields an off-curve point.
    """
    seeds = tuple(bytes(s) for s in seeds)
    if len(seeds) + 1 > MAX_SEEDS:
        raise AddressDerivationError(f"too many seeds: {len(seeds)} (max {MAX_SEEDS - 1})")
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise AddressDerivationError(f"seed longer than {MAX_SEED_LEN} bytes: {seed!r}")

    prefix = b"".join(seeds)
    suffix = bytes(program_id) + PDA_MARKER
    for bump in range(255, -1, -1):
        candidate = hashlib.sha256(prefix + bytes([bump]) + suffix).digest()
        if not _on_curve(candidate):
            return DerivedAddress(
                seeds=seeds, program_id=program_id, address=Pubkey(candidate), bump=bump
            )

    raise AddressDerivationError(f"no valid program address for seeds under {program_id}")


def _on_curve(candidate: bytes) -> bool:
    return Pubkey(candidate).is_on_curve()


def _pump(*seeds: bytes) -> Pubkey:
    return derive_address(seeds, PUMP_PROGRAM_ID).address


def global_address() -> Pubkey:
    return _pump(SEED_GLOBAL)


def bonding_curve_address(mint: Pubkey) -> Pubkey:
    return _pump(SEED_BONDING_CURVE, bytes(mint))


def mint_authority_address() -> Pubkey:
    return _pump(SEED_MINT_AUTHORITY)


def event_authority_address() -> Pubkey:
    return _pump(SEED_EVENT_AUTHORITY)


def creator_vault_address(creator: Pubkey) -> Pubkey:
    return _pump(SEED_CREATOR_VAULT, bytes(creator))


def global_volume_accumulator_address() -> Pubkey:
    return _pump(SEED_GLOBAL_VOLUME_ACCUMULATOR)


def user_volume_accumulator_address(user: Pubkey) -> Pubkey:
    return _pump(SEED_USER_VOLUME_ACCUMULATOR, bytes(user))


def metadata_address(mint: Pubkey) -> Pubkey:
    """Metaplex metadata account; owned by the metadata program, not pump."""
    seeds = (SEED_METADATA, bytes(MPL_TOKEN_METADATA_PROGRAM_ID), bytes(mint))
    return derive_address(seeds, MPL_TOKEN_METADATA_PROGRAM_ID).address


def fee_config_address() -> Pubkey:
    """Fee config lives under the fee program, keyed by the pump program id."""
    seeds = (SEED_FEE_CONFIG, bytes(PUMP_PROGRAM_ID))
    return derive_address(seeds, PUMP_FEE_PROGRAM_ID).address


def associated_token_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
) -> Pubkey:
    """ATA for owner/mint. Owner may be off-curve (e.g. the bonding curve)."""
    seeds = (bytes(owner), bytes(token_program), bytes(mint))
    return derive_address(seeds, ASSOCIATED_TOKEN_PROGRAM_ID).address
