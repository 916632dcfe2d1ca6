"""
provisioner.py - Auxiliary accounts + lamport budget for native curve trades

Two-step on purpose:
1. assess()            reads only (rent, ATAs, balance) -> ProvisionPlan
2. ensure_affordable() fails fast with the shortfall BEFORE anything is built
3. setup_instructions() emits create-ATA / top-up instructions

A tx that cannot pay fails atomically on-chain anyway, but failing locally
first saves the round trip and the fee.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.instructions import create_associated_token_account

from pumptrade.config.programs import TOKEN_ACCOUNT_SIZE
from pumptrade.curve import addresses
from pumptrade.curve.state import CurveState
from pumptrade.errors import InsufficientBalanceError, PreconditionError
from pumptrade.rpc import rpc_call


@dataclass(frozen=True)
class ProvisionPlan:
    """Everything the trader must fund or create before the trade instruction."""
    payer: Pubkey
    mint: Pubkey
    token_program: Pubkey
    curve_address: Pubkey
    curve_token_account: Pubkey
    user_token_account: Pubkey
    create_user_account: bool
    create_curve_account: bool
    rent_exempt_minimum: int
    top_up_lamports: int
    trade_lamports: int
    fee_buffer_lamports: int
    balance: int

    @property
    def rent_needed(self) -> int:
        missing = int(self.create_user_account) + int(self.create_curve_account)
        return missing * self.rent_exempt_minimum

    @property
    def required_lamports(self) -> int:
        return self.trade_lamports + self.rent_needed + self.top_up_lamports + self.fee_buffer_lamports

    @property
    def shortfall(self) -> int:
        return max(0, self.required_lamports - self.balance)

    def ensure_affordable(self) -> None:
        if self.balance < self.required_lamports:
            logger.warning(
                f"PROVISION | insufficient | need={self.required_lamports} | "
                f"have={self.balance} | short={self.shortfall}"
            )
            raise InsufficientBalanceError(self.required_lamports, self.balance)

    def setup_instructions(self) -> List[Instruction]:
        """Create-ATA instructions first, then the curve rent top-up."""
        ixs: List[Instruction] = []
        if self.create_user_account:
            ixs.append(create_associated_token_account(
                payer=self.payer,
                owner=self.payer,
                mint=self.mint,
                token_program_id=self.token_program,
            ))
        if self.create_curve_account:
            ixs.append(create_associated_token_account(
                payer=self.payer,
                owner=self.curve_address,
                mint=self.mint,
                token_program_id=self.token_program,
            ))
        if self.top_up_lamports > 0:
            ixs.append(transfer(TransferParams(
                from_pubkey=self.payer,
                to_pubkey=self.curve_address,
                lamports=self.top_up_lamports,
            )))
        return ixs


class AccountProvisioner:
    """Reads the accounts a native trade depends on and prices their setup."""

    def __init__(
        self,
        client: AsyncClient,
        fee_buffer_lamports: int,
        commitment: Optional[Commitment] = None,
    ):
        self.client = client
        self.fee_buffer_lamports = fee_buffer_lamports
        self.commitment = commitment

    async def _exists(self, label: str, account: Pubkey) -> bool:
        info = await rpc_call(label, self.client.get_account_info(account, commitment=self.commitment))
        return info is not None

    async def assess(
        self,
        payer: Pubkey,
        curve: CurveState,
        trade_lamports: int,
        create_user_account: bool = True,
    ) -> ProvisionPlan:
        """
        Args:
            payer: Trader wallet (fee payer and token account owner)
            curve: Freshly read curve snapshot
            trade_lamports: SOL leaving the wallet for the trade itself (0 for sells)
            create_user_account: If False the trader's ATA must already exist
        """
        user_ata = addresses.associated_token_address(payer, curve.mint, curve.token_program)

        rent_exempt = await rpc_call(
            "get_minimum_balance_for_rent_exemption",
            self.client.get_minimum_balance_for_rent_exemption(TOKEN_ACCOUNT_SIZE, commitment=self.commitment),
        )
        user_ata_exists = await self._exists("get_account_info(user_ata)", user_ata)
        curve_ata_exists = await self._exists("get_account_info(curve_ata)", curve.curve_token_account)

        if not user_ata_exists and not create_user_account:
            raise PreconditionError(f"No token account for mint {curve.mint} owned by {payer}")

        # curve lamports come from the same snapshot the quote is priced on
        top_up = max(0, rent_exempt - curve.lamports)

        balance = await rpc_call("get_balance", self.client.get_balance(payer, commitment=self.commitment))

        plan = ProvisionPlan(
            payer=payer,
            mint=curve.mint,
            token_program=curve.token_program,
            curve_address=curve.curve_address,
            curve_token_account=curve.curve_token_account,
            user_token_account=user_ata,
            create_user_account=not user_ata_exists,
            create_curve_account=not curve_ata_exists,
            rent_exempt_minimum=rent_exempt,
            top_up_lamports=top_up,
            trade_lamports=trade_lamports,
            fee_buffer_lamports=self.fee_buffer_lamports,
            balance=balance,
        )
        logger.debug(
            f"PROVISION | user_ata_missing={plan.create_user_account} | "
            f"curve_ata_missing={plan.create_curve_account} | top_up={top_up} | "
            f"required={plan.required_lamports} | balance={balance}"
        )
        return plan
