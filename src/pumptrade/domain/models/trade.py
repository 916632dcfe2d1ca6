"""
Trade request and result models.

A TradeRequest is validated on construction, so anything past it can trust
the mint, the amount and the slippage bound.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from solders.pubkey import Pubkey

from pumptrade.errors import InputValidationError


class Side(Enum):
    BUY = "BUY"
    SELL = "SELL"


class Venue(Enum):
    NATIVE = "native"
    AGGREGATOR = "aggregator"


@dataclass(frozen=True)
class TradeRequest:
    """
    One trade against a mint.

    amount is SOL for buys and UI token units for sells.
    """
    side: Side
    mint: str
    amount: Decimal
    slippage_bps: int = 500

    def __post_init__(self):
        if not isinstance(self.side, Side):
            raise InputValidationError(f"unknown side: {self.side!r}")
        try:
            Pubkey.from_string(self.mint)
        except (TypeError, ValueError) as e:
            raise InputValidationError(f"invalid mint address: {self.mint!r}") from e
        amount = self.amount if isinstance(self.amount, Decimal) else Decimal(str(self.amount))
        if not amount.is_finite() or amount <= 0:
            raise InputValidationError(f"amount must be positive, got {self.amount}")
        object.__setattr__(self, "amount", amount)
        if not 0 <= self.slippage_bps <= 10_000:
            raise InputValidationError(f"slippage_bps must be within [0, 10000], got {self.slippage_bps}")

    @property
    def mint_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.mint)


@dataclass(frozen=True)
class TradeResult:
    signature: str
    venue: Venue
    side: Side
    mint: str
    amount_in: int        # raw: lamports for buys, token base units for sells
    expected_out: int
    bound: int            # max_sol_cost / min_sol_out / aggregator threshold
    attempts: int
    blockhash: str
    slot: Optional[int] = None
