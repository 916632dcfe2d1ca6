"""
Constant-product (k = x * y) quote math on the curve's virtual reserves.

Only the virtual-reserve quote used to bound slippage is computed here.
The program's fee is applied on-chain and is deliberately not modelled, so
amounts are an approximation of settlement, not a prediction of it.

All math is integer: Python ints are the wide intermediate for the u64*u64
products, results are range-checked before they are narrowed back to u64.
"""

from __future__ import annotations

from dataclasses import dataclass

from pumptrade.errors import InputValidationError, PreconditionError

U64_MAX = 2**64 - 1
BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class TradeQuote:
    """
    Quote for a single trade. Valid only for the tx built right after it.

    bound is max_sol_cost on buys and min_sol_out on sells.
    """
    amount_in: int
    amount_out: int
    bound: int
    new_sol_reserves: int
    new_token_reserves: int


def _check_u64(name: str, value: int) -> int:
    if not 0 <= value <= U64_MAX:
        raise InputValidationError(f"{name} out of u64 range: {value}")
    return value


def _check_bps(slippage_bps: int) -> None:
    if not 0 <= slippage_bps <= BPS_DENOMINATOR:
        raise InputValidationError(f"slippage_bps must be within [0, 10000]: {slippage_bps}")


def _check_reserves(sol_reserves: int, token_reserves: int) -> None:
    _check_u64("sol_reserves", sol_reserves)
    _check_u64("token_reserves", token_reserves)
    if sol_reserves == 0 or token_reserves == 0:
        raise PreconditionError(
            f"zero reserve: sol={sol_reserves} token={token_reserves}"
        )


def quote_buy(
    sol_reserves: int,
    token_reserves: int,
    sol_in: int,
    slippage_bps: int,
) -> TradeQuote:
    """Tokens out for sol_in lamports, and the max SOL the buy may cost."""
    _check_reserves(sol_reserves, token_reserves)
    _check_u64("sol_in", sol_in)
    _check_bps(slippage_bps)
    if sol_in <= 0:
        raise InputValidationError("sol_in must be > 0")

    new_sol = sol_reserves + sol_in
    new_token = (sol_reserves * token_reserves) // new_sol
    token_out = token_reserves - new_token
    max_sol_cost = sol_in + (sol_in * slippage_bps) // BPS_DENOMINATOR

    return TradeQuote(
        amount_in=sol_in,
        amount_out=_check_u64("token_out", token_out),
        bound=_check_u64("max_sol_cost", max_sol_cost),
        new_sol_reserves=_check_u64("new_sol_reserves", new_sol),
        new_token_reserves=new_token,
    )


def quote_sell(
    sol_reserves: int,
    token_reserves: int,
    token_in: int,
    slippage_bps: int,
) -> TradeQuote:
    """SOL out for token_in raw tokens, and the min SOL the sell must return."""
    _check_reserves(sol_reserves, token_reserves)
    _check_u64("token_in", token_in)
    _check_bps(slippage_bps)
    if token_in <= 0:
        raise InputValidationError("token_in must be > 0")

    new_token = token_reserves + token_in
    new_sol = (sol_reserves * token_reserves) // new_token
    sol_out = sol_reserves - new_sol
    min_sol_out = sol_out - (sol_out * slippage_bps) // BPS_DENOMINATOR

    return TradeQuote(
        amount_in=token_in,
        amount_out=sol_out,
        bound=min_sol_out,
        new_sol_reserves=new_sol,
        new_token_reserves=_check_u64("new_token_reserves", new_token),
    )


def price_per_token(sol_reserves: int, token_reserves: int, token_decimals: int = 6) -> float:
    """Spot price in SOL per whole token (for logging only)."""
    _check_reserves(sol_reserves, token_reserves)
    return (sol_reserves / 1e9) / (token_reserves / 10**token_decimals)
