"""
Instruction payload encoding for the pump.fun program (Anchor wire format).

Layout:
    buy / sell : disc(8) + amount(u64 LE) + bound(u64 LE)
    create     : disc(8) + name + symbol + uri + creator(32)
                 strings are u32 LE length + UTF-8 bytes, no terminator
"""

from __future__ import annotations

import hashlib
import struct
from typing import Tuple

from solders.pubkey import Pubkey

from pumptrade.errors import InputValidationError

U64_MAX = 2**64 - 1

MAX_NAME_BYTES = 32
MAX_SYMBOL_BYTES = 10

TRADE_PAYLOAD_LEN = 24


def discriminator(name: str) -> bytes:
    """First 8 bytes of sha256("global:<name>")."""
    return hashlib.sha256(f"global:{name}".encode("utf-8")).digest()[:8]


BUY_DISCRIMINATOR = discriminator("buy")
SELL_DISCRIMINATOR = discriminator("sell")
CREATE_DISCRIMINATOR = discriminator("create")


def _u64(name: str, value: int) -> bytes:
    if not isinstance(value, int) or not 0 <= value <= U64_MAX:
        raise InputValidationError(f"{name} must be a u64, got {value!r}")
    return struct.pack("<Q", value)


def _string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


def encode_buy(token_amount: int, max_sol_cost: int) -> bytes:
    return BUY_DISCRIMINATOR + _u64("token_amount", token_amount) + _u64("max_sol_cost", max_sol_cost)


def encode_sell(token_amount: int, min_sol_output: int) -> bytes:
    return SELL_DISCRIMINATOR + _u64("token_amount", token_amount) + _u64("min_sol_output", min_sol_output)


def validate_metadata(name: str, symbol: str, uri: str) -> None:
    """Reject token metadata the program would refuse. Runs before any encoding."""
    name_len = len((name or "").encode("utf-8"))
    if not 1 <= name_len <= MAX_NAME_BYTES:
        raise InputValidationError(f"Name must be 1-{MAX_NAME_BYTES} bytes (got {name_len})")
    symbol_len = len((symbol or "").encode("utf-8"))
    if not 1 <= symbol_len <= MAX_SYMBOL_BYTES:
        raise InputValidationError(f"Symbol must be 1-{MAX_SYMBOL_BYTES} bytes (got {symbol_len})")
    if not uri:
        raise InputValidationError("Metadata URI required")


def encode_create(name: str, symbol: str, uri: str, creator: Pubkey) -> bytes:
    validate_metadata(name, symbol, uri)
    return (
        CREATE_DISCRIMINATOR
        + _string(name)
        + _string(symbol)
        + _string(uri)
        + bytes(creator)
    )


def decode_trade_payload(data: bytes) -> Tuple[str, int, int]:
    """
    Decode a buy/sell payload.

    Returns:
        (kind, token_amount, bound) where kind is "buy" or "sell"
    """
    if len(data) != TRADE_PAYLOAD_LEN:
        raise InputValidationError(f"trade payload must be {TRADE_PAYLOAD_LEN} bytes, got {len(data)}")

    disc = data[:8]
    if disc == BUY_DISCRIMINATOR:
        kind = "buy"
    elif disc == SELL_DISCRIMINATOR:
        kind = "sell"
    else:
        raise InputValidationError(f"unknown discriminator: {disc.hex()}")

    token_amount, bound = struct.unpack("<QQ", data[8:])
    return kind, token_amount, bound
