from .addresses import DerivedAddress, derive_address
from .encoding import (
    BUY_DISCRIMINATOR,
    CREATE_DISCRIMINATOR,
    SELL_DISCRIMINATOR,
    decode_trade_payload,
    discriminator,
    encode_buy,
    encode_create,
    encode_sell,
)
from .pricing import TradeQuote, quote_buy, quote_sell
from .state import CurveState, decode_curve_account, read_curve_state

__all__ = [
    "DerivedAddress",
    "derive_address",
    "BUY_DISCRIMINATOR",
    "SELL_DISCRIMINATOR",
    "CREATE_DISCRIMINATOR",
    "discriminator",
    "encode_buy",
    "encode_sell",
    "encode_create",
    "decode_trade_payload",
    "TradeQuote",
    "quote_buy",
    "quote_sell",
    "CurveState",
    "decode_curve_account",
    "read_curve_state",
]
