from .trade import Side, TradeRequest, TradeResult, Venue

__all__ = [
    "Side",
    "TradeRequest",
    "TradeResult",
    "Venue",
]
