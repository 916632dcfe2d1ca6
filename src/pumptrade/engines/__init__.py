from .trade_engine import DeployResult, PreflightReport, TokenHolding, TradeEngine, TransferResult

__all__ = [
    "DeployResult",
    "PreflightReport",
    "TokenHolding",
    "TradeEngine",
    "TransferResult",
]
