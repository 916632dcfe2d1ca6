"""pump.fun bonding-curve and Jupiter trade execution engine."""

from .config import EngineContext, configure_logging, load_context_or_exit
from .domain.models import Side, TradeRequest, TradeResult, Venue
from .engines import TradeEngine
from .wallet import keypair_from_private_key, load_keypair_file

__version__ = "0.1.0"

__all__ = [
    "EngineContext",
    "configure_logging",
    "load_context_or_exit",
    "Side",
    "TradeRequest",
    "TradeResult",
    "Venue",
    "TradeEngine",
    "keypair_from_private_key",
    "load_keypair_file",
]
