from .settings import EngineContext, configure_logging, load_context_or_exit

__all__ = [
    "EngineContext",
    "configure_logging",
    "load_context_or_exit",
]
