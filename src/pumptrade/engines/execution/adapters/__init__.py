from .jupiter_adapter import ExternalQuote, JupiterAdapter, SwapInstructions, instruction_from_descriptor

__all__ = [
    "ExternalQuote",
    "JupiterAdapter",
    "SwapInstructions",
    "instruction_from_descriptor",
]
