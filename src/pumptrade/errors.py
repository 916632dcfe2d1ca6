"""
errors.py - Error taxonomy for the trade engine

Every failure carries the stage it happened in so callers can tell
"we never touched the network" apart from "the tx may still land".

    InputValidationError     rejected before any network call
    PreconditionError        rejected after a cheap read, before building
    AggregatorError          quote / swap-instructions service failure
    SubmissionError          send failed (expiry retried once, then fatal)
    ConfirmationError        INDETERMINATE - tx was sent, outcome unknown
    TransactionFailedError   tx landed on-chain with an error
"""

from __future__ import annotations

from typing import List, Optional


class TradeEngineError(Exception):
    """Base class for all engine errors."""

    stage = "engine"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


# =============================================================================
# INPUT / PRECONDITION
# =============================================================================

class InputValidationError(TradeEngineError):
    """Malformed amounts, oversized strings, missing fields."""

    stage = "validate"


class KeyMaterialError(InputValidationError):
    """Private key material could not be turned into a keypair."""

    stage = "keys"


class PreconditionError(TradeEngineError):
    """On-chain state does not allow the operation."""

    stage = "precondition"


class CurveNotFoundError(PreconditionError):
    """No bonding curve account exists for the mint."""


class AddressDerivationError(PreconditionError):
    """No off-curve address exists for the seeds/program pair."""

    stage = "derive"


class InsufficientBalanceError(PreconditionError):
    """Wallet cannot cover trade + rent + top-up + fee buffer."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        self.shortfall = required - available
        super().__init__(
            f"Wallet balance too low: need {required} lamports "
            f"({required / 1e9:.6f} SOL), have {available}, "
            f"short {self.shortfall} lamports ({self.shortfall / 1e9:.6f} SOL)"
        )


class RpcError(TradeEngineError):
    """Ledger RPC call failed (network or node error)."""

    stage = "rpc"


# =============================================================================
# AGGREGATOR
# =============================================================================

class AggregatorError(TradeEngineError):
    """External quote/instruction service failure."""

    stage = "aggregator"

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        prefix = f"{status} - " if status is not None else ""
        super().__init__(f"{self.label} failed: {prefix}{message}")

    label = "Aggregator"


class QuoteError(AggregatorError):
    stage = "quote"
    label = "Jupiter quote"


class SwapInstructionsError(AggregatorError):
    stage = "swap_instructions"
    label = "Jupiter swap-instructions"


# =============================================================================
# SUBMISSION / CONFIRMATION
# =============================================================================

class SubmissionError(TradeEngineError):
    """Transaction was not accepted by the node."""

    stage = "submit"

    def __init__(self, message: str, reason=None, attempts: int = 1):
        self.reason = reason
        self.attempts = attempts
        super().__init__(message)


class SimulationError(TradeEngineError):
    """Simulation reported a program error."""

    stage = "simulate"

    def __init__(self, message: str, logs: Optional[List[str]] = None):
        self.logs = list(logs or [])
        super().__init__(message)


class ConfirmationError(TradeEngineError):
    """
    Submitted but not confirmed.

    INDETERMINATE: the transaction may still land. Do not treat as failed.
    """

    stage = "confirm"

    def __init__(self, message: str, signature: str):
        self.signature = signature
        super().__init__(message)


class ConfirmationTimeoutError(ConfirmationError):
    """Polling gave up before the cluster reported a status."""


class TransactionDroppedError(ConfirmationError):
    """Blockhash expired without the signature being seen."""


class TransactionFailedError(TradeEngineError):
    """Transaction landed and the program returned an error."""

    stage = "confirm"

    def __init__(self, message: str, signature: str):
        self.signature = signature
        super().__init__(message)
