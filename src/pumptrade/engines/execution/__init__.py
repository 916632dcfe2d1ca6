from .provisioner import AccountProvisioner, ProvisionPlan
from .router import AggregatorRoute, NativeRoute, RoutedTrade, VenueRouter
from .solana_client import (
    EnvelopeKind,
    ExecutionPlan,
    FinalityReference,
    TransactionExecutor,
    TxFailureReason,
    TxResult,
    classify_error,
)

__all__ = [
    "AccountProvisioner",
    "ProvisionPlan",
    "AggregatorRoute",
    "NativeRoute",
    "RoutedTrade",
    "VenueRouter",
    "EnvelopeKind",
    "ExecutionPlan",
    "FinalityReference",
    "TransactionExecutor",
    "TxFailureReason",
    "TxResult",
    "classify_error",
]
