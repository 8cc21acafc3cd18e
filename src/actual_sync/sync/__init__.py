"""Per-server sync: error classification, retries, client protocol and orchestration."""

from .client import BudgetClient, BudgetClientFactory
from .error_handling import ErrorClassifier
from .orchestrator import SyncOrchestrator
from .retry import RetryExecutor
from .types import (
    Account,
    AccountFailure,
    ClassifiedError,
    ErrorKind,
    SyncOutcome,
    SyncPhase,
    SyncStatus,
)

__all__ = [
    "Account",
    "AccountFailure",
    "BudgetClient",
    "BudgetClientFactory",
    "ClassifiedError",
    "ErrorClassifier",
    "ErrorKind",
    "RetryExecutor",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncPhase",
    "SyncStatus",
]
