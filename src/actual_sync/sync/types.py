"""
Core types, enums, and data classes for the sync system.

This module contains the data structures shared by the retry executor,
the sync orchestrator and the notification subsystem.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ErrorKind(Enum):
    """Classification of errors for retry logic."""

    RATE_LIMITED = "rate_limited"  # Remote rate limit, retried with backoff
    NETWORK = "network"  # Connection reset, DNS failure, network-failure
    PERMANENT = "permanent"  # Everything else, including auth errors

    @property
    def retryable(self) -> bool:
        """Whether errors of this kind are retried."""
        return self is not ErrorKind.PERMANENT


@dataclass(frozen=True)
class ClassifiedError:
    """An error normalized into the fields retry and reporting logic inspect."""

    kind: ErrorKind
    message: str
    code: str | None = None
    category: str | None = None

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class SyncStatus(Enum):
    """Terminal status of one sync run."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class SyncPhase(Enum):
    """
    Last completed step of a sync run.

    A run finalizes from any of these into a :class:`SyncStatus`.
    """

    INIT = "init"
    CONNECTED = "connected"
    BUDGET_LOADED = "budget_loaded"
    ACCOUNTS_ENUMERATED = "accounts_enumerated"
    ACCOUNTS_SYNCED = "accounts_synced"


# Step names reported when a run fails in a terminal step
FAILED_STEP_BY_PHASE: dict[SyncPhase, str] = {
    SyncPhase.INIT: "initialization",
    SyncPhase.CONNECTED: "budget_download",
    SyncPhase.BUDGET_LOADED: "account_enumeration",
    SyncPhase.ACCOUNTS_ENUMERATED: "account_sync",
    SyncPhase.ACCOUNTS_SYNCED: "reconciliation",
}


@dataclass(frozen=True)
class Account:
    """A budget account as listed by the budgeting client."""

    id: str
    name: str


@dataclass(frozen=True)
class AccountFailure:
    """An account whose bank sync failed during a run."""

    name: str
    error: str
    account_id: str | None = None


@dataclass(frozen=True)
class SyncOutcome:
    """Result of one orchestration run for one server."""

    server_name: str
    status: SyncStatus
    correlation_id: str
    started_at: datetime
    duration_seconds: float
    accounts_processed: int = 0
    accounts_succeeded: int = 0
    accounts_failed: int = 0
    succeeded_accounts: tuple[str, ...] = ()
    failed_accounts: tuple[AccountFailure, ...] = ()
    error_message: str | None = None
    error_code: str | None = None
    failed_step: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status is SyncStatus.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.status is SyncStatus.FAILURE

    @property
    def duration_ms(self) -> int:
        return int(round(self.duration_seconds * 1000))

    def to_dict(self) -> dict[str, object]:
        """Convert the outcome to a plain dictionary for logging and persistence."""
        return {
            "server_name": self.server_name,
            "status": self.status.value,
            "correlation_id": self.correlation_id,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "accounts_processed": self.accounts_processed,
            "accounts_succeeded": self.accounts_succeeded,
            "accounts_failed": self.accounts_failed,
            "succeeded_accounts": list(self.succeeded_accounts),
            "failed_accounts": [
                {"name": f.name, "error": f.error, "account_id": f.account_id}
                for f in self.failed_accounts
            ],
            "error_message": self.error_message,
            "error_code": self.error_code,
            "failed_step": self.failed_step,
        }


@dataclass
class RunCounters:
    """Mutable account counters accumulated while a run is in progress."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    succeeded_accounts: list[str] = field(default_factory=list)
    failed_accounts: list[AccountFailure] = field(default_factory=list)

    def record_success(self, account: Account) -> None:
        self.processed += 1
        self.succeeded += 1
        self.succeeded_accounts.append(account.name)

    def record_failure(self, account: Account, error: str) -> None:
        self.processed += 1
        self.failed += 1
        self.failed_accounts.append(
            AccountFailure(name=account.name, error=error, account_id=account.id)
        )

    def classify(self) -> SyncStatus:
        """Classify a run whose terminal steps all succeeded."""
        if self.failed > 0 and self.succeeded == 0:
            return SyncStatus.FAILURE
        if self.failed > 0:
            return SyncStatus.PARTIAL
        return SyncStatus.SUCCESS
