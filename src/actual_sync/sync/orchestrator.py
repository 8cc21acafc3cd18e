"""
Per-server sync orchestration.

One call to :meth:`SyncOrchestrator.run` drives a server through
connect → download budget → list accounts → per-account bank sync →
final reconciliation, and always releases the client session afterwards.
Account failures are isolated: they are recorded and the run moves on to the
next account. Failures of the connect, download, listing or reconciliation
steps end the run as a failure.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from pathlib import Path

from .client import BudgetClient, BudgetClientFactory
from .error_handling import ErrorClassifier
from .retry import RetryExecutor
from .types import (
    FAILED_STEP_BY_PHASE,
    Account,
    RunCounters,
    SyncOutcome,
    SyncPhase,
    SyncStatus,
)
from ..config.schema import ServerConfig, SyncPolicy
from ..utils.core.log_context import ServerLogAdapter, get_server_logger
from ..utils.time import Clock, SystemClock, get_system_now

logger = logging.getLogger(__name__)

ALL_ACCOUNTS_FAILED_CODE = "ACCOUNT_SYNC_FAILED"


class SyncOrchestrator:
    """Runs the sync lifecycle for one server and classifies the outcome."""

    def __init__(
        self,
        client_factory: BudgetClientFactory,
        retry_executor: RetryExecutor | None = None,
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            client_factory: Creates a fresh budgeting client for each run
            retry_executor: Executor wrapping the retried remote calls
            clock: Monotonic clock used to measure run duration
        """
        self._client_factory: BudgetClientFactory = client_factory
        self._retry: RetryExecutor = retry_executor or RetryExecutor()
        self._clock: Clock = clock or SystemClock()

    async def run(
        self,
        server: ServerConfig,
        policy: SyncPolicy,
        correlation_id: str | None = None,
    ) -> SyncOutcome:
        """
        Synchronize one server.

        Args:
            server: Server to synchronize
            policy: Resolved retry policy for the server
            correlation_id: Identifier for this run (generated when omitted)

        Returns:
            Exactly one finalized SyncOutcome
        """
        correlation_id = correlation_id or uuid.uuid4().hex
        log = get_server_logger(__name__, server.name, correlation_id, server.log_level)

        started_at = get_system_now()
        start = self._clock.now()
        phase = SyncPhase.INIT
        counters = RunCounters()
        client: BudgetClient | None = None

        log.info(
            f"Starting sync (url={server.url}, max_retries={policy.max_retries}, "
            + f"base_retry_delay={policy.base_retry_delay:.1f}s, schedule='{policy.schedule}')"
        )

        try:
            client = self._client_factory()
            await self._prepare_data_dir(server, log)

            log.info(f"Connecting to budget server {server.url}")
            await client.connect(server.url, server.password, server.data_dir)
            phase = SyncPhase.CONNECTED
            log.info("Connected to budget server")

            await self._download_budget(client, server, policy, log)
            phase = SyncPhase.BUDGET_LOADED

            accounts = await client.list_accounts() or []
            phase = SyncPhase.ACCOUNTS_ENUMERATED
            log.info(f"Accounts fetched successfully ({len(accounts)} accounts)")
            if not accounts:
                log.warning("No accounts found to sync")

            for account in accounts:
                await self._sync_account(client, account, policy, counters, log)
            phase = SyncPhase.ACCOUNTS_SYNCED

            log.info("Starting final file sync")
            await self._retry.execute(
                client.reconcile,
                policy.max_retries,
                policy.base_retry_delay,
                description="final file sync",
                log=log,
            )
            log.info("Final file sync completed")

        except Exception as e:
            classified = ErrorClassifier.classify(e)
            failed_step = FAILED_STEP_BY_PHASE.get(phase, phase.value)
            log.exception(f"Sync failed during {failed_step}: {classified.message}")
            return self._finalize(
                server,
                correlation_id,
                started_at,
                start,
                counters,
                SyncStatus.FAILURE,
                error_message=classified.message,
                error_code=classified.code,
                failed_step=failed_step,
            )
        finally:
            if client is not None:
                await self._shutdown_client(client, log)

        status = counters.classify()
        error_message: str | None = None
        error_code: str | None = None
        if status is SyncStatus.FAILURE:
            error_message = f"All {counters.failed} account(s) failed to sync"
            error_code = ALL_ACCOUNTS_FAILED_CODE

        outcome = self._finalize(
            server,
            correlation_id,
            started_at,
            start,
            counters,
            status,
            error_message=error_message,
            error_code=error_code,
            failed_step="account_sync" if status is SyncStatus.FAILURE else None,
        )
        log.info(
            f"Sync finished with status {status.value} in {outcome.duration_seconds:.1f}s "
            + f"({counters.succeeded} succeeded, {counters.failed} failed)"
        )
        return outcome

    async def _prepare_data_dir(self, server: ServerConfig, log: ServerLogAdapter) -> None:
        data_dir = Path(server.data_dir)
        log.debug(f"Ensuring data directory exists: {data_dir}")
        await asyncio.to_thread(data_dir.mkdir, parents=True, exist_ok=True)

    async def _download_budget(
        self,
        client: BudgetClient,
        server: ServerConfig,
        policy: SyncPolicy,
        log: ServerLogAdapter,
    ) -> None:
        encryption_password = server.encryption_password or None

        async def _download() -> None:
            # An empty encryption password means "not encrypted"
            if encryption_password:
                await client.download_budget(server.sync_id, encryption_password)
            else:
                await client.download_budget(server.sync_id)

        log.info(f"Loading budget file {server.sync_id}")
        await self._retry.execute(
            _download,
            policy.max_retries,
            policy.base_retry_delay,
            description="budget download",
            log=log,
        )
        log.info("Budget file loaded successfully")

    async def _sync_account(
        self,
        client: BudgetClient,
        account: Account,
        policy: SyncPolicy,
        counters: RunCounters,
        log: ServerLogAdapter,
    ) -> None:
        log.info(f"Starting bank sync for account {account.name} ({account.id})")
        account_start = self._clock.now()
        try:
            await self._retry.execute(
                lambda: client.sync_account(account.id),
                policy.max_retries,
                policy.base_retry_delay,
                description=f"bank sync of {account.name}",
                log=log,
            )
        except Exception as e:
            classified = ErrorClassifier.classify(e)
            counters.record_failure(account, classified.message)
            log.error(
                f"Error syncing bank for account {account.name} "
                + f"(code={classified.code}): {classified.message}"
            )
            return

        counters.record_success(account)
        log.info(
            f"Bank sync completed for account {account.name} "
            + f"in {self._clock.now() - account_start:.1f}s"
        )

    async def _shutdown_client(self, client: BudgetClient, log: ServerLogAdapter) -> None:
        try:
            log.debug("Shutting down budget client")
            await client.disconnect()
            log.debug("Shutdown complete")
        except Exception as e:
            log.error(f"Error during client shutdown: {e}")

    def _finalize(
        self,
        server: ServerConfig,
        correlation_id: str,
        started_at: datetime,
        start: float,
        counters: RunCounters,
        status: SyncStatus,
        error_message: str | None = None,
        error_code: str | None = None,
        failed_step: str | None = None,
    ) -> SyncOutcome:
        return SyncOutcome(
            server_name=server.name,
            status=status,
            correlation_id=correlation_id,
            started_at=started_at,
            duration_seconds=max(0.0, self._clock.now() - start),
            accounts_processed=counters.processed,
            accounts_succeeded=counters.succeeded,
            accounts_failed=counters.failed,
            succeeded_accounts=tuple(counters.succeeded_accounts),
            failed_accounts=tuple(counters.failed_accounts),
            error_message=error_message,
            error_code=error_code,
            failed_step=failed_step,
        )
