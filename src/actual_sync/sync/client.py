"""
Budgeting client interface.

The orchestrator talks to a remote budget server only through this protocol.
Implementations raise errors that :class:`~.error_handling.ErrorClassifier`
can classify, typically :class:`~..utils.core.exceptions.BudgetClientError`.
"""

from collections.abc import Callable
from typing import Protocol

from .types import Account


class BudgetClient(Protocol):
    """Async session against one remote budget server."""

    async def connect(self, url: str, password: str, data_dir: str) -> None:
        """Open a session against the server."""
        ...

    async def download_budget(
        self, sync_id: str, encryption_password: str | None = None
    ) -> None:
        """Download the budget file, decrypting it when a password is given."""
        ...

    async def list_accounts(self) -> list[Account] | None:
        """List the budget's accounts."""
        ...

    async def sync_account(self, account_id: str) -> None:
        """Run the bank sync for one account."""
        ...

    async def reconcile(self) -> None:
        """Push local changes and pull remote ones."""
        ...

    async def disconnect(self) -> None:
        """Release the session."""
        ...


BudgetClientFactory = Callable[[], BudgetClient]
