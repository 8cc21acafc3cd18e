"""
Budgeting client backed by the ``actualpy`` library.

actualpy is synchronous, so every call runs in a worker thread. Errors are
translated into :class:`BudgetClientError` with the code/category fields the
retry classifier understands: bank sync errors keep their category, connection
errors and timeouts become network errors, and everything else (HTTP status
errors included) keeps its own message and is not retried. Install with the
``actual`` extra.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from contextlib import ExitStack
from typing import TYPE_CHECKING, TypeVar

import requests
from actual import Actual
from actual.exceptions import ActualError
from actual.queries import get_accounts

from .error_handling import NETWORK_FAILURE_MESSAGE
from .types import Account
from ..utils.core.exceptions import BudgetClientError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ActualBudgetClient:
    """BudgetClient implementation for an Actual Budget server."""

    def __init__(self) -> None:
        self._stack: ExitStack = ExitStack()
        self._actual: Actual | None = None

    async def connect(self, url: str, password: str, data_dir: str) -> None:
        def _connect() -> Actual:
            return self._stack.enter_context(
                Actual(base_url=url, password=password, data_dir=data_dir)
            )

        self._actual = await self._call(_connect)

    async def download_budget(
        self, sync_id: str, encryption_password: str | None = None
    ) -> None:
        actual = self._require_session()

        def _download() -> None:
            _ = actual.set_file(sync_id)
            if encryption_password:
                actual.download_budget(encryption_password)
            else:
                actual.download_budget()

        await self._call(_download)

    async def list_accounts(self) -> list[Account] | None:
        actual = self._require_session()

        def _list() -> list[Account]:
            return [
                Account(id=str(account.id), name=str(account.name))
                for account in get_accounts(actual.session)
            ]

        return await self._call(_list)

    async def sync_account(self, account_id: str) -> None:
        actual = self._require_session()

        def _bank_sync() -> None:
            _ = actual.run_bank_sync(account=account_id)
            actual.commit()

        await self._call(_bank_sync)

    async def reconcile(self) -> None:
        actual = self._require_session()
        await self._call(actual.sync)

    async def disconnect(self) -> None:
        self._actual = None
        await asyncio.to_thread(self._stack.close)

    def _require_session(self) -> Actual:
        if self._actual is None:
            raise BudgetClientError("Not connected to an Actual server")
        return self._actual

    @staticmethod
    async def _call(func: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(func)
        except ActualError as e:
            error_type = getattr(e, "error_type", None)
            raise BudgetClientError(
                str(e) or type(e).__name__,
                code="NORDIGEN_ERROR" if error_type else None,
                remote_category=str(error_type) if error_type else None,
            ) from e
        except (requests.ConnectionError, requests.Timeout) as e:
            code = network_error_code(e)
            logger.warning(f"Network error talking to Actual server: {e}")
            # Without a socket-level code the generic network signal marks it retryable
            raise BudgetClientError(
                str(e) if code else NETWORK_FAILURE_MESSAGE, code=code
            ) from e
        except (ConnectionResetError, socket.gaierror) as e:
            raise BudgetClientError(
                str(e) or type(e).__name__, code=network_error_code(e)
            ) from e
        except OSError as e:
            # HTTP status errors and local file errors are not retryable
            raise BudgetClientError(str(e) or type(e).__name__) from e


def network_error_code(error: BaseException) -> str | None:
    """
    Find the socket-level cause of a network error.

    Follows the exception chain (and urllib3's ``reason`` attribute) looking
    for a connection reset or a failed DNS lookup.

    Returns:
        ``"ECONNRESET"``, ``"ENOTFOUND"`` or None
    """
    seen: set[int] = set()
    pending: list[BaseException] = [error]
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))

        if isinstance(current, ConnectionResetError):
            return "ECONNRESET"
        if isinstance(current, socket.gaierror):
            return "ENOTFOUND"

        for linked in (
            current.__cause__,
            current.__context__,
            getattr(current, "reason", None),
            *current.args,
        ):
            if isinstance(linked, BaseException):
                pending.append(linked)
    return None
