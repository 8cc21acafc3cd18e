"""
Error classification for the sync system.

Every error raised by a budgeting client call passes through
:meth:`ErrorClassifier.classify` once, at the retry boundary. The result is a
:class:`ClassifiedError` carrying a kind, a message and an optional code, and
all retry and reporting decisions inspect that instead of the raw exception.
"""

import logging
import socket

import httpx

from .types import ClassifiedError, ErrorKind
from ..utils.core.exceptions import ActualSyncError, BudgetClientError

logger = logging.getLogger(__name__)

RATE_LIMIT_CATEGORY = "RATE_LIMIT_EXCEEDED"
NETWORK_FAILURE_MESSAGE = "network-failure"
NETWORK_ERROR_CODES = frozenset({"ECONNRESET", "ENOTFOUND"})


class ErrorClassifier:
    """Classifies errors for appropriate retry handling."""

    @staticmethod
    def classify(error: BaseException) -> ClassifiedError:
        """
        Normalize an error into kind, message and code.

        Args:
            error: The exception to classify

        Returns:
            ClassifiedError describing how to handle the error
        """
        message = ErrorClassifier._extract_message(error)
        code = ErrorClassifier._extract_code(error)
        category = ErrorClassifier._extract_category(error)

        if category is not None and category.upper() == RATE_LIMIT_CATEGORY:
            kind = ErrorKind.RATE_LIMITED
        elif (
            message == NETWORK_FAILURE_MESSAGE
            or (code is not None and code.upper() in NETWORK_ERROR_CODES)
            or isinstance(error, httpx.NetworkError)
        ):
            kind = ErrorKind.NETWORK
        else:
            kind = ErrorKind.PERMANENT

        return ClassifiedError(kind=kind, message=message, code=code, category=category)

    @staticmethod
    def _extract_message(error: BaseException) -> str:
        if isinstance(error, ActualSyncError):
            return error.message
        text = str(error)
        if text:
            return text
        cause = error.__cause__
        if cause is not None and str(cause):
            return str(cause)
        return type(error).__name__

    @staticmethod
    def _extract_code(error: BaseException) -> str | None:
        if isinstance(error, ConnectionResetError):
            return "ECONNRESET"
        if isinstance(error, socket.gaierror):
            return "ENOTFOUND"

        code = getattr(error, "code", None)
        if isinstance(code, str) and code:
            return code

        # Wrapped errors keep their classification on the original exception
        cause = error.__cause__
        if cause is not None and cause is not error:
            return ErrorClassifier._extract_code(cause)
        return None

    @staticmethod
    def _extract_category(error: BaseException) -> str | None:
        if isinstance(error, BudgetClientError):
            if error.remote_category:
                return error.remote_category
        else:
            category = getattr(error, "category", None)
            if isinstance(category, str) and category:
                return category

        cause = error.__cause__
        if cause is not None and cause is not error:
            return ErrorClassifier._extract_category(cause)
        return None
