"""
Base classes for notification channels.

A channel delivers one :class:`FormattedMessage` to one destination and raises
:class:`ChannelDeliveryError` when it cannot.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import httpx

from ...utils.core.exceptions import ChannelDeliveryError

if TYPE_CHECKING:
    from ..formatter import FormattedMessage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class NotificationChannel(ABC):
    """A single notification destination."""

    def __init__(self, name: str) -> None:
        self.name: str = name

    @abstractmethod
    async def send(self, message: FormattedMessage) -> None:
        """
        Deliver a message.

        Raises:
            ChannelDeliveryError: If the message could not be delivered
        """

    def accepts(self, message: FormattedMessage) -> bool:
        """Whether this channel wants the message at all (every message by default)."""
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class HttpChannel(NotificationChannel):
    """Channel that delivers by posting JSON over HTTP."""

    def __init__(
        self,
        name: str,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the channel.

        Args:
            name: Channel name used in logs and results
            timeout: Request timeout in seconds
            client: Shared HTTP client; a short-lived one is created per send when omitted
        """
        super().__init__(name)
        self.timeout: float = timeout
        self._client: httpx.AsyncClient | None = client

    async def post_json(self, url: str, payload: dict[str, object]) -> httpx.Response:
        """
        POST a JSON payload and require a 2xx response.

        Raises:
            ChannelDeliveryError: On transport errors and non-2xx responses
        """
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload)
            _ = response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ChannelDeliveryError(
                self.name, f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise ChannelDeliveryError(self.name, f"Request failed: {e}") from e

        logger.debug(f"Delivered notification via {self.name} (HTTP {response.status_code})")
        return response
