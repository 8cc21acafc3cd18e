"""Email (SMTP) notification channel."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING

from .base import DEFAULT_TIMEOUT, NotificationChannel
from ...utils.core.exceptions import ChannelDeliveryError

if TYPE_CHECKING:
    from ..formatter import FormattedMessage

logger = logging.getLogger(__name__)


class EmailChannel(NotificationChannel):
    """
    Sends notifications by email.

    ``secure=True`` connects with implicit TLS (usually port 465); otherwise
    the connection is upgraded with STARTTLS when the server offers it.
    smtplib is blocking, so delivery runs in a worker thread.
    """

    def __init__(
        self,
        name: str,
        host: str,
        port: int,
        from_address: str,
        recipients: list[str],
        username: str = "",
        password: str = "",
        secure: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(name)
        self.host: str = host
        self.port: int = port
        self.from_address: str = from_address
        self.recipients: list[str] = list(recipients)
        self.username: str = username
        self.password: str = password
        self.secure: bool = secure
        self.timeout: float = timeout

    def build_message(self, message: FormattedMessage) -> MIMEMultipart:
        """Build the multipart (plain text + HTML) email."""
        mime = MIMEMultipart("alternative")
        mime["Subject"] = message.subject
        mime["From"] = self.from_address
        mime["To"] = ", ".join(self.recipients)
        mime.attach(MIMEText(message.text, "plain", "utf-8"))
        mime.attach(MIMEText(message.html, "html", "utf-8"))
        return mime

    async def send(self, message: FormattedMessage) -> None:
        mime = self.build_message(message)
        try:
            await asyncio.to_thread(self._deliver, mime)
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelDeliveryError(self.name, f"SMTP delivery failed: {e}") from e
        logger.debug(f"Email sent to {len(self.recipients)} recipient(s) via {self.host}")

    def _deliver(self, mime: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        if self.secure:
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout, context=context
            )
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)

        with server:
            _ = server.ehlo()
            if not self.secure and server.has_extn("starttls"):
                _ = server.starttls(context=context)
            if self.username and self.password:
                _ = server.login(self.username, self.password)
            _ = server.sendmail(self.from_address, self.recipients, mime.as_string())
