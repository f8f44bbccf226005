"""SMTP submission over STARTTLS using :mod:`aiosmtplib`."""

from __future__ import annotations

import asyncio
import ssl
from email.message import EmailMessage
from email.policy import SMTP as SMTP_POLICY
from typing import Awaitable, Optional, Type, TypeVar

import aiosmtplib

from .errors import (
    AuthenticationError,
    ConnectError,
    DataError,
    RecipientRefusedError,
    SenderRefusedError,
    TLSHandshakeError,
    TransportError,
)
from .logger import get_logger
from .providers import ProviderConfig
from .senders import SenderConfig

DEFAULT_TIMEOUT = 30.0

_NETWORK_ERRORS = (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError)

T = TypeVar("T")


def build_tls_context(provider: ProviderConfig) -> ssl.SSLContext:
    """Return a verifying client context, pinned to the provider's minimum TLS version."""
    context = ssl.create_default_context()
    if provider.min_tls_version is not None:
        context.minimum_version = provider.min_tls_version
    return context


class SMTPTransport:
    """Deliver one message per connection: connect, STARTTLS, AUTH PLAIN, MAIL, RCPT, DATA.

    Each step that fails raises its own :class:`TransportError` subclass and
    aborts the send. Nothing is retried. The connection is closed on every
    path out of :meth:`send`.
    """

    def __init__(self, timeout: Optional[float] = DEFAULT_TIMEOUT, logger=None):
        self.timeout = timeout
        self.logger = logger or get_logger()

    async def _step(self, label: str, error: Type[TransportError], awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except _NETWORK_ERRORS as exc:
            raise error(f"{label}: {exc}") from exc

    async def _release(self, smtp: aiosmtplib.SMTP) -> None:
        if not smtp.is_connected:
            return
        try:
            await smtp.quit()
        except Exception as exc:
            self.logger.debug("QUIT failed, closing connection: %s", exc)
            smtp.close()

    async def send(
        self,
        provider: ProviderConfig,
        sender: SenderConfig,
        recipient: str,
        message: EmailMessage,
    ) -> None:
        """Submit ``message`` to ``recipient`` through ``provider`` as ``sender``."""
        data = message.as_bytes(policy=SMTP_POLICY)
        smtp = aiosmtplib.SMTP(
            hostname=provider.host,
            port=provider.port,
            use_tls=False,
            start_tls=False,
            timeout=self.timeout,
        )
        try:
            await self._step("connection failed", ConnectError, smtp.connect())
            await self._step(
                "TLS handshake failed",
                TLSHandshakeError,
                smtp.starttls(server_hostname=provider.host, tls_context=build_tls_context(provider)),
            )
            await self._step(
                "authentication failed",
                AuthenticationError,
                smtp.auth_plain(sender.account_email, sender.account_password),
            )
            await self._step("sender setup failed", SenderRefusedError, smtp.mail(sender.account_email))
            await self._step("recipient setup failed", RecipientRefusedError, smtp.rcpt(recipient))
            await self._step("failed to send email", DataError, smtp.data(data))
        finally:
            await self._release(smtp)
        self.logger.debug("Delivered to %s via %s:%s", recipient, provider.host, provider.port)
