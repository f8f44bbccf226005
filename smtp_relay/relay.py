"""Relay service: resolve the sender, build the message and hand it to the transport."""

from __future__ import annotations

from typing import List, Optional

from .errors import RelayError
from .logger import get_logger
from .message import DEFAULT_MAILER, build_html_message, build_text_message
from .providers import ProviderDirectory
from .senders import SenderConfig, SenderRegistry
from .transport import SMTPTransport


class MailRelay:
    """Coordinate sender lookup, message building and SMTP delivery.

    All lookups and message building happen before the transport is touched,
    so configuration mistakes and bad payloads never open a connection.
    """

    def __init__(
        self,
        registry: SenderRegistry,
        *,
        providers: Optional[ProviderDirectory] = None,
        transport: Optional[SMTPTransport] = None,
        mailer: str = DEFAULT_MAILER,
        logger=None,
    ):
        self.registry = registry
        self.providers = providers or ProviderDirectory()
        self.transport = transport or SMTPTransport()
        self.mailer = mailer
        self.logger = logger or get_logger()

    def senders(self) -> List[SenderConfig]:
        """Return the configured senders in declaration order."""
        return list(self.registry.values())

    async def send(self, sender_name: Optional[str], request, *, html: bool = False) -> SenderConfig:
        """Send ``request`` as ``sender_name`` (the default sender when None).

        Returns the sender that was used. Any :class:`RelayError` propagates
        to the caller unchanged.
        """
        try:
            sender = self.registry.resolve(sender_name)
            provider = self.providers.resolve(sender.provider)
            if html:
                message = build_html_message(request, sender, domain=provider.host)
            else:
                message = build_text_message(request, sender, domain=provider.host, mailer=self.mailer)
            await self.transport.send(provider, sender, request.to, message)
        except RelayError as exc:
            self.logger.error(
                "Send failed (sender=%s, to=%s, code=%s): %s",
                sender_name or self.registry.default,
                request.to,
                exc.code,
                exc,
            )
            raise
        self.logger.info("Email sent (sender=%s, to=%s, html=%s)", sender.name, request.to, html)
        return sender
