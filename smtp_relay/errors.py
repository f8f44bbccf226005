"""Exceptions raised by the relay.

Every error carries a short machine-readable ``code`` next to its message.
The HTTP layer only ever shows ``str(exc)`` to the caller.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for every failure the relay reports."""

    code = "relay_error"


class ConfigurationError(RelayError):
    """Startup configuration is incomplete or invalid. Fatal."""

    code = "configuration_error"

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = list(missing or [])


class UnknownSenderError(RelayError):
    code = "unknown_sender"

    def __init__(self, name: str | None):
        if name is None:
            message = "unknown provider: no default sender configured"
        else:
            message = f"unknown provider for sender: {name}"
        super().__init__(message)
        self.name = name


class UnknownProviderError(RelayError):
    code = "unknown_provider"

    def __init__(self, name: str):
        super().__init__(f"unknown provider: {name}")
        self.name = name


class MessageBuildError(RelayError):
    code = "message_build_error"


class AttachmentDecodeError(MessageBuildError):
    code = "attachment_decode_error"


class TransportError(RelayError):
    """An SMTP exchange step failed; the send was aborted."""

    code = "transport_error"


class ConnectError(TransportError):
    code = "connect_failed"


class TLSHandshakeError(TransportError):
    code = "tls_failed"


class AuthenticationError(TransportError):
    code = "auth_failed"


class SenderRefusedError(TransportError):
    code = "sender_refused"


class RecipientRefusedError(TransportError):
    code = "recipient_refused"


class DataError(TransportError):
    code = "data_failed"
