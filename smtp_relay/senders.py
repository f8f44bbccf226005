"""Sender identities and the registry built from the environment.

Two layouts are recognised:

Multi-sender (``SENDER_NAMES`` is set)::

    SENDER_NAMES=compras,financeiro
    SERVICE_ACCOUNT_EMAIL=relay@example.com
    SERVICE_ACCOUNT_PASS=secret
    SENDER_PROVIDER=office365
    SENDER_COMPRAS_EMAIL=compras@example.com
    SENDER_FINANCEIRO_EMAIL=financeiro@example.com
    SENDER_FINANCEIRO_PROVIDER=gmail        # optional per-sender override
    DEFAULT_SENDER=compras                  # optional

Single-sender::

    GMAIL_USERNAME=me@gmail.com
    GMAIL_APP_PASSWORD=app-password
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

from .errors import ConfigurationError, UnknownSenderError

SINGLE_SENDER_NAME = "default"
RESERVED_NAMES = frozenset({"html"})
SENDER_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


@dataclass(frozen=True)
class SenderConfig:
    """Outbound identity: display address, SMTP credentials and provider."""

    name: str
    from_address: str
    account_email: str
    account_password: str = field(repr=False)
    provider: str = "gmail"


class SenderRegistry(Mapping[str, SenderConfig]):
    """Immutable mapping of sender name to :class:`SenderConfig`."""

    def __init__(self, senders: Iterable[SenderConfig], default: Optional[str] = None):
        table = {}
        for sender in senders:
            if sender.name in table:
                raise ConfigurationError(f"duplicate sender name: {sender.name}")
            table[sender.name] = sender
        if default is not None and default not in table:
            raise ConfigurationError(f"default sender {default!r} is not in the sender list")
        self._senders = MappingProxyType(table)
        self.default = default

    def __getitem__(self, name: str) -> SenderConfig:
        return self._senders[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._senders)

    def __len__(self) -> int:
        return len(self._senders)

    def resolve(self, name: Optional[str] = None) -> SenderConfig:
        """Return the sender called ``name``, or the default one when ``name`` is None."""
        key = self.default if name is None else name.strip().lower()
        if key is None:
            raise UnknownSenderError(None)
        sender = self._senders.get(key)
        if sender is None:
            raise UnknownSenderError(key)
        return sender


def _env_key(name: str) -> str:
    return name.upper().replace("-", "_")


def parse_sender_names(raw: str) -> list[str]:
    """Split a comma separated ``SENDER_NAMES`` value into normalised names."""
    names = [part.strip().lower() for part in raw.split(",") if part.strip()]
    for name in names:
        if not SENDER_NAME_RE.match(name):
            raise ConfigurationError(f"invalid sender name: {name!r}")
        if name in RESERVED_NAMES or name.startswith("html-"):
            raise ConfigurationError(f"sender name {name!r} is reserved")
    return names


def _load_multi_sender(environ: Mapping[str, str]) -> SenderRegistry:
    names = parse_sender_names(environ.get("SENDER_NAMES", ""))
    if not names:
        raise ConfigurationError("SENDER_NAMES does not list any sender", ["SENDER_NAMES"])

    shared_account = environ.get("SERVICE_ACCOUNT_EMAIL") or None
    shared_password = environ.get("SERVICE_ACCOUNT_PASS") or None
    shared_provider = environ.get("SENDER_PROVIDER") or None

    missing: list[str] = []
    senders: list[SenderConfig] = []
    for name in names:
        key = _env_key(name)
        fields = {
            f"SENDER_{key}_EMAIL": environ.get(f"SENDER_{key}_EMAIL") or None,
            "SERVICE_ACCOUNT_EMAIL": environ.get(f"SENDER_{key}_ACCOUNT") or shared_account,
            "SERVICE_ACCOUNT_PASS": environ.get(f"SENDER_{key}_PASSWORD") or shared_password,
            "SENDER_PROVIDER": environ.get(f"SENDER_{key}_PROVIDER") or shared_provider,
        }
        absent = [var for var, value in fields.items() if value is None]
        if absent:
            for var in absent:
                if var not in missing:
                    missing.append(var)
            continue
        senders.append(
            SenderConfig(
                name=name,
                from_address=fields[f"SENDER_{key}_EMAIL"],
                account_email=fields["SERVICE_ACCOUNT_EMAIL"],
                account_password=fields["SERVICE_ACCOUNT_PASS"],
                provider=fields["SENDER_PROVIDER"].strip().lower(),
            )
        )

    if missing:
        raise ConfigurationError(
            "missing required environment variables: " + ", ".join(missing),
            missing,
        )

    default = environ.get("DEFAULT_SENDER") or None
    if default is not None:
        default = default.strip().lower()
    return SenderRegistry(senders, default=default)


def _load_single_sender(environ: Mapping[str, str]) -> SenderRegistry:
    user = environ.get("GMAIL_USERNAME") or None
    password = environ.get("GMAIL_APP_PASSWORD") or None
    if user is None or password is None:
        missing = [var for var, value in (("GMAIL_USERNAME", user), ("GMAIL_APP_PASSWORD", password)) if value is None]
        raise ConfigurationError(
            "GMAIL_USERNAME and GMAIL_APP_PASSWORD environment variables must be set",
            missing,
        )
    sender = SenderConfig(
        name=SINGLE_SENDER_NAME,
        from_address=user,
        account_email=user,
        account_password=password,
        provider="gmail",
    )
    return SenderRegistry([sender], default=SINGLE_SENDER_NAME)


def load_sender_registry(environ: Mapping[str, str]) -> SenderRegistry:
    """Build the registry from environment variables.

    Raises :class:`ConfigurationError` listing every missing variable.
    """
    if environ.get("SENDER_NAMES"):
        return _load_multi_sender(environ)
    return _load_single_sender(environ)
