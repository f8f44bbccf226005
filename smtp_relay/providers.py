"""SMTP providers the relay knows how to reach."""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

from .errors import UnknownProviderError


@dataclass(frozen=True)
class ProviderConfig:
    """Submission endpoint of an SMTP provider (always STARTTLS)."""

    name: str
    host: str
    port: int
    min_tls_version: Optional[ssl.TLSVersion] = None


DEFAULT_PROVIDERS = (
    ProviderConfig("gmail", "smtp.gmail.com", 587),
    ProviderConfig("office365", "smtp.office365.com", 587, ssl.TLSVersion.TLSv1_2),
)


class ProviderDirectory(Mapping[str, ProviderConfig]):
    """Read-only lookup table of providers keyed by lower-cased id."""

    def __init__(self, providers: Iterable[ProviderConfig] = DEFAULT_PROVIDERS):
        self._providers = MappingProxyType({p.name.lower(): p for p in providers})

    def __getitem__(self, name: str) -> ProviderConfig:
        return self._providers[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    def resolve(self, name: Optional[str]) -> ProviderConfig:
        """Return the provider registered as ``name`` (case-insensitive)."""
        key = (name or "").strip().lower()
        provider = self._providers.get(key)
        if provider is None:
            raise UnknownProviderError(name or "")
        return provider
