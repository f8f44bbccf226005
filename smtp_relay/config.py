"""Startup configuration: an optional INI file with environment variable fallbacks."""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigurationError
from .message import DEFAULT_MAILER
from .senders import SenderRegistry, load_sender_registry
from .transport import DEFAULT_TIMEOUT

DEFAULT_PORT = 8080
DEFAULT_TRUSTED_PROXIES = "192.168.1.0/24"


@dataclass(frozen=True)
class RelaySettings:
    """Everything the process needs, resolved once at startup."""

    senders: SenderRegistry
    http_host: str = "0.0.0.0"
    http_port: int = DEFAULT_PORT
    log_level: str = "INFO"
    api_token: Optional[str] = None
    trusted_proxies: str = DEFAULT_TRUSTED_PROXIES
    smtp_timeout: float = DEFAULT_TIMEOUT
    mailer: str = DEFAULT_MAILER


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[str] = None,
) -> RelaySettings:
    """
    Load configuration from an INI file (default: config.ini) with environment variables as fallbacks.

    Environment variables:
      RELAY_CONFIG - Path to config.ini file (default: config.ini)
      HOST - Server host (default: 0.0.0.0)
      PORT - Server port (default: 8080)
      LOG_LEVEL - Logging level (default: INFO)
      API_TOKEN - Optional token required in the X-API-Token header
      TRUSTED_PROXIES - Comma separated proxy addresses/networks (default: 192.168.1.0/24)
      SMTP_TIMEOUT - Timeout of each SMTP operation in seconds (default: 30)
      X_MAILER - Value of the X-Mailer header (default: SMTP Relay)

    Config file sections/keys:
      [server] host, port, api_token, trusted_proxies
      [smtp] timeout, mailer
      [logging] level

    Sender credentials are read from the environment only, see
    :mod:`smtp_relay.senders`. Raises :class:`ConfigurationError` when
    something required is missing or malformed.
    """
    env = os.environ if environ is None else environ
    path = Path(config_path or env.get("RELAY_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    parser.read(path)

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_int(section: str, option: str, fallback: str | None = None, default: int | None = None) -> int | None:
        value = get(section, option, fallback)
        if value is None or not str(value).strip():
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigurationError(f"[{section}] {option} must be an integer, got {value!r}") from exc

    def get_float(section: str, option: str, fallback: str | None = None, default: float | None = None) -> float | None:
        value = get(section, option, fallback)
        if value is None or not str(value).strip():
            return default
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigurationError(f"[{section}] {option} must be a number, got {value!r}") from exc

    token = get("server", "api_token", env.get("API_TOKEN"))
    if isinstance(token, str):
        token = token.strip() or None

    return RelaySettings(
        senders=load_sender_registry(env),
        http_host=get("server", "host", env.get("HOST")) or "0.0.0.0",
        http_port=get_int("server", "port", env.get("PORT"), default=DEFAULT_PORT),
        log_level=(get("logging", "level", env.get("LOG_LEVEL")) or "INFO").upper(),
        api_token=token,
        trusted_proxies=get("server", "trusted_proxies", env.get("TRUSTED_PROXIES")) or DEFAULT_TRUSTED_PROXIES,
        smtp_timeout=get_float("smtp", "timeout", env.get("SMTP_TIMEOUT"), default=DEFAULT_TIMEOUT),
        mailer=get("smtp", "mailer", env.get("X_MAILER")) or DEFAULT_MAILER,
    )
