"""Command-line interface for the SMTP relay.

Usage:
    smtp-relay serve [--host HOST] [--port PORT] [--config config.ini]
    smtp-relay senders
    smtp-relay send --to dest@example.com --subject Hi --body "Hello" [--sender compras]
                    [--attach report.pdf] [--html]

Configuration comes from the same environment variables (and optional INI
file) the server uses, see :func:`smtp_relay.config.load_settings`.
"""

from __future__ import annotations

import asyncio
import base64
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .api import EmailRequest, create_app
from .config import RelaySettings, load_settings
from .errors import ConfigurationError, RelayError
from .logger import configure_logging
from .providers import ProviderDirectory
from .relay import MailRelay
from .transport import SMTPTransport

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run a coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message in red."""
    err_console.print(f"[red]Error:[/red] {escape(message)}")


def print_success(message: str) -> None:
    """Print a success message in green."""
    console.print(f"[green]✓[/green] {message}")


def build_relay(settings: RelaySettings) -> MailRelay:
    """Wire the relay service from resolved settings."""
    return MailRelay(
        settings.senders,
        providers=ProviderDirectory(),
        transport=SMTPTransport(timeout=settings.smtp_timeout),
        mailer=settings.mailer,
    )


def _load(config_path: Optional[str]) -> RelaySettings:
    try:
        return load_settings(config_path=config_path)
    except ConfigurationError as exc:
        print_error(str(exc))
        sys.exit(1)


@click.group()
@click.version_option(package_name="smtp-relay")
@click.option("--config", "-c", "config_path", default=None, help="INI file (default: $RELAY_CONFIG or config.ini).")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str]) -> None:
    """HTTP-to-SMTP relay."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command("serve")
@click.option("--host", "-h", default=None, help="Host to bind to (default: 0.0.0.0).")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default: 8080).")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Start the HTTP server."""
    import uvicorn

    settings = _load(ctx.obj["config_path"])
    configure_logging(settings.log_level)
    app = create_app(build_relay(settings), api_token=settings.api_token)
    bind_host = host or settings.http_host
    bind_port = port or settings.http_port
    console.print(f"Server starting on [bold]{bind_host}:{bind_port}[/bold]")
    uvicorn.run(
        app,
        host=bind_host,
        port=bind_port,
        proxy_headers=True,
        forwarded_allow_ips=settings.trusted_proxies,
    )


@main.command("senders")
@click.pass_context
def list_senders(ctx: click.Context) -> None:
    """List the configured sender identities."""
    settings = _load(ctx.obj["config_path"])
    registry = settings.senders

    table = Table(title="Senders")
    table.add_column("Name", style="cyan")
    table.add_column("From")
    table.add_column("Account")
    table.add_column("Provider")
    for sender in registry.values():
        name = sender.name
        if name == registry.default:
            name = f"{name} (default)"
        table.add_row(name, sender.from_address, sender.account_email, sender.provider)
    console.print(table)


@main.command("send")
@click.option("--sender", "-s", default=None, help="Sender name (default sender when omitted).")
@click.option("--to", "to", required=True, help="Recipient address.")
@click.option("--subject", required=True)
@click.option("--body", required=True)
@click.option("--attach", "attach", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="File to attach.")
@click.option("--html", is_flag=True, help="Send the body as HTML.")
@click.pass_context
def send(ctx: click.Context, sender: Optional[str], to: str, subject: str, body: str,
         attach: Optional[Path], html: bool) -> None:
    """Send one email directly, without going through the HTTP API."""
    settings = _load(ctx.obj["config_path"])
    configure_logging(settings.log_level)

    filename = attachment = None
    if attach is not None:
        filename = attach.name
        attachment = base64.b64encode(attach.read_bytes()).decode("ascii")
    request = EmailRequest(to=to, subject=subject, body=body, filename=filename, attachment=attachment)

    relay = build_relay(settings)
    try:
        used = run_async(relay.send(sender, request, html=html))
    except RelayError as exc:
        print_error(str(exc))
        sys.exit(1)
    print_success(f"Email sent to {to} via {used.name}")


if __name__ == "__main__":
    main()
