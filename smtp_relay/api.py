"""
FastAPI application factory and HTTP schemas for the SMTP relay.

The module exposes a `create_app` function that builds the REST API. A
single generic handler serves every sender: the sender name is taken from
the path (``/send-email-<name>``) and resolved against the immutable
registry held by the :class:`~smtp_relay.relay.MailRelay` instance. When an
API token is configured it must be carried in the ``X-API-Token`` header.
"""

import asyncio
import socket
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from .errors import RelayError
from .logger import get_logger
from .prometheus import CONTENT_TYPE_LATEST, RelayMetrics
from .relay import MailRelay

API_TOKEN_HEADER_NAME = "X-API-Token"
UNKNOWN_SENDER_LABEL = "unknown"
api_key_scheme = APIKeyHeader(name=API_TOKEN_HEADER_NAME, auto_error=False)
logger = get_logger("SMTPRelay.api")


async def require_token(request: Request, api_token: str | None = Depends(api_key_scheme)) -> None:
    """Validate the API token carried in the ``X-API-Token`` header.

    When no token has been configured through :func:`create_app` the
    dependency is effectively bypassed.
    """
    expected = getattr(request.app.state, "api_token", None)
    if expected is None:
        return
    if not api_token or api_token != expected:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API token")


auth_dependency = Depends(require_token)


class EmailRequest(BaseModel):
    """Email to relay. ``filename`` and ``attachment`` only count when both are set."""
    to: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)
    filename: Optional[str] = None
    attachment: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str


class IPInfoResponse(BaseModel):
    hostname: str
    ips: List[str]
    client_ip: Optional[str] = None


def _format_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = list(err.get("loc", ()))
        if loc and loc[0] == "body":
            loc = loc[1:]
        loc = ".".join(str(p) for p in loc)
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "invalid request"


def create_app(
    relay: MailRelay,
    metrics: RelayMetrics | None = None,
    api_token: str | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    relay:
        :class:`smtp_relay.relay.MailRelay` holding the sender registry and
        the SMTP transport.
    metrics:
        Metrics holder; a private one is created when omitted.
    api_token:
        Optional secret. When provided, the ``X-API-Token`` header must match
        it on every endpoint except ``/health``.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn or any ASGI
        server.
    """
    api = FastAPI(title="SMTP Relay")
    api.state.metrics = metrics or RelayMetrics()
    api.state.api_token = api_token

    def metric_label(name: Optional[str]) -> Optional[str]:
        # Only configured names become label values; the path is caller-controlled.
        if name is None:
            return relay.registry.default
        key = name.strip().lower()
        return key if key in relay.registry else UNKNOWN_SENDER_LABEL

    @api.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        """Report malformed bodies as 400 ``{"error": ...}``; the transport is never reached."""
        sender = metric_label(request.path_params.get("sender"))
        api.state.metrics.inc_processed(sender, status.HTTP_400_BAD_REQUEST)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error=_format_validation_error(exc)).model_dump(),
        )

    async def deliver(sender: Optional[str], payload: EmailRequest, html: bool):
        label = metric_label(sender)
        try:
            used = await relay.send(sender, payload, html=html)
        except RelayError as exc:
            api.state.metrics.inc_processed(label, status.HTTP_500_INTERNAL_SERVER_ERROR)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=ErrorResponse(error=str(exc)).model_dump(),
            )
        api.state.metrics.inc_processed(used.name, status.HTTP_200_OK)
        return MessageResponse(message=f"Email sent successfully via {used.name}")

    # Fixed paths first: "/send-email-{sender}" would otherwise capture "html".
    @api.post("/send-email", response_model=MessageResponse,
              responses={500: {"model": ErrorResponse}}, dependencies=[auth_dependency])
    async def send_email(payload: EmailRequest):
        """Send a plain-text email as the default sender."""
        return await deliver(None, payload, html=False)

    @api.post("/send-email-html", response_model=MessageResponse,
              responses={500: {"model": ErrorResponse}}, dependencies=[auth_dependency])
    async def send_email_html(payload: EmailRequest):
        """Send an HTML email as the default sender."""
        return await deliver(None, payload, html=True)

    @api.post("/send-email-html-{sender}", response_model=MessageResponse,
              responses={500: {"model": ErrorResponse}}, dependencies=[auth_dependency])
    async def send_email_html_as(sender: str, payload: EmailRequest):
        """Send an HTML email as the named sender."""
        return await deliver(sender, payload, html=True)

    @api.post("/send-email-{sender}", response_model=MessageResponse,
              responses={500: {"model": ErrorResponse}}, dependencies=[auth_dependency])
    async def send_email_as(sender: str, payload: EmailRequest):
        """Send a plain-text email as the named sender."""
        return await deliver(sender, payload, html=False)

    @api.get("/health", response_model=HealthResponse)
    async def health():
        """Return a simple health status payload."""
        return HealthResponse(status="healthy")

    @api.get("/get-ip", response_model=IPInfoResponse, dependencies=[auth_dependency])
    async def get_ip(request: Request):
        """Report the pod hostname, the addresses it resolves to and the caller address."""
        hostname = socket.gethostname()
        try:
            infos = await asyncio.get_running_loop().getaddrinfo(hostname, None)
            ips = sorted({info[4][0] for info in infos})
        except OSError as exc:
            logger.warning("Could not resolve %s: %s", hostname, exc)
            ips = []
        client_ip = request.client.host if request.client else None
        return IPInfoResponse(hostname=hostname, ips=ips, client_ip=client_ip)

    @api.get("/metrics", dependencies=[auth_dependency])
    async def metrics_endpoint():
        """Expose Prometheus metrics collected by the relay."""
        return Response(content=api.state.metrics.generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return api
