"""Build the outgoing :class:`EmailMessage` objects."""

from __future__ import annotations

import base64
import binascii
import mimetypes
import random
import time
from email.message import EmailMessage
from email.utils import formatdate
from typing import Iterable, Optional, Tuple

from .errors import AttachmentDecodeError, MessageBuildError
from .senders import SenderConfig

DEFAULT_MAILER = "SMTP Relay"
PRIORITY_HIGHEST = "1 (Highest)"


def generate_message_id(domain: str) -> str:
    """Return a ``Message-ID`` made of a nanosecond timestamp and a random suffix."""
    return f"<{time.time_ns()}.{random.getrandbits(63)}@{domain}>"


def expand_line_breaks(text: str) -> str:
    """Turn literal backslash-n sequences, as sent by some clients, into line breaks."""
    return text.replace("\\n", "\n")


def decode_attachment(data: str) -> bytes:
    """Strictly decode a standard base64 payload; MIME line wrapping is allowed."""
    try:
        return base64.b64decode(data.replace("\r", "").replace("\n", ""), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AttachmentDecodeError(f"failed to decode base64 attachment: {exc}") from exc


def attachment_content_type(filename: str) -> Tuple[str, str]:
    """PDF when the filename says so, generic binary otherwise."""
    if filename.endswith(".pdf"):
        return ("application", "pdf")
    return ("application", "octet-stream")


def guess_mime(filename: str) -> Tuple[str, str]:
    """Guess the MIME type for the given filename."""
    mt, _ = mimetypes.guess_type(filename)
    if not mt:
        return ("application", "octet-stream")
    return tuple(mt.split("/", 1))  # type: ignore[return-value]


def _has_attachment(filename: Optional[str], attachment: Optional[str]) -> bool:
    return bool(filename) and bool(attachment)


def _set_headers(msg: EmailMessage, headers: Iterable[Tuple[str, str]]) -> None:
    # The email policy refuses CR/LF inside a header value.
    for name, value in headers:
        try:
            msg[name] = value
        except ValueError as exc:
            raise MessageBuildError(f"invalid header value: {exc}") from exc


def build_text_message(
    request,
    sender: SenderConfig,
    *,
    domain: str,
    mailer: str = DEFAULT_MAILER,
) -> EmailMessage:
    """Build the ``multipart/mixed`` variant: a plain-text part plus an optional attachment.

    ``request`` is any object exposing ``to``, ``subject``, ``body``,
    ``filename`` and ``attachment`` attributes (normally an
    :class:`smtp_relay.api.EmailRequest`). ``domain`` is the right-hand side
    of the generated ``Message-ID``.
    """
    # Decode first so a bad payload fails before anything else is built.
    payload = None
    if _has_attachment(request.filename, request.attachment):
        payload = decode_attachment(request.attachment)

    msg = EmailMessage()
    _set_headers(msg, [
        ("From", sender.from_address),
        ("To", request.to),
        ("Subject", request.subject),
        ("Return-Path", sender.account_email),
        ("Message-ID", generate_message_id(domain)),
        ("X-Mailer", mailer),
        ("X-Priority", PRIORITY_HIGHEST),
    ])
    msg.set_content(expand_line_breaks(request.body), subtype="plain", charset="utf-8")
    msg.make_mixed()

    if payload is not None:
        maintype, subtype = attachment_content_type(request.filename)
        msg.add_attachment(payload, maintype=maintype, subtype=subtype, filename=request.filename)
    return msg


def build_html_message(request, sender: SenderConfig, *, domain: str) -> EmailMessage:
    """Build the HTML variant: the body is sent verbatim as ``text/html``."""
    payload = None
    if _has_attachment(request.filename, request.attachment):
        payload = decode_attachment(request.attachment)

    msg = EmailMessage()
    _set_headers(msg, [
        ("From", sender.from_address),
        ("To", request.to),
        ("Subject", request.subject),
        ("Date", formatdate(localtime=True)),
        ("Message-ID", generate_message_id(domain)),
    ])
    msg.set_content(request.body, subtype="html", charset="utf-8")

    if payload is not None:
        maintype, subtype = guess_mime(request.filename)
        msg.add_attachment(payload, maintype=maintype, subtype=subtype, filename=request.filename)
    return msg
