"""
RFC5322 email composer.

Serializes a ``mailcore.models.Message`` as a single-part ``text/plain``
(or ``text/html``) message with a quoted-printable UTF-8 body. Return-Path,
the raw HTML body and attachments are not serialized: this composer targets
replies and notifications, not full MIME reconstruction.
"""

import binascii
from datetime import datetime
from email.header import Header
from email.utils import format_datetime
from typing import List

from mailcore.models import Message

LINESEP = "\n"

# Always emitted by the composer itself, never copied from Message.headers.
SKIPPED_HEADERS = frozenset(
    {"content-type", "content-transfer-encoding", "content-disposition"}
)


class EmailComposeError(Exception):
    """Exception raised for errors during email composition."""


def format_address(email: str) -> str:
    """
    Format a bare address for an address header.

    Examples:
        >>> format_address('user@example.com')
        '<user@example.com>'
    """
    return f"<{email}>"


def format_address_list(addresses: List[str]) -> str:
    """Format addresses into a comma-separated string."""
    return ", ".join(format_address(email) for email in addresses)


def _needs_encoding(value):
    if "=?" in value:
        return True
    return any((char < " " or char > "~") and char != "\t" for char in value)


def encode_header_value(value: str) -> str:
    """RFC 2047 encode ``value`` as UTF-8 when it is not plain printable ASCII."""
    if not _needs_encoding(value):
        return value
    return Header(value, "utf-8").encode(linesep=LINESEP)


def format_date(date: datetime) -> str:
    """
    Format a datetime for the Date header.

    Examples:
        >>> format_date(datetime.fromisoformat("2006-01-02T15:04:05+00:00"))
        'Mon, 02 Jan 2006 15:04:05 +0000 (UTC)'
    """
    if date.tzinfo is None:
        date = date.astimezone()
    zone = date.tzname() or ""
    if not zone.isalpha():
        zone = date.strftime("%z")
    return f"{format_datetime(date)} ({zone})"


def encode_body(body: str) -> bytes:
    """
    Quoted-printable encode a text body as UTF-8.

    An unterminated last line gets a soft line break, so decoders that
    complete it with a newline read back the original text.
    """
    try:
        encoded = binascii.b2a_qp(body.encode("utf-8"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise EmailComposeError(f"quoted-printable encoding failed: {e}") from e
    if encoded and not encoded.endswith(b"\n"):
        encoded += b"=" + LINESEP.encode("ascii")
    return encoded


def compose_message(message: Message) -> bytes:
    """
    Convert a Message to RFC5322 bytes.

    Headers are emitted in a fixed order: From, To, CC, Message-ID, Subject,
    Date, then ``message.headers`` (Content-* entries excluded), then the
    content headers. Lines end with LF; the transport converts them for
    the wire.

    Raises:
        EmailComposeError: If the body cannot be encoded.
    """
    lines = [f"From: {format_address(message.sender)}"]
    if message.to:
        lines.append(f"To: {format_address_list(message.to)}")
    if message.cc:
        lines.append(f"CC: {format_address_list(message.cc)}")
    lines.append(f"Message-ID: {message.id}")
    lines.append(f"Subject: {encode_header_value(message.subject)}")
    lines.append(f"Date: {format_date(message.date)}")

    for name, value in message.headers.items():
        if name.lower() in SKIPPED_HEADERS:
            continue
        lines.append(f"{name}: {encode_header_value(value)}")

    subtype = "html" if message.is_html else "plain"
    lines.append(f"Content-Type: text/{subtype}; charset=utf-8;")
    lines.append("Content-Transfer-Encoding: quoted-printable")

    head = LINESEP.join(lines) + LINESEP + LINESEP
    return head.encode("utf-8") + encode_body(message.body)
