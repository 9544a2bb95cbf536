"""
RFC5322 email parser.

This module turns a raw message into a ``mailcore.models.Message``:
headers are decoded (RFC 2047), addresses extracted, and the MIME tree
walked to collect the plain text body, the HTML body and attachments.

Parsing is fail-fast on structural problems (malformed Content-Type or
Content-Disposition, missing From, broken multipart boundaries, charset
failures) and lenient on byte-level corruption inside parts.
"""

import io
import logging
from typing import BinaryIO, Callable, Optional, Union

from mailcore.conf import get_setting
from mailcore.models import Message, Part, make_id, now

from ..htmltext import html_to_text as default_html_to_text
from .charsets import normalize_charset
from .errors import (
    BodyDecodeError,
    EmailParseError,
    HeaderDecodeError,
    HtmlConversionError,
    MissingRequiredFieldError,
    TooDeeplyNestedError,
)
from .headers import decode_header, extract_addresses, parse_date
from .mime import HeaderSet, iter_multipart, parse_media_type, split_message
from .transfer import CorruptInputError, open_decoder, read_decoded

logger = logging.getLogger(__name__)

# Headers promoted to typed Message fields, excluded from Message.headers.
PROMOTED_HEADERS = frozenset(
    {"message-id", "subject", "date", "return-path", "from", "to", "cc"}
)

DEFAULT_SUBJECT = "No subject"


def _find_filename(headers, params):
    filename = params.get("name", "")
    if filename:
        return filename
    disposition = headers.get("Content-Disposition")
    if not disposition:
        return ""
    _, disposition_params = parse_media_type(disposition, "Content-Disposition")
    return disposition_params.get("filename", "")


def decode_body(
    body: bytes, headers: HeaderSet, message: Message, depth: int = 0
) -> None:
    """
    Walk one MIME part, accumulating its content into ``message``.

    Leaves with a file name become ``Part`` attachments (transfer-decoded
    bytes, no charset decoding). ``text/plain`` and ``text/html`` leaves
    are appended to ``message.body`` and ``message.html``. Multipart parts
    are walked recursively, in order. Any other leaf is ignored.

    Args:
        body: Raw (still transfer-encoded) part body.
        headers: The part's HeaderSet.
        message: Message being populated, mutated in place.
        depth: Number of enclosing multipart levels.

    Raises:
        TooDeeplyNestedError: Beyond MAILCORE_MAX_MIME_DEPTH levels.
        MalformedHeaderError: Unparseable Content-Type or Content-Disposition.
        EmailParseError: Any other decoding failure, from this part or a sub-part.
    """
    limit = get_setting("MAILCORE_MAX_MIME_DEPTH")
    if depth > limit:
        raise TooDeeplyNestedError(depth, limit)

    content_type = headers.get("Content-Type") or "text/plain"
    media_type, params = parse_media_type(content_type, "Content-Type")
    transfer_encoding = headers.get("Content-Transfer-Encoding")

    filename = _find_filename(headers, params)
    if filename:
        try:
            name = decode_header(filename)
        except HeaderDecodeError as e:
            raise HeaderDecodeError(f"decode filename: {e}") from e
        try:
            data = read_decoded(open_decoder(transfer_encoding, io.BytesIO(body)))
        except CorruptInputError as e:
            raise BodyDecodeError(f"read attachment: {e}") from e
        logger.debug("Found attachment %r (%d bytes)", name, len(data))
        message.parts.append(Part(name=name, data=data))
        return

    if media_type in ("text/plain", "text/html"):
        data = read_decoded(
            open_decoder(transfer_encoding, io.BytesIO(body)), skip_corrupt=True
        )
        text = normalize_charset(data, params.get("charset", ""))
        if media_type == "text/html":
            message.html += text
        else:
            message.body += text
        return

    if media_type.startswith("multipart/"):
        parts = iter_multipart(body, params.get("boundary", ""))
        try:
            for part_headers, part_body in parts:
                decode_body(part_body, part_headers, message, depth + 1)
        finally:
            parts.close()
        return

    logger.debug("Ignoring %s part without a file name", media_type)


def _header_addresses(headers, name):
    try:
        return extract_addresses(headers.get(name))
    except HeaderDecodeError as e:
        raise HeaderDecodeError(f"parse {name.lower()}: {e}") from e


def _decode_extra_headers(headers):
    """Decode non-promoted headers, joining repeated names with a space."""
    decoded = {}
    names = {}
    for name, value in headers.items():
        key = name.lower()
        if key in PROMOTED_HEADERS:
            continue
        try:
            text = decode_header(value)
        except HeaderDecodeError as e:
            raise HeaderDecodeError(f"decode header {name}: {e}") from e
        name = names.setdefault(key, name)
        existing = decoded.get(name, "")
        decoded[name] = f"{existing} {text}" if existing else text
    return decoded


def read_message(
    raw_email: Union[bytes, BinaryIO],
    html_to_text: Optional[Callable[[str], str]] = None,
) -> Message:
    """
    Parse a raw RFC5322 message.

    Args:
        raw_email: Raw message as bytes, or a binary file object.
        html_to_text: Callable rendering an HTML string as plain text, used
            when the message has an HTML body but no plain text one.
            Defaults to ``mailcore.formats.htmltext.html_to_text``.

    Returns:
        The parsed Message.

    Raises:
        EmailParseError: If the message cannot be parsed; the concrete
            subclass names the failing header, charset or structure.
    """
    if raw_email is not None and not isinstance(raw_email, (bytes, bytearray)):
        raw_email = raw_email.read()
    if not raw_email:
        raise EmailParseError("Input must be non-empty bytes.")

    headers, body = split_message(bytes(raw_email))

    message_id = headers.get("Message-Id") or make_id()

    date = parse_date(headers.get("Date"))
    if date is None:
        date = now()

    subject = decode_header(headers.get("Subject")) or DEFAULT_SUBJECT

    return_path = _header_addresses(headers, "Return-Path")
    sender = _header_addresses(headers, "From")
    to = _header_addresses(headers, "To")
    cc = _header_addresses(headers, "Cc")

    if not sender or not sender[0]:
        raise MissingRequiredFieldError("From")

    message = Message(
        id=message_id,
        return_path=return_path[0] if return_path else "",
        sender=sender[0],
        to=to,
        cc=cc,
        subject=subject,
        date=date,
        headers=_decode_extra_headers(headers),
    )

    decode_body(body, headers, message)

    if not message.body and message.html:
        converter = html_to_text or default_html_to_text
        try:
            message.body = converter(message.html)
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise HtmlConversionError(f"convert html body: {e}") from e
        message.is_html = True

    logger.debug(
        "Parsed message %s: %d chars of text, %d chars of html, %d attachments",
        message.id,
        len(message.body),
        len(message.html),
        len(message.parts),
    )
    return message
