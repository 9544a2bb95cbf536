"""
Header value decoding: RFC 2047 encoded words, address lists and dates.
"""

import email.errors
import email.header
import enum
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional, Union

from .charsets import is_valid_text, lookup_charset, normalize_charset
from .errors import CharsetDecodeError, HeaderDecodeError

logger = logging.getLogger(__name__)


def _decode_word_charset(charset, payload):
    # RFC 2231 allows a language suffix: =?utf-8*en?q?...?=
    label = charset.split("*", 1)[0]
    codec = lookup_charset(label)
    if codec is None:
        logger.warning("Unknown charset %r in encoded word, sniffing", label)
        return normalize_charset(payload, "")
    try:
        return payload.decode(codec, errors="replace")
    except UnicodeError as e:
        raise HeaderDecodeError(f"charset {label!r}: {e}") from e


def decode_encoded_words(raw: Union[str, bytes]) -> bytes:
    """
    Replace every RFC 2047 encoded word in ``raw`` with its UTF-8 bytes.

    Literal runs between words are kept as the bytes they were received
    as, so the result may still hold 8-bit data in an unknown charset.
    Whitespace separating two adjacent encoded words is dropped. A value
    whose words cannot be decoded is returned unchanged.
    """
    if isinstance(raw, str):
        raw = raw.encode("utf-8", "surrogateescape")

    # latin-1 maps every byte to one code point and back, so literal runs
    # survive email.header untouched.
    try:
        words = email.header.decode_header(raw.decode("latin-1"))
    except email.errors.HeaderParseError as e:
        logger.warning("Keeping malformed encoded words literally: %s", e)
        return raw

    chunks = []
    for word, charset in words:
        if isinstance(word, str):
            word = word.encode("latin-1")
        if charset is None:
            chunks.append(word)
        else:
            chunks.append(_decode_word_charset(charset, word).encode("utf-8"))
    return b"".join(chunks)


def resniff_header(assembled: bytes) -> str:
    """
    Second pass for headers that are not valid UTF-8 after word decoding.

    The whole value goes through charset sniffing once; if that still does
    not produce valid text the header is rejected.
    """
    try:
        text = normalize_charset(assembled, "")
    except CharsetDecodeError as e:
        raise HeaderDecodeError(f"decode header: {e}") from e
    if not is_valid_text(text):
        raise HeaderDecodeError("decode header: non-utf8 byte left after decode")
    return text


def decode_header(raw: Union[str, bytes, None]) -> str:
    """
    Decode a raw header value into text.

    Args:
        raw: Header value as received, ``str`` (possibly holding
            surrogate-escaped 8-bit bytes) or ``bytes``.

    Returns:
        The decoded value. A value without encoded words that is already
        valid text is returned unchanged.

    Raises:
        HeaderDecodeError: If the value cannot be rendered as text.
    """
    if not raw:
        return ""
    assembled = decode_encoded_words(raw)
    try:
        return assembled.decode("utf-8")
    except UnicodeDecodeError:
        return resniff_header(assembled)


class AddressScanState(enum.Enum):
    """Position of the address scanner relative to angle brackets."""

    OUTSIDE = "outside"
    INSIDE = "inside"


def extract_addresses(raw_header: Optional[str]) -> List[str]:
    """
    Pull bare addresses out of an address header.

    Examples:
        >>> extract_addresses("Name <a@b.com>, Name2 <c@d.com>")
        ['a@b.com', 'c@d.com']
        >>> extract_addresses("a@b.com, c@d.com")
        ['a@b.com', 'c@d.com']
    """
    if not raw_header:
        return []

    header = decode_header(raw_header)

    addresses = []
    current = []
    state = AddressScanState.OUTSIDE
    for char in header:
        if state is AddressScanState.OUTSIDE:
            if char == "<":
                state = AddressScanState.INSIDE
            continue
        if char == "<":
            # Nested or repeated open bracket: keep only the innermost address.
            current = []
        elif char == ">":
            addresses.append("".join(current))
            current = []
            state = AddressScanState.OUTSIDE
        else:
            current.append(char)

    if not addresses:
        return "".join(header.split()).split(",")
    return addresses


def parse_date(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse date string from email header.

    Args:
        date_str: Date string in RFC5322 format

    Returns:
        Timezone-aware datetime, or None if parsing fails
    """
    if not date_str:
        return None

    try:
        date = parsedate_to_datetime(date_str)
    except (TypeError, ValueError) as e:
        logger.warning("Could not parse date string '%s': %s", date_str, e)
        return None

    if date.tzinfo is None:
        # "-0000" means UTC with no information about the local zone
        date = date.replace(tzinfo=timezone.utc)
    return date
