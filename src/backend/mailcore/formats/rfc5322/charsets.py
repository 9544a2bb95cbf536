"""
Charset lookup, sniffing and decoding.

Mail in the wild routinely mislabels or omits its charset. Labels are
resolved the way browsers resolve them (an ``iso-8859-1`` label really
means windows-1252), absent or unknown labels are sniffed from the
content, and bytes the chosen codec cannot map are dropped instead of
failing the whole message.
"""

import codecs
import logging
import re
from typing import Optional, Union

import charset_normalizer

from .errors import CharsetDecodeError

logger = logging.getLogger(__name__)

# Labels whose meaning in mail differs from the Python codec of the same name.
CHARSET_ALIASES = {
    "ascii": "cp1252",
    "us-ascii": "cp1252",
    "iso-8859-1": "cp1252",
    "iso8859-1": "cp1252",
    "iso_8859-1": "cp1252",
    "latin1": "cp1252",
    "latin-1": "cp1252",
    "iso-8859-9": "cp1254",
    "tis-620": "cp874",
    "gb2312": "gbk",
    "x-gbk": "gbk",
    "euc-kr": "cp949",
    "ks_c_5601-1987": "cp949",
    "x-sjis": "shift_jis",
    "utf8": "utf-8",
}

BYTE_ORDER_MARKS = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)

FALLBACK_CHARSET = "cp1252"

# Below this size, or above this mess ratio, a detector guess is no better
# than the fallback.
SNIFF_MIN_LENGTH = 64
SNIFF_MAX_CHAOS = 0.1

# Lone surrogates are not Unicode scalar values and cannot be encoded as UTF-8.
_NON_SCALAR_RE = re.compile("[\ud800-\udfff]")


def lookup_charset(label: Optional[str]) -> Optional[str]:
    """
    Resolve a charset label to a Python text codec name.

    Returns None when the label is empty, unknown, or names a codec that
    does not decode bytes to text (``base64``, ``rot13``...).
    """
    if not label:
        return None
    name = label.strip().strip("\"'").lower()
    name = CHARSET_ALIASES.get(name, name)
    try:
        info = codecs.lookup(name)
    except LookupError:
        return None
    if not getattr(info, "_is_text_encoding", True):
        return None
    return info.name


def sniff_charset(data: bytes) -> str:
    """
    Guess the charset of a ``text/plain`` payload from its bytes.

    Byte order marks and valid UTF-8 are trusted outright. Otherwise the
    detector result is used only for inputs long enough to judge and
    decoded with little mess; anything else is taken as windows-1252.
    """
    for bom, name in BYTE_ORDER_MARKS:
        if data.startswith(bom):
            return name
    try:
        data.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        pass
    if len(data) < SNIFF_MIN_LENGTH:
        return FALLBACK_CHARSET
    match = charset_normalizer.from_bytes(data).best()
    if match is None or match.chaos > SNIFF_MAX_CHAOS:
        return FALLBACK_CHARSET
    return match.encoding


def strip_non_scalar(text: str) -> str:
    """Drop every code point that cannot appear in valid UTF-8."""
    return _NON_SCALAR_RE.sub("", text)


def is_valid_text(text: str) -> bool:
    return _NON_SCALAR_RE.search(text) is None


def normalize_charset(
    data: Union[bytes, str], label: Optional[str] = ""
) -> str:
    """
    Decode ``data`` to text using ``label``, sniffing when the label is unknown.

    Args:
        data: Raw payload. ``str`` input is treated as the bytes it was
            read from (surrogate-escaped bytes are restored).
        label: Charset label from the message, may be empty.

    Returns:
        Valid text; undecodable bytes are silently dropped.

    Raises:
        CharsetDecodeError: If the codec itself fails.
    """
    if isinstance(data, str):
        data = data.encode("utf-8", "surrogateescape")

    charset = lookup_charset(label)
    if charset is None:
        if label:
            logger.warning("Unknown charset %r, sniffing content instead", label)
        charset = sniff_charset(data)
        logger.debug("Sniffed charset %s for %d bytes", charset, len(data))

    try:
        text = data.decode(charset, errors="ignore")
    except (UnicodeError, LookupError) as e:
        raise CharsetDecodeError(charset, str(e)) from e

    return strip_non_scalar(text)
