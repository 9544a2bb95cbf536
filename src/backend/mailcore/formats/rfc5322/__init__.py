"""
RFC5322 email format package.

This package provides functionality for parsing, decoding and composing
email messages according to RFC5322 and the MIME RFCs.
"""

from .charsets import normalize_charset
from .composer import EmailComposeError, compose_message
from .errors import (
    BodyDecodeError,
    CharsetDecodeError,
    EmailParseError,
    HeaderDecodeError,
    HtmlConversionError,
    MalformedHeaderError,
    MissingRequiredFieldError,
    MultipartStructureError,
    TooDeeplyNestedError,
    UnsupportedTransferEncodingError,
)
from .headers import decode_header, extract_addresses, parse_date
from .parser import decode_body, read_message
from .transfer import open_decoder

__all__ = [
    # Parser functions
    "read_message",
    "decode_body",
    "decode_header",
    "extract_addresses",
    "normalize_charset",
    "open_decoder",
    "parse_date",
    # Composer functions
    "compose_message",
    # Errors
    "EmailParseError",
    "MalformedHeaderError",
    "MissingRequiredFieldError",
    "HeaderDecodeError",
    "CharsetDecodeError",
    "UnsupportedTransferEncodingError",
    "BodyDecodeError",
    "MultipartStructureError",
    "TooDeeplyNestedError",
    "HtmlConversionError",
    "EmailComposeError",
]
