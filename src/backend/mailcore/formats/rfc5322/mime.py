"""
MIME structure: header/body split, structured header parameters and
multipart boundaries.
"""

import io
import re
from email.parser import BytesHeaderParser
from email.policy import compat32
from typing import Dict, Iterator, Tuple

from flanker.mime.message.headers import encodedword, parametrized

from .errors import MalformedHeaderError, MultipartStructureError

# RFC 2045 token
_TOKEN = r"[!#$%&'*+\-.0-9A-Z^_`a-z{|}~]+"

_MEDIA_TYPE_RE = re.compile(rf"{_TOKEN}(?:/{_TOKEN})?")
_HEADER_LINE_RE = re.compile(rb"^[!-9;-~]+[ \t]*:")
_FOLDING_RE = re.compile(r"\r?\n[ \t]+")


class HeaderSet:
    """Header fields in received order, looked up case-insensitively."""

    def __init__(self, fields=()):
        self._fields = list(fields)

    @classmethod
    def parse(cls, header_block):
        """Parse a raw header block (no body) into unfolded fields."""
        parsed = BytesHeaderParser(policy=compat32).parsebytes(header_block)
        return cls(
            (name, _FOLDING_RE.sub(" ", value).strip())
            for name, value in parsed.raw_items()
        )

    def get(self, name, default=""):
        """Return the first value of ``name``."""
        wanted = name.lower()
        for field, value in self._fields:
            if field.lower() == wanted:
                return value
        return default

    def get_all(self, name):
        wanted = name.lower()
        return [value for field, value in self._fields if field.lower() == wanted]

    def items(self):
        return list(self._fields)

    def __contains__(self, name):
        wanted = name.lower()
        return any(field.lower() == wanted for field, _ in self._fields)

    def __len__(self):
        return len(self._fields)


def split_message(raw: bytes) -> Tuple[HeaderSet, bytes]:
    """
    Split raw bytes into headers and body at the first empty line.

    Input whose first line is not a header field is all body. Input
    without an empty line is all headers.

    Returns:
        Tuple of (HeaderSet, body bytes)
    """
    position = 0
    while position < len(raw):
        newline = raw.find(b"\n", position)
        line_end = len(raw) if newline < 0 else newline + 1
        line = raw[position:line_end]
        if line in (b"\n", b"\r\n"):
            return HeaderSet.parse(raw[:position]), raw[line_end:]
        if position == 0 and not _HEADER_LINE_RE.match(line):
            return HeaderSet(), raw
        position = line_end
    return HeaderSet.parse(raw), b""


def _is_extended(parameter):
    return not parametrized.is_old_style(parameter) and parametrized.is_encoded(
        parameter
    )


def _position(parameter):
    """Continuation index of a parameter, None for a single value."""
    if parametrized.is_old_style(parameter):
        return None
    _, part, _ = parameter[1]
    return int(part.strip("*")) if part else None


def _join_parameter(parts):
    singles = [p for p in parts if _position(p) is None]
    if singles:
        # A plain value wins over its RFC 2231 extended form.
        plain = [p for p in singles if not _is_extended(p)]
        return parametrized.concatenate((plain or singles)[:1])
    return parametrized.concatenate(sorted(parts, key=_position))


def parse_media_type(
    value: str, header: str = "Content-Type"
) -> Tuple[str, Dict[str, str]]:
    """
    Parse a Content-Type or Content-Disposition value.

    Args:
        value: Raw header value, e.g. ``text/plain; charset="utf-8"``
        header: Header name, reported in errors.

    Returns:
        Tuple of (lower-cased media type, parameters dict with lower-cased
        keys). RFC 2231 extended and continued parameters and RFC 2047
        encoded parameter values are decoded.

    Raises:
        MalformedHeaderError: If the value has no valid media type, a
            parameter without ``=``, an unbalanced quote, a bare value
            that is not a token or a repeated parameter.
    """
    media_type, rest = parametrized.split(encodedword.unfold(value))
    if media_type is None or not _MEDIA_TYPE_RE.fullmatch(media_type):
        raise MalformedHeaderError(header, value)

    grouped = {}
    seen = set()
    parameter, rest = parametrized.match_parameter(rest)
    while parameter:
        key = parametrized.get_key(parameter)
        identity = (key, _position(parameter), _is_extended(parameter))
        if identity in seen:
            raise MalformedHeaderError(header, value)
        seen.add(identity)
        grouped.setdefault(key, []).append(parameter)
        parameter, rest = parametrized.match_parameter(rest.lstrip(" \t;"))

    if rest.strip(" \t;"):
        raise MalformedHeaderError(header, value)

    return media_type, {key: _join_parameter(parts) for key, parts in grouped.items()}


def _finish_part(lines):
    data = b"".join(lines)
    # The line break before a delimiter belongs to the delimiter.
    if data.endswith(b"\r\n"):
        data = data[:-2]
    elif data.endswith(b"\n"):
        data = data[:-1]
    return split_message(data)


def iter_multipart(
    body: bytes, boundary: str
) -> Iterator[Tuple[HeaderSet, bytes]]:
    """
    Yield ``(HeaderSet, body bytes)`` for every part of a multipart body.

    Raises:
        MultipartStructureError: If the boundary is empty, never opens or
            is never closed. Parts preceding a missing close delimiter
            are yielded before the error is raised.
    """
    if not boundary:
        raise MultipartStructureError("multipart message without boundary")

    delimiter = b"--" + boundary.encode("utf-8", "surrogateescape")
    close_delimiter = delimiter + b"--"

    current = None
    for line in io.BytesIO(body):
        marker = line.rstrip(b" \t\r\n")
        if marker == close_delimiter:
            if current is not None:
                yield _finish_part(current)
            return
        if marker == delimiter:
            if current is not None:
                yield _finish_part(current)
            current = []
            continue
        if current is not None:
            current.append(line)

    if current is None:
        raise MultipartStructureError(
            "Multipart message without starting boundary"
        )
    raise MultipartStructureError("Multipart message without closing boundary")
