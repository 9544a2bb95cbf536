"""
Content-Transfer-Encoding decoding.

``open_decoder`` wraps a binary stream in the reader matching a transfer
encoding label. Stray 8-bit bytes inside base64 and quoted-printable runs
(left behind by broken gateways) are dropped before decoding instead of
failing the part.
"""

import binascii
import io
import logging
import re
from typing import BinaryIO, Optional, Union

from .errors import UnsupportedTransferEncodingError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192

IDENTITY_ENCODINGS = frozenset({"", "7bit", "8bit", "binary"})

_NON_ASCII = bytes(range(0x80, 0x100))
_BASE64_IGNORED = b" \t\r\n\x0b\x0c"
_BASE64_INVALID_RE = re.compile(rb"[^A-Za-z0-9+/=]")


class CorruptInputError(ValueError):
    """Transfer-encoded input that cannot be decoded at some position.

    The reader skips past the offending input, so reading may continue.
    """

    def __init__(self, offset, reason="illegal base64 data"):
        self.offset = offset
        super().__init__(f"{reason} at input byte {offset}")


class FailingReader(io.RawIOBase):
    """A stream whose every read raises ``error``."""

    def __init__(self, error):
        super().__init__()
        self._error = error

    def readable(self):
        return True

    def readinto(self, buffer):
        raise self._error


class _TransformReader(io.RawIOBase):
    """Base for readers producing output from a source stream chunk by chunk.

    Subclasses implement ``_fill``, which consumes source input and appends
    output to ``_pending`` (possibly nothing), setting ``_exhausted`` once
    the source has no more data.
    """

    def __init__(self, source):
        super().__init__()
        self._source = source
        self._pending = bytearray()
        self._exhausted = False

    def readable(self):
        return True

    def readinto(self, buffer):
        while not self._pending and not self._exhausted:
            self._fill()
        count = min(len(buffer), len(self._pending))
        buffer[:count] = self._pending[:count]
        del self._pending[:count]
        return count

    def _fill(self):
        raise NotImplementedError


class NonAsciiFilter(_TransformReader):
    """Drops every byte above 0x7f."""

    def _fill(self):
        chunk = self._source.read(CHUNK_SIZE)
        if not chunk:
            self._exhausted = True
            return
        self._pending += chunk.translate(None, _NON_ASCII)


class TrailingNewlineAppender(_TransformReader):
    """Appends ``terminator`` at end of stream unless the input ends with a newline."""

    def __init__(self, source, terminator=b"\n"):
        super().__init__(source)
        self._terminator = terminator
        self._last_byte = None

    def _fill(self):
        chunk = self._source.read(CHUNK_SIZE)
        if not chunk:
            self._exhausted = True
            if self._last_byte is not None and self._last_byte != ord("\n"):
                self._pending += self._terminator
            return
        self._last_byte = chunk[-1]
        self._pending += chunk


class Base64Reader(_TransformReader):
    """Decodes base64, raising ``CorruptInputError`` on bad input and resuming after it.

    Whitespace is ignored. A truncated final quantum of two or three
    characters is still decoded.
    """

    def __init__(self, source):
        super().__init__(source)
        self._encoded = bytearray()
        self._carry = b""
        self._offset = 0

    def _fill(self):
        chunk = self._carry or self._source.read(CHUNK_SIZE)
        self._carry = b""
        if not chunk:
            self._exhausted = True
            self._decode_tail()
            return

        chunk = chunk.translate(None, _BASE64_IGNORED)
        invalid = _BASE64_INVALID_RE.search(chunk)
        if invalid is None:
            self._encoded += chunk
            self._offset += len(chunk)
            self._decode_complete()
            return

        self._encoded += chunk[: invalid.start()]
        self._carry = chunk[invalid.end() :]
        self._offset += invalid.start()
        self._decode_complete()
        offset = self._offset
        self._offset += 1
        raise CorruptInputError(offset)

    def _decode_complete(self):
        usable = len(self._encoded) - len(self._encoded) % 4
        if not usable:
            return
        block = bytes(self._encoded[:usable])
        del self._encoded[:usable]
        start = self._offset - len(self._encoded) - usable

        if b"=" not in block:
            self._pending += binascii.a2b_base64(block)
            return
        # Padding may appear mid-stream when encoders concatenate chunks.
        corrupt = None
        for index in range(0, len(block), 4):
            try:
                self._pending += binascii.a2b_base64(block[index : index + 4])
            except binascii.Error:
                if corrupt is None:
                    corrupt = start + index
        if corrupt is not None:
            raise CorruptInputError(corrupt)

    def _decode_tail(self):
        tail = bytes(self._encoded)
        self._encoded.clear()
        if not tail:
            return
        if len(tail) == 1:
            raise CorruptInputError(self._offset - 1, "truncated base64 data")
        try:
            self._pending += binascii.a2b_base64(tail + b"=" * (4 - len(tail)))
        except binascii.Error as e:
            raise CorruptInputError(self._offset - len(tail)) from e


class QuotedPrintableReader(_TransformReader):
    """Decodes quoted-printable one complete line at a time."""

    def __init__(self, source):
        super().__init__(source)
        self._line = bytearray()

    def _fill(self):
        chunk = self._source.read(CHUNK_SIZE)
        if not chunk:
            self._exhausted = True
            if self._line:
                self._pending += binascii.a2b_qp(bytes(self._line))
                self._line.clear()
            return

        self._line += chunk
        end = self._line.rfind(b"\n")
        if end < 0:
            return
        complete = bytes(self._line[: end + 1])
        del self._line[: end + 1]
        self._pending += binascii.a2b_qp(complete)


def open_decoder(
    label: Optional[str], source: Union[BinaryIO, bytes]
) -> BinaryIO:
    """
    Return a stream yielding ``source`` with its transfer encoding removed.

    Args:
        label: Content-Transfer-Encoding value, matched case-insensitively.
        source: Binary file object or bytes.

    Returns:
        A readable binary stream. For an unsupported label the stream
        raises ``UnsupportedTransferEncodingError`` on first read.
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)

    encoding = (label or "").strip().lower()
    if encoding == "base64":
        return Base64Reader(NonAsciiFilter(source))
    if encoding == "quoted-printable":
        return QuotedPrintableReader(
            TrailingNewlineAppender(NonAsciiFilter(source))
        )
    if encoding in IDENTITY_ENCODINGS:
        return source
    return FailingReader(UnsupportedTransferEncodingError(label))


def read_decoded(reader: BinaryIO, skip_corrupt: bool = False) -> bytes:
    """
    Read ``reader`` to the end.

    With ``skip_corrupt``, corrupt input is logged and reading continues,
    recovering whatever can still be decoded.
    """
    chunks = []
    while True:
        try:
            chunk = reader.read(CHUNK_SIZE)
        except CorruptInputError as e:
            if not skip_corrupt:
                raise
            logger.warning("Skipping corrupt transfer-encoded input: %s", e)
            continue
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)
