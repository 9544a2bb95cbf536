"""
Tests for Content-Transfer-Encoding decoders.
"""

import base64
import io

import pytest

from mailcore.formats.rfc5322.errors import UnsupportedTransferEncodingError
from mailcore.formats.rfc5322.transfer import (
    CorruptInputError,
    NonAsciiFilter,
    TrailingNewlineAppender,
    open_decoder,
    read_decoded,
)


def decode(label, data, skip_corrupt=False):
    return read_decoded(open_decoder(label, data), skip_corrupt=skip_corrupt)


class TestBase64:
    """Tests for base64 decoding."""

    def test_decode(self):
        """Test decoding a simple base64 payload."""
        assert decode("base64", b"aGVsbG8gd29ybGQ=") == b"hello world"

    def test_label_is_case_insensitive(self):
        """Test that the encoding label is matched case-insensitively."""
        assert decode(" BASE64 ", b"aGVsbG8gd29ybGQ=") == b"hello world"

    def test_line_breaks_ignored(self):
        """Test that line breaks inside the payload are ignored."""
        assert decode("base64", b"aGVs\nbG8g\r\nd29y\nbGQ=\n") == b"hello world"

    def test_stray_8bit_bytes_dropped(self):
        """Test that bytes above 0x7f are dropped before decoding."""
        assert decode("base64", b"aGVs\xbbbG8=") == b"hello"

    def test_missing_padding(self):
        """Test that a final quantum without padding is still decoded."""
        assert decode("base64", b"aGVsbG8gd29ybGQ") == b"hello world"

    def test_padding_between_chunks(self):
        """Test concatenated base64 chunks with inner padding."""
        assert decode("base64", b"aGk=aGk=") == b"hihi"

    def test_corrupt_input_raises(self):
        """Test that an illegal character raises CorruptInputError."""
        with pytest.raises(CorruptInputError) as excinfo:
            decode("base64", b"aGVs!bG8=")
        assert excinfo.value.offset == 4

    def test_corrupt_input_skipped(self):
        """Test that corrupt input can be skipped to recover the rest."""
        assert decode("base64", b"aGVs!bG8=", skip_corrupt=True) == b"hello"

    def test_single_trailing_character(self):
        """Test that a lone trailing character is corrupt but skippable."""
        with pytest.raises(CorruptInputError):
            decode("base64", b"aGVsbG8gZ")
        assert decode("base64", b"aGVsbG8gZ", skip_corrupt=True) == b"hello "

    def test_large_payload(self):
        """Test decoding a payload spanning several read chunks."""
        data = bytes(range(256)) * 200
        encoded = base64.encodebytes(data)
        assert decode("base64", encoded) == data


class TestQuotedPrintable:
    """Tests for quoted-printable decoding."""

    def test_decode(self):
        """Test decoding escapes and soft line breaks."""
        assert decode("quoted-printable", b"caf=C3=A9 =\nsoft\n") == (
            b"caf\xc3\xa9 soft\n"
        )

    def test_missing_final_newline(self):
        """Test that input without a final newline gets one."""
        assert decode("quoted-printable", b"Hello") == b"Hello\n"
        assert decode("quoted-printable", b"caf=C3=A9") == b"caf\xc3\xa9\n"

    def test_trailing_soft_line_break(self):
        """Test that a final soft line break without newline adds nothing."""
        assert decode("quoted-printable", b"abc=") == b"abc"
        assert decode("quoted-printable", b"abc=\n") == b"abc"

    def test_stray_8bit_bytes_dropped(self):
        """Test that raw 8-bit bytes are dropped from quoted-printable input."""
        assert decode("Quoted-Printable", b"caf\xe9=C3=A9\n") == b"caf\xc3\xa9\n"

    def test_equals_escape(self):
        """Test decoding an escaped equals sign."""
        assert decode("quoted-printable", b"a =3D b\n") == b"a = b\n"


class TestIdentityEncodings:
    """Tests for encodings that leave data unchanged."""

    @pytest.mark.parametrize("label", ["", None, "7bit", "8bit", "binary", "7BIT"])
    def test_passthrough(self, label):
        """Test that identity encodings return the input unchanged."""
        assert decode(label, b"caf\xc3\xa9\r\n") == b"caf\xc3\xa9\r\n"


class TestUnsupportedEncoding:
    """Tests for unknown transfer encodings."""

    def test_open_does_not_raise(self):
        """Test that opening a decoder for an unknown label succeeds."""
        reader = open_decoder("x-custom", b"data")
        with pytest.raises(UnsupportedTransferEncodingError):
            reader.read()

    def test_read_raises(self):
        """Test that reading an unknown encoding names the encoding."""
        with pytest.raises(UnsupportedTransferEncodingError) as excinfo:
            decode("x-custom", b"data")
        assert excinfo.value.encoding == "x-custom"
        assert "unsupported transfer encoding: x-custom" in str(excinfo.value)


class TestFilters:
    """Tests for the stream filters used by the decoders."""

    def test_non_ascii_filter(self):
        """Test that the filter keeps only 7-bit bytes."""
        reader = NonAsciiFilter(io.BytesIO(b"a\x80b\xffc"))
        assert reader.read() == b"abc"

    def test_newline_appender_adds_terminator(self):
        """Test that a terminator is appended to unterminated input."""
        reader = TrailingNewlineAppender(io.BytesIO(b"line"))
        assert reader.read() == b"line\n"

    def test_newline_appender_keeps_terminated_input(self):
        """Test that terminated input is left unchanged."""
        reader = TrailingNewlineAppender(io.BytesIO(b"line\n"))
        assert reader.read() == b"line\n"

    def test_newline_appender_empty_input(self):
        """Test that empty input stays empty."""
        reader = TrailingNewlineAppender(io.BytesIO(b""))
        assert reader.read() == b""
