"""
Exceptions raised while parsing RFC5322 messages.

Parsing is fail-fast: every error aborts the whole parse and names the
offending header, charset or transfer encoding.
"""


class EmailParseError(Exception):
    """Exception raised for errors during email parsing."""


class MalformedHeaderError(EmailParseError):
    """A structured header (Content-Type, Content-Disposition) could not be parsed."""

    def __init__(self, header, value):
        self.header = header
        self.value = value
        super().__init__(f"invalid {header.lower()}: {value!r}")


class MissingRequiredFieldError(EmailParseError):
    """A header the message cannot exist without is absent."""

    def __init__(self, field):
        self.field = field
        super().__init__(f"header {field} not found in message")


class HeaderDecodeError(EmailParseError):
    """A header value could not be rendered as valid text."""


class CharsetDecodeError(EmailParseError):
    """The declared or sniffed charset failed to decode the payload."""

    def __init__(self, charset, reason=""):
        self.charset = charset
        message = f"couldn't decode using charset {charset!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class UnsupportedTransferEncodingError(EmailParseError):
    """The Content-Transfer-Encoding label is not one we know how to decode."""

    def __init__(self, encoding):
        self.encoding = encoding
        super().__init__(f"unsupported transfer encoding: {encoding}")


class BodyDecodeError(EmailParseError):
    """The message body has a structural problem."""

    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"decode body: {reason}")


class MultipartStructureError(BodyDecodeError):
    """Boundary missing, never opened or never closed."""


class TooDeeplyNestedError(BodyDecodeError):
    """Multipart nesting exceeds the configured limit."""

    def __init__(self, depth, limit):
        self.depth = depth
        self.limit = limit
        super().__init__(f"multipart nesting depth {depth} exceeds limit of {limit}")


class HtmlConversionError(EmailParseError):
    """The HTML body could not be rendered as plain text."""
