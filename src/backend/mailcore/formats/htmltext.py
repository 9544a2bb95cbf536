"""Plain text rendering of HTML message bodies."""

import html2text


def html_to_text(html: str) -> str:
    """Render an HTML string as plain text, without line wrapping."""
    converter = html2text.HTML2Text()
    converter.ignore_images = True
    converter.body_width = 0
    return converter.handle(html).strip()
