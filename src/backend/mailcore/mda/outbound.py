"""Handles outbound email delivery: composing messages and handing them to an MTA."""

import logging
import re
import smtplib
from typing import Dict, List, Optional, Tuple

from mailcore.conf import get_setting
from mailcore.formats.rfc5322 import compose_message
from mailcore.models import Message

logger = logging.getLogger(__name__)

_BARE_LINE_END_RE = re.compile(rb"\r?\n")


def to_wire_format(payload: bytes) -> bytes:
    """Convert LF line endings to the CRLF required on the wire."""
    return _BARE_LINE_END_RE.sub(b"\r\n", payload)


class SMTPTransport:
    """
    Delivers composed messages to an SMTP relay.

    Connection parameters default to the MTA_OUT_* settings. Failures are
    logged and re-raised; retrying is left to the caller.
    """

    def __init__(
        self, host=None, use_tls=None, username=None, password=None, timeout=None
    ):
        smtp_host, smtp_port_str = (host or get_setting("MTA_OUT_HOST")).rsplit(":", 1)
        self.host = smtp_host
        self.port = int(smtp_port_str)
        self.use_tls = (
            get_setting("MTA_OUT_SMTP_USE_TLS") if use_tls is None else use_tls
        )
        self.username = username or get_setting("MTA_OUT_SMTP_USERNAME")
        self.password = password or get_setting("MTA_OUT_SMTP_PASSWORD")
        self.timeout = timeout or get_setting("MTA_OUT_SMTP_TIMEOUT")

    def send(
        self, sender: str, recipients: List[str], payload: bytes
    ) -> Dict[str, Tuple[int, bytes]]:
        """
        Send ``payload`` from ``sender`` to ``recipients``.

        Returns:
            Dict of refused recipients, as returned by ``smtplib.SMTP.sendmail``.

        Raises:
            smtplib.SMTPException, OSError: Delivery failed.
        """
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
                client.ehlo()
                if self.use_tls:
                    client.starttls()
                    client.ehlo()  # Re-EHLO after STARTTLS

                if self.username and self.password:
                    client.login(self.username, self.password)

                refused = client.sendmail(sender, recipients, to_wire_format(payload))
        except smtplib.SMTPException as e:
            logger.error("SMTP error sending to %s:%d: %s", self.host, self.port, e)
            raise
        except OSError as e:  # Catches socket errors etc.
            logger.error(
                "Socket/OS error sending to %s:%d: %s", self.host, self.port, e
            )
            raise

        logger.info(
            "Sent message from %s to %d recipients via %s:%d",
            sender,
            len(recipients),
            self.host,
            self.port,
        )
        return refused


def send_message(message: Message, transport: Optional[SMTPTransport] = None):
    """
    Compose ``message`` and hand it to ``transport``.

    The envelope sender is ``message.sender`` and the recipients are
    ``message.to`` followed by ``message.cc``, passed through unchanged.

    Args:
        message: The Message to send.
        transport: Object with a ``send(sender, recipients, payload)``
            method. Defaults to an SMTPTransport built from settings.

    Returns:
        Whatever the transport's ``send`` returns.

    Raises:
        EmailComposeError: If the message cannot be composed.
    """
    payload = compose_message(message)
    if transport is None:
        transport = SMTPTransport()
    return transport.send(message.sender, [*message.to, *message.cc], payload)
