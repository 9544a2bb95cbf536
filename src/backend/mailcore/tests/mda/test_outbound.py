"""
Tests for outbound delivery.
"""

import smtplib
from unittest.mock import MagicMock, patch

import pytest
from django.test import override_settings

from mailcore.formats.rfc5322 import compose_message
from mailcore.mda.outbound import (
    SMTPTransport,
    send_message,
    to_wire_format,
)
from mailcore.models import Message


@pytest.fixture(name="outgoing_message")
def fixture_outgoing_message():
    """Return a message ready to be sent."""
    return Message.create(
        "sender@example.com",
        ["to@example.com"],
        ["cc@example.com"],
        subject="Outbound",
        body="Hello\nWorld",
    )


class TestWireFormat:
    """Tests for line ending conversion."""

    def test_to_wire_format(self):
        """Test that bare LF becomes CRLF and CRLF is kept."""
        assert to_wire_format(b"a\nb\r\nc") == b"a\r\nb\r\nc"


class TestSendMessage:
    """Tests for handing messages to a transport."""

    def test_send(self, outgoing_message):
        """Test that the composed message goes to every recipient."""
        transport = MagicMock()
        transport.send.return_value = {}

        assert send_message(outgoing_message, transport) == {}

        transport.send.assert_called_once_with(
            "sender@example.com",
            ["to@example.com", "cc@example.com"],
            compose_message(outgoing_message),
        )

    def test_recipients_passed_unchanged(self, outgoing_message):
        """Test that sender and recipients reach the transport as given."""
        outgoing_message.sender = "Alice <alice@example.com>"
        outgoing_message.to = ["not an address", "to@example.com"]
        outgoing_message.cc = ["to@example.com"]
        transport = MagicMock()

        send_message(outgoing_message, transport)

        sender, recipients, _ = transport.send.call_args[0]
        assert sender == "Alice <alice@example.com>"
        assert recipients == ["not an address", "to@example.com", "to@example.com"]

    def test_no_recipients(self, outgoing_message):
        """Test that an empty recipient list is still handed to the transport."""
        outgoing_message.to = []
        outgoing_message.cc = []
        transport = MagicMock()

        send_message(outgoing_message, transport)

        transport.send.assert_called_once_with(
            "sender@example.com", [], compose_message(outgoing_message)
        )

    @patch("mailcore.mda.outbound.smtplib.SMTP")
    @override_settings(MTA_OUT_HOST="smtp.test:1025")
    def test_default_transport(self, mock_smtp, outgoing_message):
        """Test that the SMTP transport from settings is used by default."""
        mock_smtp_instance = MagicMock()
        mock_smtp.return_value.__enter__.return_value = mock_smtp_instance

        send_message(outgoing_message)

        mock_smtp.assert_called_once_with("smtp.test", 1025, timeout=10)
        mock_smtp_instance.sendmail.assert_called_once()


class TestSMTPTransport:
    """Tests for SMTP delivery."""

    @patch("mailcore.mda.outbound.smtplib.SMTP")  # Mock SMTP client
    @override_settings(
        MTA_OUT_HOST="smtp.test:1025",
        MTA_OUT_SMTP_USE_TLS=False,
        MTA_OUT_SMTP_USERNAME=None,
        MTA_OUT_SMTP_PASSWORD=None,
    )
    def test_send_success(self, mock_smtp):
        """Test sending over plain SMTP without authentication."""
        mock_smtp_instance = MagicMock()
        mock_smtp_instance.sendmail.return_value = {}
        mock_smtp.return_value.__enter__.return_value = mock_smtp_instance

        refused = SMTPTransport().send(
            "sender@example.com", ["to@example.com"], b"Subject: Hi\n\nBody\n"
        )

        assert refused == {}
        mock_smtp.assert_called_once_with("smtp.test", 1025, timeout=10)
        mock_smtp_instance.ehlo.assert_called_once()
        mock_smtp_instance.starttls.assert_not_called()
        mock_smtp_instance.login.assert_not_called()
        mock_smtp_instance.sendmail.assert_called_once_with(
            "sender@example.com", ["to@example.com"], b"Subject: Hi\r\n\r\nBody\r\n"
        )

    @patch("mailcore.mda.outbound.smtplib.SMTP")
    @override_settings(
        MTA_OUT_HOST="smtp.secure:587",
        MTA_OUT_SMTP_USE_TLS=True,
        MTA_OUT_SMTP_USERNAME="user",
        MTA_OUT_SMTP_PASSWORD="pass",
        MTA_OUT_SMTP_TIMEOUT=30,
    )
    def test_send_tls_and_auth(self, mock_smtp):
        """Test STARTTLS and login when configured."""
        mock_smtp_instance = MagicMock()
        mock_smtp.return_value.__enter__.return_value = mock_smtp_instance

        SMTPTransport().send("sender@example.com", ["to@example.com"], b"Body")

        mock_smtp.assert_called_once_with("smtp.secure", 587, timeout=30)
        mock_smtp_instance.starttls.assert_called_once()
        assert mock_smtp_instance.ehlo.call_count == 2
        mock_smtp_instance.login.assert_called_once_with("user", "pass")

    @patch("mailcore.mda.outbound.smtplib.SMTP")
    def test_explicit_parameters(self, mock_smtp):
        """Test that constructor arguments override settings."""
        mock_smtp_instance = MagicMock()
        mock_smtp.return_value.__enter__.return_value = mock_smtp_instance

        transport = SMTPTransport(host="relay.example.com:2525", timeout=5)
        transport.send("sender@example.com", ["to@example.com"], b"Body")

        mock_smtp.assert_called_once_with("relay.example.com", 2525, timeout=5)

    @patch("mailcore.mda.outbound.smtplib.SMTP")
    @override_settings(MTA_OUT_HOST="smtp.fail:1025")
    def test_send_smtp_failure(self, mock_smtp):
        """Test that SMTP errors are raised to the caller."""
        mock_smtp_instance = MagicMock()
        mock_smtp_instance.sendmail.side_effect = smtplib.SMTPException(
            "Connection failed"
        )
        mock_smtp.return_value.__enter__.return_value = mock_smtp_instance

        with pytest.raises(smtplib.SMTPException, match="Connection failed"):
            SMTPTransport().send("sender@example.com", ["to@example.com"], b"Body")

    @patch("mailcore.mda.outbound.smtplib.SMTP")
    @override_settings(MTA_OUT_HOST="smtp.down:1025")
    def test_connection_failure(self, mock_smtp):
        """Test that socket errors are raised to the caller."""
        mock_smtp.side_effect = ConnectionRefusedError("refused")

        with pytest.raises(OSError):
            SMTPTransport().send("sender@example.com", ["to@example.com"], b"Body")
