"""
Tests for settings lookup.
"""

from unittest.mock import patch

from mailcore.conf import DEFAULTS, get_setting


class TestGetSetting:
    """Tests for get_setting."""

    def test_configured_value(self, settings):
        """Test that Django settings take precedence."""
        settings.MAILCORE_MAX_MIME_DEPTH = 5
        assert get_setting("MAILCORE_MAX_MIME_DEPTH") == 5

    def test_missing_setting_uses_default(self, settings):
        """Test the fallback for settings the project does not define."""
        del settings.MTA_OUT_SMTP_TIMEOUT
        assert get_setting("MTA_OUT_SMTP_TIMEOUT") == DEFAULTS["MTA_OUT_SMTP_TIMEOUT"]

    def test_unconfigured_django(self):
        """Test that defaults are used outside a configured Django project."""
        with patch("mailcore.conf.settings") as mock_settings:
            mock_settings.configured = False
            assert get_setting("MTA_OUT_HOST") == "127.0.0.1:25"
