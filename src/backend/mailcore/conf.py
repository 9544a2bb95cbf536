"""
Settings lookup.

Values come from ``django.conf.settings`` when the host project has
configured Django, and fall back to the defaults below otherwise, so the
parser and composer stay usable outside a Django process.
"""

from django.conf import settings

DEFAULTS = {
    "MAILCORE_MAX_MIME_DEPTH": 32,
    "MTA_OUT_HOST": "127.0.0.1:25",
    "MTA_OUT_SMTP_USE_TLS": False,
    "MTA_OUT_SMTP_USERNAME": None,
    "MTA_OUT_SMTP_PASSWORD": None,
    "MTA_OUT_SMTP_TIMEOUT": 10,
}


def get_setting(name):
    """Return the configured value of ``name``, or its library default."""
    if not settings.configured:
        return DEFAULTS[name]
    return getattr(settings, name, DEFAULTS[name])
