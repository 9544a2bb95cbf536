"""Django settings for the test suite."""

SECRET_KEY = "mailcore-tests"
INSTALLED_APPS = []
USE_TZ = True

MAILCORE_MAX_MIME_DEPTH = 32

MTA_OUT_HOST = "127.0.0.1:25"
MTA_OUT_SMTP_USE_TLS = False
MTA_OUT_SMTP_USERNAME = None
MTA_OUT_SMTP_PASSWORD = None
MTA_OUT_SMTP_TIMEOUT = 10
