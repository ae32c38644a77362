"""Development settings for the salon booking project.

Extends the base settings with debug mode, permissive hosts and the
console email backend. Do not use these settings in production!
"""

from .base import *  # noqa: F401,F403

DEBUG = True

ALLOWED_HOSTS = ['*']

EMAIL_BACKEND = 'django.core.mail.backends.console.EmailBackend'

# Human-readable log lines instead of JSON
LOGGING["formatters"]["json"]["processor"] = structlog.dev.ConsoleRenderer()  # noqa: F405
