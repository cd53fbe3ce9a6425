"""Development settings.

Debug on, all hosts allowed and email printed to the console. Without
Kaspi credentials the payment gateway answers with emulated responses.
Do not use these settings in production!
"""

from .base import *  # noqa: F401,F403

# Enable debug mode for development
DEBUG = True

# Allow all hosts in development
ALLOWED_HOSTS = ['*']

# Use console email backend during development
EMAIL_BACKEND = 'django.core.mail.backends.console.EmailBackend'
