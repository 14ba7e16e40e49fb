# config/settings/test.py
from .base import *  # noqa

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

HC_UNIT_MINUTES = 15
HC_MAX_GENERATION_DAYS = 730
HC_CANCEL_REASON_MIN_LENGTH = 10

TIME_ZONE = "America/New_York"

LOGGING["loggers"]["hc_core"]["level"] = "WARNING"  # noqa: F405
