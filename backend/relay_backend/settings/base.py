"""
Django settings for relay_backend.

Presence data lives only in process memory; there is no database.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-relay-key")

DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"

ALLOWED_HOSTS = ["*"]


INSTALLED_APPS = [
    "daphne",
    "django.contrib.staticfiles",
    "corsheaders",
    "rest_framework",
    "channels",
    "realtime",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "relay_backend.urls"

ASGI_APPLICATION = "relay_backend.asgi.application"

DATABASES = {}

STATIC_URL = "static/"

USE_TZ = True
TIME_ZONE = "UTC"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# ---------------------- CORS ----------------------

CORS_ALLOW_ALL_ORIGINS = True
CORS_ALLOW_METHODS = ["GET", "POST"]
CORS_ALLOW_CREDENTIALS = False


# ---------------------- REST framework ----------------------

# Auth is handled upstream; the relay has no user model.
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "UNAUTHENTICATED_USER": None,
}


# ---------------------- Channels ----------------------

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}


# ---------------------- Relay ----------------------

RIDE_MATCH_RADIUS_METERS = float(os.getenv("RIDE_MATCH_RADIUS_METERS", 5000))
RIDE_DEFAULT_ESTIMATED_ARRIVAL = 10
RIDE_DEFAULT_ESTIMATED_DURATION = 15

PRESENCE_MAX_AGE_SECONDS = int(os.getenv("PRESENCE_MAX_AGE_SECONDS", 300))
PRESENCE_SWEEP_INTERVAL_SECONDS = int(os.getenv("PRESENCE_SWEEP_INTERVAL_SECONDS", 60))
PRESENCE_SWEEP_ENABLED = True


# ---------------------- Logging ----------------------

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "realtime": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "services": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "relay_backend": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
