"""
Production settings for pharmacy_stock.

Batch writes take row locks and the stock reports read from a REPEATABLE READ
snapshot, so production always runs on PostgreSQL. Static files for the admin
are served by whitenoise.
"""
import copy

import psycopg2.extensions
from decouple import Csv, config

from .settings import *  # noqa: F401,F403


DEBUG = False

SECRET_KEY = config("SECRET_KEY")
ALLOWED_HOSTS = config("ALLOWED_HOSTS", cast=Csv())
CSRF_TRUSTED_ORIGINS = config("CSRF_TRUSTED_ORIGINS", default="", cast=Csv())

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": config("POSTGRES_DB", default="pharmacy_stock"),
        "USER": config("POSTGRES_USER", default="pharmacy_stock"),
        "PASSWORD": config("POSTGRES_PASSWORD"),
        "HOST": config("POSTGRES_HOST", default="127.0.0.1"),
        "PORT": config("POSTGRES_PORT", default="5432"),
        "CONN_MAX_AGE": config("POSTGRES_CONN_MAX_AGE", default=60, cast=int),
        # Mutations rely on SELECT ... FOR UPDATE plus the version column;
        # only the report snapshot raises its own isolation level.
        "OPTIONS": {
            "isolation_level": psycopg2.extensions.ISOLATION_LEVEL_READ_COMMITTED,
        },
    }
}

MIDDLEWARE = [
    MIDDLEWARE[0],
    "whitenoise.middleware.WhiteNoiseMiddleware",
    *MIDDLEWARE[1:],
]

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
}

# Browser clients use the session; basic auth stays a development convenience.
REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
}

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_SSL_REDIRECT = config("SECURE_SSL_REDIRECT", default=True, cast=bool)
SECURE_HSTS_SECONDS = config("SECURE_HSTS_SECONDS", default=31536000, cast=int)
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

STOCK_CONFLICT_RETRIES = config("STOCK_CONFLICT_RETRIES", default=5, cast=int)

LOGGING = copy.deepcopy(LOGGING)
LOGGING["loggers"]["apps"]["level"] = config("LOG_LEVEL", default="WARNING")
LOGGING["loggers"]["django.request"] = {
    "handlers": ["console"],
    "level": "ERROR",
    "propagate": False,
}
