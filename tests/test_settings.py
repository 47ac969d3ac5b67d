import importlib
import os
import sys
from unittest import mock

from decouple import UndefinedValueError
from django.conf import settings
from django.test import SimpleTestCase

PRODUCTION_ENV = {
    "SECRET_KEY": "production-secret",
    "ALLOWED_HOSTS": "stock.example.com,api.example.com",
    "POSTGRES_PASSWORD": "postgres-secret",
    "LOG_LEVEL": "INFO",
}


class ProductionSettingsTests(SimpleTestCase):
    def load(self, env):
        sys.modules.pop("pharmacy_stock.settings_production", None)
        self.addCleanup(sys.modules.pop, "pharmacy_stock.settings_production", None)
        with mock.patch.dict(os.environ, env):
            return importlib.import_module("pharmacy_stock.settings_production")

    def test_production_values(self):
        production = self.load(PRODUCTION_ENV)

        self.assertFalse(production.DEBUG)
        self.assertEqual(production.SECRET_KEY, "production-secret")
        self.assertEqual(production.ALLOWED_HOSTS, ["stock.example.com", "api.example.com"])
        self.assertEqual(production.DATABASES["default"]["ENGINE"], "django.db.backends.postgresql")
        self.assertEqual(production.DATABASES["default"]["PASSWORD"], "postgres-secret")
        self.assertEqual(production.MIDDLEWARE[1], "whitenoise.middleware.WhiteNoiseMiddleware")
        self.assertEqual(
            production.STORAGES["staticfiles"]["BACKEND"],
            "whitenoise.storage.CompressedManifestStaticFilesStorage",
        )
        self.assertEqual(
            production.REST_FRAMEWORK["DEFAULT_AUTHENTICATION_CLASSES"],
            ["rest_framework.authentication.SessionAuthentication"],
        )
        self.assertEqual(production.REST_FRAMEWORK["EXCEPTION_HANDLER"], settings.REST_FRAMEWORK["EXCEPTION_HANDLER"])
        self.assertEqual(production.LOGGING["loggers"]["apps"]["level"], "INFO")
        self.assertTrue(production.SESSION_COOKIE_SECURE)

    def test_base_settings_are_left_untouched(self):
        production = self.load(PRODUCTION_ENV)

        self.assertIsNot(production.REST_FRAMEWORK, settings.REST_FRAMEWORK)
        self.assertNotIn("django.request", settings.LOGGING["loggers"])
        self.assertNotIn("whitenoise.middleware.WhiteNoiseMiddleware", settings.MIDDLEWARE)

    def test_secrets_are_required(self):
        env = {key: value for key, value in PRODUCTION_ENV.items() if key != "SECRET_KEY"}
        with mock.patch.dict(os.environ):
            os.environ.pop("SECRET_KEY", None)
            with self.assertRaises(UndefinedValueError):
                self.load(env)
