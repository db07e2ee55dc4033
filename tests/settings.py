"""Django settings for django-fulfillment tests."""

SECRET_KEY = "test-secret-key-not-for-production"

DEBUG = True

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django_fulfillment",
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True

# Capture notifications instead of logging them
FULFILLMENT_EVENT_DISPATCHER = "tests.testapp.dispatchers.RecordingDispatcher"

# No global validators by default in tests
FULFILLMENT_GLOBAL_VALIDATORS = []
