"""Test settings - uses SQLite for fast local testing."""
import os

os.environ.setdefault("SECRET_KEY", "test-only-secret-key-3f9a7c1e5b2d8046a1f7e9c3b5d2a8064f1e7c9b")
os.environ.setdefault("DEBUG", "True")

from .base import *  # noqa: E402,F401,F403

DEBUG = True

# Use SQLite for tests (no PostgreSQL dependency)
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}
DATABASES["default"]["ATOMIC_REQUESTS"] = False

# Faster password hashing in tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Redis cache in tests
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

# Disable Celery in tests
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

# Disable logging noise during tests
LOGGING["handlers"].pop("file", None)  # noqa: F405
LOGGING["root"]["level"] = "WARNING"  # noqa: F405
LOGGING["loggers"]["targets"]["handlers"] = []  # noqa: F405
LOGGING["loggers"]["targets"]["propagate"] = True  # noqa: F405
LOGGING["loggers"]["targets"]["level"] = "WARNING"  # noqa: F405
