"""
Django settings for ledger_project.

Everything environment-specific is read from os.environ so the same module
serves local development, CI and workers.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "ledger_core",
]

MIDDLEWARE = []

# ---------- Database ----------
# sqlite for local runs and tests, postgres when LEDGER_DB_ENGINE says so
DB_ENGINE = os.environ.get("LEDGER_DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ.get("LEDGER_DB_NAME", "ledger"),
            "USER": os.environ.get("LEDGER_DB_USER", "ledger"),
            "PASSWORD": os.environ.get("LEDGER_DB_PASSWORD", ""),
            "HOST": os.environ.get("LEDGER_DB_HOST", "localhost"),
            "PORT": os.environ.get("LEDGER_DB_PORT", "5432"),
            "ATOMIC_REQUESTS": False,
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.environ.get("LEDGER_DB_NAME", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "Asia/Kolkata"
USE_I18N = False
USE_TZ = True

# ---------- Ledger core ----------
# CANCELLATION_POSTING: "reverse" inserts mirrored entries, "delete" drops them
LEDGER_CORE = {
    "CANCELLATION_POSTING": os.environ.get("LEDGER_CANCELLATION_POSTING", "reverse"),
    "BALANCE_TOLERANCE": "0.01",
    "DEFAULT_UOM": "PCS",
    "SUGGESTION_LIMIT": 20,
}

# ---------- Celery ----------
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "memory://")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", None)
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", True)
CELERY_TASK_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]

# ---------- Logging ----------
LOG_LEVEL = os.environ.get("LEDGER_LOG_LEVEL", "INFO")

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
        "ledger_core": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "celery": {
            "handlers": ["console"],
            "level": "WARNING",
        },
    },
}
