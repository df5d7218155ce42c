"""
Django settings for the bank registry service.
"""

from pathlib import Path

from decouple import config

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = config("DJANGO_SECRET_KEY", default="change-me")
DEBUG = config("DJANGO_DEBUG", cast=bool, default=False)
def split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


ALLOWED_HOSTS = split_csv(config("DJANGO_ALLOWED_HOSTS", default="localhost,127.0.0.1,[::1],testserver"))
if DEBUG and config("DJANGO_ALLOW_ALL_HOSTS_IN_DEBUG", cast=bool, default=True):
    # In local development, allow LAN access even when host IP changes.
    ALLOWED_HOSTS = ["*"]

# Security hardening toggles (set via environment for production).
SECURE_SSL_REDIRECT = config("DJANGO_SECURE_SSL_REDIRECT", cast=bool, default=False)
SESSION_COOKIE_SECURE = config("DJANGO_SESSION_COOKIE_SECURE", cast=bool, default=not DEBUG)
CSRF_COOKIE_SECURE = config("DJANGO_CSRF_COOKIE_SECURE", cast=bool, default=not DEBUG)
SECURE_HSTS_SECONDS = config(
    "DJANGO_SECURE_HSTS_SECONDS",
    cast=int,
    default=0,
)
SECURE_CONTENT_TYPE_NOSNIFF = config(
    "DJANGO_SECURE_CONTENT_TYPE_NOSNIFF",
    cast=bool,
    default=True,
)
X_FRAME_OPTIONS = config("DJANGO_X_FRAME_OPTIONS", default="DENY")
if config("DJANGO_SECURE_USE_X_FORWARDED_PROTO", cast=bool, default=False):
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")


INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "corsheaders",
    "banks.apps.BanksConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

WSGI_APPLICATION = "config.wsgi.application"

DB_ENGINE = config("DJANGO_DB_ENGINE", default="sqlite")
if DB_ENGINE == "postgresql":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": config("POSTGRES_DB", default="bank_registry"),
            "USER": config("POSTGRES_USER", default="bank_registry"),
            "PASSWORD": config("POSTGRES_PASSWORD", default="bank_registry"),
            "HOST": config("POSTGRES_HOST", default="db"),
            "PORT": config("POSTGRES_PORT", default=5432, cast=int),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": config("SQLITE_PATH", default=str(BASE_DIR / "db.sqlite3")),
        }
    }


LANGUAGE_CODE = "en"
TIME_ZONE = "Europe/Berlin"
USE_I18N = False
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedStaticFilesStorage",
    }
}
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": config("API_ANON_THROTTLE_RATE", default="600/minute"),
    },
    "EXCEPTION_HANDLER": "config.exceptions.api_exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}


SPECTACULAR_SETTINGS = {
    "TITLE": "Bank Registry API",
    "DESCRIPTION": "IBAN validation and bank directory lookups",
    "VERSION": "0.1.0",
}

CORS_ALLOWED_ORIGINS = split_csv(
    config(
        "CORS_ALLOWED_ORIGINS",
        default="http://localhost:3000,http://127.0.0.1:3000",
    )
)

LOG_LEVEL = config("LOG_LEVEL", default="INFO")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} {levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "banks": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}

CELERY_BROKER_URL = config("CELERY_BROKER_URL", default="redis://redis:6379/0")
CELERY_RESULT_BACKEND = config("CELERY_RESULT_BACKEND", default="redis://redis:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE

BANK_REGISTRY_DATABASE = config("BANK_REGISTRY_DATABASE", default="default")
BANK_REGISTRY_COUNTRY = config("BANK_REGISTRY_COUNTRY", default="DE")
BANK_SORT_CODE_LENGTH = config("BANK_SORT_CODE_LENGTH", cast=int, default=8)
BANK_SEARCH_MAX_LIMIT = config("BANK_SEARCH_MAX_LIMIT", cast=int, default=50)
BANK_BATCH_LOOKUP_MAX_SIZE = config("BANK_BATCH_LOOKUP_MAX_SIZE", cast=int, default=100)
BANK_DIRECTORY_FILE = config(
    "BANK_DIRECTORY_FILE",
    default=str(BASE_DIR / "data" / "bundesbank" / "blz.csv"),
)
BANK_DIRECTORY_ENCODING = config("BANK_DIRECTORY_ENCODING", default="latin-1")
BANK_IMPORT_BATCH_SIZE = config("BANK_IMPORT_BATCH_SIZE", cast=int, default=1000)
BANK_DIRECTORY_REFRESH_SECONDS = config("BANK_DIRECTORY_REFRESH_SECONDS", cast=int, default=0)

CELERY_BEAT_SCHEDULE = {}
if BANK_DIRECTORY_REFRESH_SECONDS > 0:
    CELERY_BEAT_SCHEDULE["refresh-bank-directory"] = {
        "task": "banks.tasks.import_bank_directory",
        "schedule": BANK_DIRECTORY_REFRESH_SECONDS,
    }
