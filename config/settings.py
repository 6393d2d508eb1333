from pathlib import Path
import os
import sentry_sdk
from sentry_sdk.integrations.django import DjangoIntegration
from sentry_sdk.integrations.celery import CeleryIntegration

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY","dev-only")
DEBUG = os.getenv("DJANGO_DEBUG", "1") == "1"
APPEND_SLASH = True

ALLOWED_HOSTS = ["*", "localhost", "127.0.0.1"]


INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.admin",

    "corsheaders",
    "rest_framework",
    "django_filters",
    "drf_spectacular",

    "commons",
    "taxpayers",
    "devices",
    "fiscal",
]


MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "commons.middleware.TraceIdMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]


ROOT_URLCONF = "config.urls"

CORS_ALLOW_ALL_ORIGINS = True
CORS_EXPOSE_HEADERS = ["X-Trace-Id"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("PGDATABASE","icore"),
        "USER": os.getenv("PGUSER","postgres"),
        "PASSWORD": os.getenv("PGPASSWORD",""),
        "HOST": os.getenv("PGHOST","127.0.0.1"),
        "PORT": os.getenv("PGPORT","5432"),
        "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        "TEST": {
            "NAME": "test_icore",
        },
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "taxpayers.authentication.ApiKeyAuthentication",
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 50,
}

from datetime import timedelta
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=7),
    "SIGNING_KEY": SECRET_KEY,
    "AUTH_HEADER_TYPES": ("Bearer",),
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "Africa/Nairobi"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"

SPECTACULAR_SETTINGS = {
    "TITLE": "ICORE KRA Fiscal Gateway API",
    "VERSION": "1.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

sentry_sdk.init(
    dsn=os.getenv("SENTRY_DSN",""),
    integrations=[DjangoIntegration(), CeleryIntegration()],
    traces_sample_rate=0.1,
    send_default_pii=False,
)

# =============================
# KRA / eTIMS
# =============================
KRA_ENVIRONMENT = os.getenv("KRA_ENVIRONMENT", "sandbox")
KRA_API_SANDBOX_BASE_URL = os.getenv("KRA_API_SANDBOX_BASE_URL", "https://etims-sbx.kra.go.ke")
KRA_API_PRODUCTION_BASE_URL = os.getenv("KRA_API_PRODUCTION_BASE_URL", "https://etims.kra.go.ke")
KRA_VSCU_BRIDGE_BASE_URL = os.getenv("KRA_VSCU_BRIDGE_BASE_URL", "http://127.0.0.1:8088")
KRA_QR_CODE_BASE_URL = os.getenv("KRA_QR_CODE_BASE_URL", "https://etims.kra.go.ke/receipt_validation")
KRA_API_KEY = os.getenv("KRA_API_KEY", "")

# Perfil estrito (tempo real, dispositivo) e geral (back-office)
KRA_STRICT_TIMEOUT_MS = int(os.getenv("KRA_STRICT_TIMEOUT_MS", "1000"))
KRA_GENERAL_TIMEOUT_MS = int(os.getenv("KRA_GENERAL_TIMEOUT_MS", "60000"))

# Corpo bruto do fio nas respostas de erro (modo diagnóstico)
KRA_EXPOSE_RAW_RESPONSES = os.getenv("KRA_EXPOSE_RAW_RESPONSES", "1" if DEBUG else "0") == "1"

KRA_JOURNALING_QUEUE = "kra_journaling"

ICORE_API_KEY_HEADER = os.getenv("ICORE_API_KEY_HEADER", "X-API-Key")

# =============================
# Celery
# =============================
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 300
CELERY_TASK_DEFAULT_QUEUE = "default"
CELERY_TASK_ROUTES = {
    "fiscal.tasks.journal_transaction": {"queue": KRA_JOURNALING_QUEUE},
}
CELERY_WORKER_PREFETCH_MULTIPLIER = 1

# =============================
# 🧱 Templates
# =============================
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "icore-default",
    }
}

REST_FRAMEWORK.update({
    "DEFAULT_THROTTLE_CLASSES": ["rest_framework.throttling.UserRateThrottle"],
    "DEFAULT_THROTTLE_RATES": {"user": "600/min"},
})

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "class": "pythonjsonlogger.json.JsonFormatter",
        },
        "simple": {
            "format": "{levelname} {asctime} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "level": "INFO",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": True,
        },
        "icore.request": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "icore.fiscal": {
            "handlers": ["console"],
            "level": "DEBUG",
            "propagate": False,
        },
        "icore.devices": {
            "handlers": ["console"],
            "level": "DEBUG",
            "propagate": False,
        },
    },
}

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_HSTS_SECONDS = 63072000
SECURE_CONTENT_TYPE_NOSNIFF = True
