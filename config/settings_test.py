from .settings import *  # noqa

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# Celery síncrono nos testes; retries rodam dentro do próprio apply()
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

KRA_EXPOSE_RAW_RESPONSES = False
KRA_API_KEY = ""

REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []

# caplog precisa que os loggers do projeto propaguem até o root
for _name in ("icore.request", "icore.fiscal", "icore.devices"):
    LOGGING["loggers"][_name]["propagate"] = True
