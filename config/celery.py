"""
Celery do gateway ICORE (fila kra_journaling).
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("icore")

# Chaves com prefixo CELERY_ em config/settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
