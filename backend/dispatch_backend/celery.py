"""Celery application for background booking processing."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "dispatch_backend.settings.settings")

app = Celery("dispatch_backend")

# All CELERY_* keys in Django settings configure the app
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
