""" Run workers with "celery -A dist_project worker -l info"
    and the periodic reconciliation with "celery -A dist_project beat -l info".
    The -A dist_project means:
    Import dist_project/__init__.py →
    which exposes celery_app →  now Celery knows what to run. """
from __future__ import annotations
import os
from celery import Celery

# ensure Django settings are set for Celery
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "dist_project.settings")

# name should match your project package
celery_app = Celery("dist_project")

# read config from Django settings, using CELERY_ prefix
celery_app.config_from_object("django.conf:settings", namespace="CELERY")

# autoload tasks from installed apps (finance_core.tasks)
celery_app.autodiscover_tasks()
