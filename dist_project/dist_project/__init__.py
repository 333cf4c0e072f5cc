# Celery instance is defined in dist_project/celery.py
# It is imported here so shared_task decorators bind to it on Django startup
from .celery import celery_app

# 'from dist_project import *', only exports celery_app
__all__ = ("celery_app",)
