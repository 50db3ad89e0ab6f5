"""
Celery application for background notifications and periodic sweeps.

Start a worker and the beat scheduler with:
    celery -A config worker -l info
    celery -A config beat -l info
"""
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('medreserve')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
