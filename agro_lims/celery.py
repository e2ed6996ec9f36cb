# agro_lims/celery.py
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "agro_lims.settings")

app = Celery("agro_lims")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
