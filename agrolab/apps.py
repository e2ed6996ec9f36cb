# agrolab/apps.py

from django.apps import AppConfig


class AgrolabConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "agrolab"
    verbose_name = "Agro laboratory"

    def ready(self):
        from . import signals  # noqa
