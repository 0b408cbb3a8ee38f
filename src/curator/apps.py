"""App configuration for the curator module."""

from django.apps import AppConfig


class CuratorConfig(AppConfig):
    """Connect the curator app with Django's app registry."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'curator'
