from django.apps import AppConfig


class SalonsConfig(AppConfig):
    name = 'apps.salons'
    default_auto_field = 'django.db.models.BigAutoField'
