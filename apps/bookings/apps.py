from django.apps import AppConfig


class BookingsConfig(AppConfig):
    name = 'apps.bookings'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        from . import handlers  # noqa: F401
