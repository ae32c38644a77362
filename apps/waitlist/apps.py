from django.apps import AppConfig


class WaitlistConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.waitlist'
    verbose_name = 'Waitlist'

    def ready(self) -> None:
        from . import handlers  # noqa: F401
