from django.apps import AppConfig


class RateLimitConfig(AppConfig):
    name = 'apps.ratelimit'
    label = 'ratelimit'
    default_auto_field = 'django.db.models.BigAutoField'
