import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("salon_booking")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Lapsed claim tokens -> expired, cascade to the next candidate
    "sweep-expired-waitlist-offers": {
        "task": "waitlist.sweep_expired_offers",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # One reminder per pending offer
    "sweep-waitlist-offer-reminders": {
        "task": "waitlist.sweep_offer_reminders",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Freed slots nobody is offering, e.g. after a broker outage
    "sweep-open-waitlist-slots": {
        "task": "waitlist.sweep_open_slots",
        "schedule": 120.0,
        "options": {"expires": 110},
    },
    # Lapsed customer cooldowns
    "reactivate-waitlist-cooldowns": {
        "task": "waitlist.reactivate_cooldowns",
        "schedule": 300.0,
        "options": {"expires": 280},
    },
}
