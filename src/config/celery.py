"""Celery configuration."""
import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault(
    "DJANGO_SETTINGS_MODULE",
    os.getenv("DJANGO_SETTINGS_MODULE", "config.settings.dev"),
)

app = Celery("targets")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

# Beat schedule
app.conf.beat_schedule = {
    "targets-rollover-recurring": {
        "task": "targets.tasks.rollover_recurring_targets",
        "schedule": crontab(minute=5, hour=0),  # Daily just after midnight
    },
    "targets-expire-lapsed": {
        "task": "targets.tasks.expire_lapsed_targets_task",
        "schedule": crontab(minute=20, hour=0),  # Daily
    },
    "targets-recalculate-active": {
        "task": "targets.tasks.recalculate_active_targets",
        "schedule": crontab(minute=0, hour=2),  # Nightly at 2am
    },
}
