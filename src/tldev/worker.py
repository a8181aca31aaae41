from celery import Celery
from celery.schedules import crontab

from tldev.config import settings

celery_app = Celery("tldev", broker=settings.celery_broker_url)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

celery_app.conf.beat_schedule = {
    "generate-tips": {
        "task": "tldev.tasks.generate_tips.generate_tips",
        "schedule": crontab(minute=0, hour="*/4"),
    },
    "enrich-draft-tips": {
        "task": "tldev.tasks.enrich_tips.enrich_draft_tips",
        "schedule": crontab(minute="*/10"),
    },
    # Repeats inside a slot are no-ops; the push ledger decides.
    "send-daily-push": {
        "task": "tldev.tasks.send_daily_push.send_daily_push",
        "schedule": crontab(minute="*/5"),
    },
}

celery_app.autodiscover_tasks(["tldev.tasks"])
