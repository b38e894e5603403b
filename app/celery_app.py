from celery import Celery
from celery.schedules import crontab
from app.config import settings

celery_app = Celery(
    "bizdomains",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.broker_connection_retry_on_startup = True

celery_app.conf.task_routes = {
    "domains.*": {"queue": "domains"}
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # a lost worker must not drop a scheduled poll
    task_acks_late=True,
)

# Cron-style sweep that re-enqueues stale monitoring chains
celery_app.conf.beat_schedule = {
    "domains-monitor-all-pending": {
        "task": "domains.monitor_all_pending",
        "schedule": crontab(minute=f"*/{settings.DOMAIN_MONITOR_INTERVAL_MINUTES}"),
    },
}

celery_app.autodiscover_tasks(['app.tasks'])

# Explicitly import tasks to ensure they are registered
import app.tasks.domain_tasks  # noqa: F401, E402
