from celery import Celery
from celery.schedules import crontab

from ledger.core.config import settings

GENERATE_TASK = "ledger.services.recurring_jobs.generate_all_workspaces"

celery_app = Celery("ledger", broker=settings.redis_url, backend=settings.redis_url)

# Generation is idempotent per up_to_date; a redelivered task creates nothing new
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=24 * 3600,
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

# ─── Scheduled tasks ──────────────────────────
celery_app.conf.beat_schedule = {
    "generate-recurring-transactions-daily": {
        "task": GENERATE_TASK,
        "schedule": crontab(hour=settings.recurring_generation_hour_utc, minute=0),
    },
}

celery_app.conf.include = ["ledger.services.recurring_jobs"]
