import os
from celery import Celery
from celery.schedules import crontab
from celery.utils.log import get_task_logger

from .database import SessionLocal
from .services import bookings

# purpose: background janitor for booking drafts
# status: active

logger = get_task_logger(__name__)

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
DRAFT_RETENTION_DAYS = int(os.getenv("DRAFT_RETENTION_DAYS", "30"))

celery_app = Celery("tasks", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

celery_app.conf.beat_schedule = {
    "purge-expired-drafts": {
        "task": "labbook.tasks.purge_expired_drafts",
        "schedule": crontab(hour=2, minute=0),
    },
}


@celery_app.task(name="labbook.tasks.purge_expired_drafts")
def purge_expired_drafts(retention_days: int | None = None) -> int:
    db = SessionLocal()
    try:
        purged = bookings.purge_expired_drafts(
            db, retention_days if retention_days is not None else DRAFT_RETENTION_DAYS
        )
    finally:
        db.close()
    logger.info("Purged %d expired drafts", purged)
    return purged
