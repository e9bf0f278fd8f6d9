"""
tasks/notification_tasks.py
Periodic maintenance of the notification ledger.

Reads already skip expired rows, so the purge is idempotent and
missing a run only leaves dead rows around a little longer.
"""

import logging
from datetime import datetime, timezone

from celery import Task
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from services.notification.service import expired_notifications_stmt
from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def sync_database_url(url: str) -> str:
    """Map the async driver in DATABASE_URL to its blocking counterpart."""
    return url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "+pysqlite")


# ── Base Task with DB session ──────────────────────────────────────────────────

class DatabaseTask(Task):
    """Base class that provides a synchronous DB session for tasks."""
    abstract = True
    _sessionmaker = None

    def get_session(self):
        # Celery runs tasks synchronously; one engine per worker process
        if DatabaseTask._sessionmaker is None:
            engine = create_engine(sync_database_url(settings.DATABASE_URL), pool_pre_ping=True)
            DatabaseTask._sessionmaker = sessionmaker(bind=engine)
        return DatabaseTask._sessionmaker()


def purge_expired(db, now: datetime = None) -> int:
    result = db.execute(expired_notifications_stmt(now or datetime.now(timezone.utc)))
    db.commit()
    return result.rowcount or 0


# ── Periodic / Scheduled Tasks ────────────────────────────────────────────────

@celery_app.task(bind=True, base=DatabaseTask, max_retries=3)
def purge_expired_notifications(self):
    """Beat task: hard-delete notifications whose expires_at has passed."""
    db = self.get_session()
    try:
        purged = purge_expired(db)
        logger.info(f"Purged {purged} expired notifications")
        return purged
    except Exception as e:
        db.rollback()
        logger.exception(f"purge_expired_notifications failed: {e}")
        raise self.retry(exc=e, countdown=60)
    finally:
        db.close()
