# booking/jobs/scheduler.py
import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..config import settings
from ..records import AppointmentStatus
from ..services import store
from ..services.clock import local_now
from ..services.notifications import send_reminder

logger = logging.getLogger(__name__)

def promotion_job():
    """approved cuyo fin ya pasó → completed, aunque nadie abra la app."""
    db: Session = SessionLocal()
    try:
        n = store.promote_all(db, local_now())
        if n:
            logger.info("promotion_job: %d citas completadas", n)
    finally:
        db.close()

def reminder_job():
    """Avisa de citas approved que empiezan dentro de la hora objetivo."""
    now = local_now()
    target = now + timedelta(hours=settings.REMINDER_HOURS)
    start = target.replace(minute=0, second=0, microsecond=0)
    end = start + timedelta(hours=1)

    db: Session = SessionLocal()
    try:
        rows = store.list_appointment_rows(db, day=start.date(), status=[AppointmentStatus.approved])
        for row in rows:
            ap = store.appointment_record(row)
            if start <= ap.starts_at < end:
                send_reminder(row.user.phone if row.user else None, ap, when=f"{settings.REMINDER_HOURS}h")
    finally:
        db.close()

def start_scheduler():
    scheduler = BackgroundScheduler(timezone=settings.TIMEZONE)
    scheduler.add_job(promotion_job, IntervalTrigger(minutes=settings.PROMOTION_INTERVAL_MIN))
    scheduler.add_job(reminder_job, CronTrigger(minute=0))  # cada hora
    scheduler.start()
    return scheduler
