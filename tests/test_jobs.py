"""
Tests for the background jobs (run directly, without APScheduler).
"""
from datetime import date, datetime, time
from unittest.mock import patch

from booking.jobs import scheduler
from booking.records import AppointmentStatus
from booking.services import store

from conftest import FUTURE_DAY, add_appointment


class TestPromotionJob:

    def test_promotes_elapsed_approved(self, db, session_factory, user):
        add_appointment(db, user.id, date(2000, 1, 1), time(9, 0), time(10, 0), AppointmentStatus.approved)
        add_appointment(db, user.id, FUTURE_DAY, time(9, 0), time(10, 0), AppointmentStatus.approved)

        with patch.object(scheduler, "SessionLocal", session_factory):
            scheduler.promotion_job()

        db.expire_all()
        statuses = sorted(r.status.value for r in store.list_appointment_rows(db))
        assert statuses == ["approved", "completed"]


class TestReminderJob:

    def test_reminds_approved_in_target_hour(self, db, session_factory, user, other_user):
        add_appointment(db, user.id, FUTURE_DAY, time(10, 0), time(11, 0), AppointmentStatus.approved)
        add_appointment(db, other_user.id, FUTURE_DAY, time(10, 0), time(11, 0), AppointmentStatus.pending)
        add_appointment(db, user.id, FUTURE_DAY, time(14, 0), time(15, 0), AppointmentStatus.approved)

        with patch.object(scheduler, "SessionLocal", session_factory), \
                patch.object(scheduler, "local_now", return_value=datetime(2099, 1, 4, 10, 20)), \
                patch.object(scheduler, "send_reminder") as sent:
            scheduler.reminder_job()

        assert sent.call_count == 1
        contact, ap = sent.call_args.args
        assert contact == "+15550001111"
        assert ap.start_time == time(10, 0)
        assert sent.call_args.kwargs["when"] == "24h"
