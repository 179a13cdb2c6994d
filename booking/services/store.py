# booking/services/store.py
"""
Capa de persistencia: lee filas, las convierte a registros, llama al núcleo
(slots/lifecycle) y escribe de vuelta lo que el núcleo decidió.

No hay lock entre el re-chequeo de disponibilidad y el INSERT: dos sesiones
que revisan antes de que cualquiera haga commit pueden reservar el mismo slot.
"""
from __future__ import annotations
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..config import settings
from ..errors import InvalidConfiguration, InvalidTransition, NotFound, StoreError, ValidationError
from ..records import (
    AppointmentRecord,
    AppointmentStatus,
    BookingCandidate,
    Decision,
    MeetingRecord,
    ModeDetails,
    RescheduleProposal,
    RescheduleRecord,
    RescheduleStatus,
    UserRole,
    WorkingHours,
)
from . import lifecycle
from .clock import parse_hhmm

logger = logging.getLogger(__name__)

ADMIN_INBOX = "admin"

# ====== Conversión fila ↔ registro ======
def appointment_record(row: models.Appointment) -> AppointmentRecord:
    return AppointmentRecord(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        description=row.description,
        date=row.appointment_date,
        start_time=row.start_time,
        end_time=row.end_time,
        status=row.status,
        details=ModeDetails(row.appointment_mode, row.appointment_url, row.appointment_password),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

def reschedule_record(row: models.RescheduleRequest) -> RescheduleRecord:
    return RescheduleRecord(
        id=row.id,
        appointment_id=row.appointment_id,
        requested_by=row.requested_by_user_id,
        requested_date=row.requested_date,
        requested_start_time=row.requested_start_time,
        requested_end_time=row.requested_end_time,
        reason=row.reason,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

def meeting_record(row: models.Meeting) -> MeetingRecord:
    return MeetingRecord(
        id=row.id,
        title=row.title,
        description=row.description,
        date=row.meeting_date,
        start_time=row.start_time,
        end_time=row.end_time,
        created_by=row.created_by_user_id,
        participants=frozenset(u.id for u in row.participants),
        details=ModeDetails(row.meeting_mode, row.meeting_url, row.meeting_password),
    )

def _write_appointment(row: models.Appointment, rec: AppointmentRecord) -> None:
    # El estado sólo avanza: mismo estado o una transición válida
    if row.status is not None and rec.status != row.status and not lifecycle.can_transition(row.status, rec.status):
        raise InvalidTransition(f"Cannot move appointment from {row.status.value} to {rec.status.value}.")
    row.user_id = rec.user_id
    row.title = rec.title
    row.description = rec.description
    row.appointment_date = rec.date
    row.start_time = rec.start_time
    row.end_time = rec.end_time
    row.status = rec.status
    row.appointment_mode = rec.details.mode
    row.appointment_url = rec.details.url
    row.appointment_password = rec.details.password

def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Commit falló, rollback: %s", e)
        raise StoreError() from e

# ====== Working hours ======
def _default_working_hours() -> models.WorkingHoursRow:
    return models.WorkingHoursRow(
        start_time=parse_hhmm(settings.DEFAULT_DAY_START),
        end_time=parse_hhmm(settings.DEFAULT_DAY_END),
        break_start_time=parse_hhmm(settings.DEFAULT_BREAK_START),
        break_end_time=parse_hhmm(settings.DEFAULT_BREAK_END),
        slot_duration=settings.DEFAULT_SLOT_MINUTES,
    )

def _working_hours_row(db: Session) -> models.WorkingHoursRow:
    row = db.execute(select(models.WorkingHoursRow).order_by(models.WorkingHoursRow.id).limit(1)).scalar_one_or_none()
    if row is None:
        row = _default_working_hours()
        db.add(row)
        _commit(db)
        db.refresh(row)
        logger.info("Working hours sembradas con valores por defecto (id=%s)", row.id)
    return row

def working_hours_record(row: models.WorkingHoursRow) -> WorkingHours:
    return WorkingHours(
        day_start=row.start_time,
        day_end=row.end_time,
        break_start=row.break_start_time,
        break_end=row.break_end_time,
        slot_minutes=row.slot_duration,
    )

def get_working_hours(db: Session) -> WorkingHours:
    """Se relee en cada llamada: nunca cachear, el admin puede cambiarla."""
    return working_hours_record(_working_hours_row(db))

def update_working_hours(
    db: Session,
    day_start: Optional[time] = None,
    day_end: Optional[time] = None,
    break_start: Optional[time] = None,
    break_end: Optional[time] = None,
    slot_minutes: Optional[int] = None,
) -> WorkingHours:
    row = _working_hours_row(db)
    current = working_hours_record(row)
    proposed = WorkingHours(
        day_start=day_start or current.day_start,
        day_end=day_end or current.day_end,
        break_start=break_start or current.break_start,
        break_end=break_end or current.break_end,
        slot_minutes=slot_minutes if slot_minutes is not None else current.slot_minutes,
    )
    if not proposed.is_valid():
        raise InvalidConfiguration()
    row.start_time = proposed.day_start
    row.end_time = proposed.day_end
    row.break_start_time = proposed.break_start
    row.break_end_time = proposed.break_end
    row.slot_duration = proposed.slot_minutes
    _commit(db)
    logger.info("Working hours actualizadas: %s", proposed)
    return proposed

# ====== Citas: lectura ======
def _get_appointment_row(db: Session, appointment_id: int) -> models.Appointment:
    row = db.get(models.Appointment, appointment_id)
    if row is None:
        raise NotFound("Appointment not found.")
    return row

def list_appointment_rows(
    db: Session,
    day: Optional[date] = None,
    status: Optional[Sequence[AppointmentStatus]] = None,
    user_id: Optional[int] = None,
) -> List[models.Appointment]:
    q = select(models.Appointment)
    if day is not None:
        q = q.where(models.Appointment.appointment_date == day)
    if status:
        q = q.where(models.Appointment.status.in_(list(status)))
    if user_id is not None:
        q = q.where(models.Appointment.user_id == user_id)
    q = q.order_by(models.Appointment.appointment_date.asc(), models.Appointment.start_time.asc())
    return list(db.execute(q).scalars().all())

def appointments_for_date(db: Session, day: date) -> List[AppointmentRecord]:
    """Citas pending/approved del día, leídas en el momento (sin caché)."""
    rows = list_appointment_rows(db, day=day, status=[AppointmentStatus.pending, AppointmentStatus.approved])
    return [appointment_record(r) for r in rows]

def load_appointments(
    db: Session,
    now: datetime,
    user_id: Optional[int] = None,
    status: Optional[AppointmentStatus] = None,
) -> List[AppointmentRecord]:
    """
    Carga citas y aplica promote_elapsed; las que pasan a completed se guardan.
    El filtro por estado se aplica después de promover.
    """
    rows = list_appointment_rows(db, user_id=user_id)
    records = [appointment_record(r) for r in rows]
    promoted = lifecycle.promote_elapsed(records, now)

    changed = 0
    for row, before, after in zip(rows, records, promoted):
        if after.status != before.status:
            _write_appointment(row, after)
            changed += 1
    if changed:
        _commit(db)
        logger.info("Citas promovidas a completed: %d", changed)

    if status is not None:
        promoted = lifecycle.list_by_status(promoted, status)
    return promoted

def promote_all(db: Session, now: datetime) -> int:
    """Sólo mira approved: lo que usa el job en segundo plano."""
    rows = list_appointment_rows(db, status=[AppointmentStatus.approved])
    records = [appointment_record(r) for r in rows]
    changed = 0
    for row, before, after in zip(rows, records, lifecycle.promote_elapsed(records, now)):
        if after.status != before.status:
            _write_appointment(row, after)
            changed += 1
    if changed:
        _commit(db)
    return changed

def get_appointment(db: Session, appointment_id: int) -> AppointmentRecord:
    return appointment_record(_get_appointment_row(db, appointment_id))

# ====== Citas: escritura ======
def book_appointment(db: Session, candidate: BookingCandidate, now: Optional[datetime] = None) -> AppointmentRecord:
    """Re-lee las citas del día justo antes de escribir y delega la decisión."""
    lifecycle.validate_candidate(candidate)
    if candidate.user_id is not None and db.get(models.User, candidate.user_id) is None:
        raise NotFound("User not found.")
    config = get_working_hours(db)
    current = appointments_for_date(db, candidate.date) if candidate.date else []
    rec = lifecycle.submit_booking(candidate, current, config, now=now)

    row = models.Appointment()
    row.status = None
    _write_appointment(row, rec)
    db.add(row)
    _commit(db)
    db.refresh(row)
    logger.info("Cita creada id=%s user=%s %s %s", row.id, row.user_id, row.appointment_date, row.start_time)
    return appointment_record(row)

def decide_appointment(db: Session, appointment_id: int, decision: Decision) -> AppointmentRecord:
    row = _get_appointment_row(db, appointment_id)
    rec = lifecycle.decide(appointment_record(row), decision)
    _write_appointment(row, rec)
    _commit(db)
    return appointment_record(row)

def reschedule_appointment(
    db: Session,
    appointment_id: int,
    new_date: date,
    new_start_time: time,
    new_end_time: time,
    details: Optional[ModeDetails] = None,
) -> AppointmentRecord:
    row = _get_appointment_row(db, appointment_id)
    rec = lifecycle.admin_reschedule(appointment_record(row), new_date, new_start_time, new_end_time, details)
    _write_appointment(row, rec)
    _commit(db)
    logger.info("Cita %s reprogramada por admin → %s %s-%s", row.id, rec.date, rec.start_time, rec.end_time)
    return appointment_record(row)

# ====== Reprogramaciones ======
def _get_reschedule_row(db: Session, request_id: int) -> models.RescheduleRequest:
    row = db.get(models.RescheduleRequest, request_id)
    if row is None:
        raise NotFound("Reschedule request not found.")
    return row

def _has_pending_request(db: Session, appointment_id: int) -> bool:
    return db.execute(
        select(models.RescheduleRequest.id)
        .where(models.RescheduleRequest.appointment_id == appointment_id)
        .where(models.RescheduleRequest.status == RescheduleStatus.pending)
        .limit(1)
    ).first() is not None

def create_reschedule_request(
    db: Session,
    appointment_id: int,
    proposal: RescheduleProposal,
    now: datetime,
) -> RescheduleRecord:
    appt = _get_appointment_row(db, appointment_id)
    if appt.user_id != proposal.requested_by:
        raise NotFound("Appointment not found.")
    if _has_pending_request(db, appointment_id):
        raise InvalidTransition("A reschedule request is already pending for this appointment.")
    rec = lifecycle.request_reschedule(appointment_record(appt), proposal, now)
    row = models.RescheduleRequest(
        appointment_id=rec.appointment_id,
        requested_by_user_id=rec.requested_by,
        requested_date=rec.requested_date,
        requested_start_time=rec.requested_start_time,
        requested_end_time=rec.requested_end_time,
        reason=rec.reason,
        status=rec.status,
    )
    db.add(row)
    _commit(db)
    db.refresh(row)
    logger.info("Solicitud de reprogramación %s para cita %s", row.id, appointment_id)
    return reschedule_record(row)

def list_reschedule_requests(
    db: Session,
    status: Optional[RescheduleStatus] = None,
    user_id: Optional[int] = None,
) -> List[RescheduleRecord]:
    q = select(models.RescheduleRequest).order_by(models.RescheduleRequest.created_at.desc(), models.RescheduleRequest.id.desc())
    if status is not None:
        q = q.where(models.RescheduleRequest.status == status)
    if user_id is not None:
        q = q.where(models.RescheduleRequest.requested_by_user_id == user_id)
    return [reschedule_record(r) for r in db.execute(q).scalars().all()]

def resolve_reschedule_request(
    db: Session,
    request_id: int,
    decision: Decision,
    override: Optional[ModeDetails] = None,
    now: Optional[datetime] = None,
) -> Tuple[RescheduleRecord, AppointmentRecord]:
    req_row = _get_reschedule_row(db, request_id)
    appt_row = _get_appointment_row(db, req_row.appointment_id)
    request = reschedule_record(req_row)

    config = get_working_hours(db)
    existing = appointments_for_date(db, request.requested_date)
    new_request, moved = lifecycle.resolve_reschedule(
        request,
        appointment_record(appt_row),
        decision,
        override=override,
        config=config,
        existing=existing,
        now=now,
    )
    req_row.status = new_request.status
    if moved is not None:
        _write_appointment(appt_row, moved)
    _commit(db)
    return reschedule_record(req_row), appointment_record(appt_row)

# ====== Usuarios ======
def list_users(db: Session, role: Optional[UserRole] = None) -> List[models.User]:
    q = select(models.User).order_by(models.User.created_at.desc(), models.User.id.desc())
    if role is not None:
        q = q.where(models.User.role == role)
    return list(db.execute(q).scalars().all())

def get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFound("User not found.")
    return user

def _username_taken(db: Session, username: str, exclude_id: Optional[int] = None) -> bool:
    q = select(models.User.id).where(models.User.username == username)
    if exclude_id is not None:
        q = q.where(models.User.id != exclude_id)
    return db.execute(q).first() is not None

def create_user(db: Session, username: str, full_name: str, phone: Optional[str] = None,
                role: UserRole = UserRole.user) -> models.User:
    username = (username or "").strip()
    if not username or not (full_name or "").strip():
        raise ValidationError("Username and full name are required.")
    if _username_taken(db, username):
        raise ValidationError("Username already exists.")
    user = models.User(username=username, full_name=full_name.strip(), phone=phone, role=role)
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        # Carrera con otro alta del mismo username
        db.rollback()
        raise ValidationError("Username already exists.") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError() from e
    db.refresh(user)
    return user

def update_user(db: Session, user_id: int, **changes) -> models.User:
    user = get_user(db, user_id)
    username = changes.get("username")
    if username is not None:
        username = username.strip()
        if not username:
            raise ValidationError("Username cannot be empty.")
        if _username_taken(db, username, exclude_id=user_id):
            raise ValidationError("Username already exists.")
        user.username = username
    for field in ("full_name", "phone", "role"):
        if changes.get(field) is not None:
            setattr(user, field, changes[field])
    _commit(db)
    db.refresh(user)
    return user

def appointment_counts_by_user(db: Session) -> dict[int, dict[str, int]]:
    rows = db.execute(
        select(models.Appointment.user_id, models.Appointment.status, func.count())
        .group_by(models.Appointment.user_id, models.Appointment.status)
    ).all()
    out: dict[int, dict[str, int]] = {}
    for user_id, status, n in rows:
        out.setdefault(user_id, {s.value: 0 for s in AppointmentStatus})[status.value] = n
    return out

# ====== Reuniones ======
def _participants(db: Session, ids: Iterable[int]) -> List[models.User]:
    ids = set(ids)
    if not ids:
        return []
    users = list(db.execute(select(models.User).where(models.User.id.in_(ids))).scalars().all())
    if len(users) != len(ids):
        raise ValidationError("Unknown participant.")
    return users

def _get_meeting_row(db: Session, meeting_id: int) -> models.Meeting:
    row = db.get(models.Meeting, meeting_id)
    if row is None:
        raise NotFound("Meeting not found.")
    return row

def create_meeting(db: Session, meeting: MeetingRecord) -> MeetingRecord:
    meeting = lifecycle.validate_meeting(meeting)
    row = models.Meeting(
        title=meeting.title,
        description=meeting.description,
        meeting_date=meeting.date,
        start_time=meeting.start_time,
        end_time=meeting.end_time,
        created_by_user_id=meeting.created_by,
        meeting_mode=meeting.details.mode,
        meeting_url=meeting.details.url,
        meeting_password=meeting.details.password,
    )
    row.participants = _participants(db, meeting.participants)
    db.add(row)
    _commit(db)
    db.refresh(row)
    logger.info("Reunión creada id=%s participantes=%d", row.id, len(row.participants))
    return meeting_record(row)

def update_meeting(db: Session, meeting_id: int, changes: dict,
                   participant_ids: Optional[Iterable[int]] = None) -> MeetingRecord:
    row = _get_meeting_row(db, meeting_id)
    current = meeting_record(row)
    details = current.details
    if "mode" in changes or "url" in changes or "password" in changes:
        details = ModeDetails(
            changes.get("mode", details.mode),
            changes.get("url", details.url),
            changes.get("password", details.password),
        )
    updated = lifecycle.validate_meeting(MeetingRecord(
        id=current.id,
        title=changes.get("title") if changes.get("title") is not None else current.title,
        description=changes.get("description", current.description),
        date=changes.get("date") or current.date,
        start_time=changes.get("start_time") or current.start_time,
        end_time=changes.get("end_time") or current.end_time,
        created_by=current.created_by,
        participants=current.participants,
        details=details,
    ))
    row.title = updated.title
    row.description = updated.description
    row.meeting_date = updated.date
    row.start_time = updated.start_time
    row.end_time = updated.end_time
    row.meeting_mode = updated.details.mode
    row.meeting_url = updated.details.url
    row.meeting_password = updated.details.password
    if participant_ids is not None:
        row.participants = _participants(db, participant_ids)
    _commit(db)
    db.refresh(row)
    return meeting_record(row)

def delete_meeting(db: Session, meeting_id: int) -> None:
    row = _get_meeting_row(db, meeting_id)
    db.delete(row)
    _commit(db)

def list_meetings(db: Session, participant_id: Optional[int] = None) -> List[MeetingRecord]:
    q = select(models.Meeting).order_by(models.Meeting.meeting_date.asc(), models.Meeting.start_time.asc())
    if participant_id is not None:
        q = q.where(models.Meeting.participants.any(models.User.id == participant_id))
    return [meeting_record(r) for r in db.execute(q).scalars().all()]

# ====== Mensajes ======
def send_message(db: Session, sender_id: str, receiver_id: str, body: str) -> models.Message:
    if not (body or "").strip():
        raise ValidationError("Message body is required.")
    msg = models.Message(sender_id=sender_id, receiver_id=receiver_id, body=body.strip())
    db.add(msg)
    _commit(db)
    db.refresh(msg)
    return msg

def conversation(db: Session, user_id: int) -> List[models.Message]:
    """Mensajes entre el admin y un usuario, del más viejo al más nuevo."""
    uid = str(user_id)
    q = (
        select(models.Message)
        .where(
            ((models.Message.sender_id == uid) & (models.Message.receiver_id == ADMIN_INBOX))
            | ((models.Message.sender_id == ADMIN_INBOX) & (models.Message.receiver_id == uid))
        )
        .order_by(models.Message.created_at.asc(), models.Message.id.asc())
    )
    return list(db.execute(q).scalars().all())

def mark_seen(db: Session, receiver_id: str, sender_id: str) -> int:
    msgs = db.execute(
        select(models.Message)
        .where(models.Message.receiver_id == receiver_id)
        .where(models.Message.sender_id == sender_id)
        .where(models.Message.seen_at.is_(None))
    ).scalars().all()
    now = datetime.now(timezone.utc)
    for m in msgs:
        m.seen_at = now
    if msgs:
        _commit(db)
    return len(msgs)

def unread_count(db: Session, receiver_id: str) -> int:
    return db.execute(
        select(func.count())
        .select_from(models.Message)
        .where(models.Message.receiver_id == receiver_id)
        .where(models.Message.seen_at.is_(None))
    ).scalar_one()

# ====== Dashboard ======
def admin_stats(db: Session, now: datetime) -> dict:
    appts = load_appointments(db, now)
    week_ago = datetime.now(timezone.utc) - timedelta(days=7)
    this_week = 0
    for ap in appts:
        created = ap.created_at
        if created is not None and created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        if created is not None and created >= week_ago:
            this_week += 1
    return {
        "total_appointments": len(appts),
        "by_status": lifecycle.count_by_status(appts),
        "today_appointments": sum(1 for ap in appts if ap.date == now.date()),
        "this_week_appointments": this_week,
        "total_users": len(list_users(db, role=UserRole.user)),
        "pending_reschedule_requests": len(list_reschedule_requests(db, status=RescheduleStatus.pending)),
        "unread_messages": unread_count(db, ADMIN_INBOX),
    }

def user_stats(db: Session, user_id: int, now: datetime) -> dict:
    appts = load_appointments(db, now, user_id=user_id)
    return {
        "total": len(appts),
        "by_status": lifecycle.count_by_status(appts),
        "unread_messages": unread_count(db, str(user_id)),
    }
