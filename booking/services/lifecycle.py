# booking/services/lifecycle.py
"""
Ciclo de vida de una cita y de sus solicitudes de reprogramación.

    pending ──approve──▶ approved ──(termina)──▶ completed
       └────reject────▶ rejected

rejected y completed son terminales. Una reprogramación aprobada sólo mueve
fecha/hora: la cita sigue approved.

Todas las funciones son puras: reciben registros ya cargados y devuelven
registros nuevos (dataclasses.replace). Persistir es trabajo del store.
"""
from __future__ import annotations
import logging
from collections import Counter
from dataclasses import replace
from datetime import date, datetime, time
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import InvalidConfiguration, InvalidTransition, SlotTaken, ValidationError
from ..records import (
    AppointmentRecord,
    AppointmentStatus,
    BookingCandidate,
    Decision,
    MeetingRecord,
    MeetingStatus,
    ModeDetails,
    RescheduleProposal,
    RescheduleRecord,
    RescheduleStatus,
    WorkingHours,
)
from .slots import compute_available_slots, slot_end, window_is_free

logger = logging.getLogger(__name__)

_TRANSITIONS: Dict[AppointmentStatus, frozenset] = {
    AppointmentStatus.pending: frozenset({AppointmentStatus.approved, AppointmentStatus.rejected}),
    AppointmentStatus.approved: frozenset({AppointmentStatus.completed}),
    AppointmentStatus.rejected: frozenset(),
    AppointmentStatus.completed: frozenset(),
}

def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in _TRANSITIONS[current]

def _require(value, field_name: str):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required field: {field_name}.")

# ====== Reservas ======
def validate_candidate(candidate: BookingCandidate) -> None:
    """Campos obligatorios y hora en minuto exacto. No necesita la BD."""
    _require(candidate.user_id, "user_id")
    _require(candidate.title, "title")
    _require(candidate.date, "date")
    _require(candidate.start_time, "start_time")
    if candidate.start_time.second or candidate.start_time.microsecond:
        raise ValidationError("Start time must be a whole minute (HH:MM).")

def submit_booking(
    candidate: BookingCandidate,
    current_appointments: Iterable[AppointmentRecord],
    config: WorkingHours,
    now: Optional[datetime] = None,
) -> AppointmentRecord:
    """
    Revalida el slot contra las citas *actuales* (no las que vio el usuario) y
    devuelve una cita pending. Si alguien lo ganó primero → SlotTaken.
    """
    validate_candidate(candidate)

    if config.slot_minutes <= 0 or config.day_start >= config.day_end:
        raise InvalidConfiguration()

    if now is not None and datetime.combine(candidate.date, candidate.start_time) <= now:
        raise ValidationError("Cannot book a time in the past.")

    slots = compute_available_slots(candidate.date, config, current_appointments)
    if candidate.start_time not in {s.start_time for s in slots}:
        logger.info("Slot ocupado: date=%s start=%s user=%s",
                    candidate.date, candidate.start_time, candidate.user_id)
        raise SlotTaken()

    return AppointmentRecord(
        id=None,
        user_id=candidate.user_id,
        title=candidate.title.strip(),
        description=candidate.description,
        date=candidate.date,
        start_time=candidate.start_time,
        end_time=slot_end(candidate.start_time, config),
        status=AppointmentStatus.pending,
        details=candidate.details.normalized(),
    )

def decide(appointment: AppointmentRecord, decision: Decision) -> AppointmentRecord:
    """approve/reject sólo desde pending; cualquier otro estado es error de uso."""
    if appointment.status is not AppointmentStatus.pending:
        raise InvalidTransition()
    target = AppointmentStatus.approved if decision is Decision.approve else AppointmentStatus.rejected
    logger.info("Cita %s: %s → %s", appointment.id, appointment.status.value, target.value)
    return replace(appointment, status=target)

def promote_elapsed(
    appointments: Iterable[AppointmentRecord],
    now: datetime,
) -> List[AppointmentRecord]:
    """approved cuyo fin ya pasó → completed. Idempotente."""
    out = []
    for ap in appointments:
        if ap.status is AppointmentStatus.approved and ap.ends_at < now:
            ap = replace(ap, status=AppointmentStatus.completed)
        out.append(ap)
    return out

def admin_reschedule(
    appointment: AppointmentRecord,
    new_date: date,
    new_start_time: time,
    new_end_time: time,
    details: Optional[ModeDetails] = None,
) -> AppointmentRecord:
    """
    El admin mueve directamente una cita pending/approved (sin solicitud del
    usuario). Puede cambiar también el modo.
    """
    if appointment.status not in (AppointmentStatus.pending, AppointmentStatus.approved):
        raise InvalidTransition("Only pending or approved appointments can be rescheduled.")
    _check_window(new_date, new_start_time, new_end_time)
    return replace(
        appointment,
        date=new_date,
        start_time=new_start_time,
        end_time=new_end_time,
        details=details.normalized() if details is not None else appointment.details,
    )

# ====== Reprogramaciones ======
def _check_window(day, start_time, end_time):
    _require(day, "date")
    _require(start_time, "start_time")
    _require(end_time, "end_time")
    if start_time >= end_time:
        raise ValidationError("Start time must be before end time.")

def request_reschedule(
    appointment: AppointmentRecord,
    proposal: RescheduleProposal,
    now: datetime,
) -> RescheduleRecord:
    """Sólo citas approved y futuras. No toca la cita."""
    if appointment.status is not AppointmentStatus.approved:
        raise InvalidTransition("Only approved appointments can be rescheduled.")
    if appointment.starts_at <= now:
        raise InvalidTransition("Past appointments cannot be rescheduled.")
    _check_window(proposal.requested_date, proposal.requested_start_time, proposal.requested_end_time)
    if proposal.requested_date < now.date():
        raise ValidationError("Requested date is in the past.")

    return RescheduleRecord(
        id=None,
        appointment_id=appointment.id,
        requested_by=proposal.requested_by,
        requested_date=proposal.requested_date,
        requested_start_time=proposal.requested_start_time,
        requested_end_time=proposal.requested_end_time,
        reason=proposal.reason,
        status=RescheduleStatus.pending,
    )

def resolve_reschedule(
    request: RescheduleRecord,
    appointment: AppointmentRecord,
    decision: Decision,
    override: Optional[ModeDetails] = None,
    config: Optional[WorkingHours] = None,
    existing: Iterable[AppointmentRecord] = (),
    now: Optional[datetime] = None,
) -> Tuple[RescheduleRecord, Optional[AppointmentRecord]]:
    """
    approve: la solicitud queda approved y la cita toma la nueva fecha/hora
    (y el modo si el admin manda `override`). Con `config`, la ventana nueva se
    valida contra horario, descanso y las demás citas del día → SlotTaken.
    Con `now`, una hora pedida que ya pasó no se aprueba → ValidationError.

    reject: la solicitud queda rejected y la cita no cambia (se devuelve None).
    """
    if request.status is not RescheduleStatus.pending:
        raise InvalidTransition("This reschedule request has already been resolved.")
    if request.appointment_id != appointment.id:
        raise ValidationError("Reschedule request does not belong to this appointment.")

    if decision is Decision.reject:
        logger.info("Reprogramación %s rechazada", request.id)
        return replace(request, status=RescheduleStatus.rejected), None

    if appointment.status is not AppointmentStatus.approved:
        raise InvalidTransition("Only approved appointments can be rescheduled.")
    if now is not None and datetime.combine(request.requested_date, request.requested_start_time) <= now:
        raise ValidationError("Requested time has already passed.")
    if config is not None and not window_is_free(
        request.requested_date,
        request.requested_start_time,
        request.requested_end_time,
        config,
        existing,
        exclude_id=appointment.id,
    ):
        raise SlotTaken()

    moved = replace(
        appointment,
        date=request.requested_date,
        start_time=request.requested_start_time,
        end_time=request.requested_end_time,
        details=override.normalized() if override is not None else appointment.details,
    )
    logger.info("Reprogramación %s aprobada: cita %s → %s %s-%s", request.id, appointment.id,
                moved.date, moved.start_time, moved.end_time)
    return replace(request, status=RescheduleStatus.approved), moved

# ====== Reuniones ======
def validate_meeting(meeting: MeetingRecord) -> MeetingRecord:
    _require(meeting.title, "title")
    _check_window(meeting.date, meeting.start_time, meeting.end_time)
    return replace(meeting, title=meeting.title.strip(), details=meeting.details.normalized())

def meeting_status(meeting: MeetingRecord, now: datetime) -> MeetingStatus:
    """Derivado, nunca guardado: upcoming si aún no empieza."""
    if datetime.combine(meeting.date, meeting.start_time) > now:
        return MeetingStatus.upcoming
    return MeetingStatus.completed

# ====== Consultas ======
def list_by_status(
    appointments: Iterable[AppointmentRecord],
    status: AppointmentStatus,
) -> List[AppointmentRecord]:
    return [ap for ap in appointments if ap.status is status]

def list_pending(appointments: Iterable[AppointmentRecord]) -> List[AppointmentRecord]:
    return list_by_status(appointments, AppointmentStatus.pending)

def count_by_status(appointments: Iterable[AppointmentRecord]) -> Dict[str, int]:
    counts = Counter(ap.status.value for ap in appointments)
    return {s.value: counts.get(s.value, 0) for s in AppointmentStatus}
