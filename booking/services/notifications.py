# booking/services/notifications.py
from typing import Optional

from ..records import AppointmentRecord, AppointmentStatus, RescheduleRecord, RescheduleStatus
from .twilio_client import send_sms

def _when(ap: AppointmentRecord) -> str:
    return f"{ap.date.isoformat()} {ap.start_time:%H:%M}-{ap.end_time:%H:%M}"

def send_booking_received(contact: Optional[str], ap: AppointmentRecord) -> None:
    _send(contact, (
        f"Appointment requested: {ap.title}\n"
        f"When: {_when(ap)}\n"
        "Awaiting admin approval."
    ))

def send_decision(contact: Optional[str], ap: AppointmentRecord) -> None:
    if ap.status is AppointmentStatus.approved:
        head = "Your appointment was approved"
    else:
        head = "Your appointment was rejected"
    _send(contact, f"{head}: {ap.title}\nWhen: {_when(ap)}")

def send_reschedule_outcome(contact: Optional[str], req: RescheduleRecord, ap: AppointmentRecord) -> None:
    if req.status is RescheduleStatus.approved:
        body = f"Reschedule approved: {ap.title}\nNew time: {_when(ap)}"
    else:
        body = f"Reschedule request rejected: {ap.title}\nYour appointment stays at {_when(ap)}"
    _send(contact, body)

def send_reminder(contact: Optional[str], ap: AppointmentRecord, when: str = "24h") -> None:
    """Recordatorio (D-1 por defecto)."""
    _send(contact, f"Reminder ({when}): {ap.title}\nWhen: {_when(ap)}")

# ------------------ internos ------------------

def _send(contact: Optional[str], body: str) -> None:
    # Usuarios sin teléfono simplemente no reciben avisos
    if not contact:
        return
    send_sms(contact, body)
