# booking/records.py
"""
Registros en memoria que consume y produce el núcleo (slots + ciclo de vida).

El núcleo no conoce SQLAlchemy: la capa de store convierte filas ORM a estos
dataclasses inmutables y aplica de vuelta lo que el núcleo decide.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import FrozenSet, Optional


class AppointmentStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    completed = "completed"


class RescheduleStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class MeetingMode(str, enum.Enum):
    online = "online"
    in_person = "in-person"


class Decision(str, enum.Enum):
    approve = "approve"
    reject = "reject"


class UserRole(str, enum.Enum):
    user = "user"
    admin = "admin"


class MeetingStatus(str, enum.Enum):
    upcoming = "upcoming"
    completed = "completed"


# Citas que ocupan lugar en la agenda
BLOCKING_STATUSES = frozenset({AppointmentStatus.pending, AppointmentStatus.approved})
TERMINAL_STATUSES = frozenset({AppointmentStatus.rejected, AppointmentStatus.completed})


@dataclass(frozen=True)
class WorkingHours:
    day_start: time
    day_end: time
    break_start: time
    break_end: time
    slot_minutes: int

    def is_valid(self) -> bool:
        """day_start < break_start <= break_end < day_end y slot positivo."""
        return (
            self.slot_minutes > 0
            and self.day_start < self.break_start <= self.break_end < self.day_end
        )


@dataclass(frozen=True)
class Slot:
    start_time: time
    end_time: time

    def label(self) -> str:
        return self.start_time.strftime("%H:%M")


@dataclass(frozen=True)
class ModeDetails:
    """Modo de la cita/reunión. url/password sólo sobreviven si es online."""

    mode: Optional[MeetingMode] = None
    url: Optional[str] = None
    password: Optional[str] = None

    def normalized(self) -> "ModeDetails":
        if self.mode is MeetingMode.online:
            return self
        return ModeDetails(mode=self.mode)


@dataclass(frozen=True)
class BookingCandidate:
    user_id: Optional[int]
    title: str
    date: Optional[date]
    start_time: Optional[time]
    description: Optional[str] = None
    details: ModeDetails = field(default_factory=ModeDetails)


@dataclass(frozen=True)
class AppointmentRecord:
    id: Optional[int]
    user_id: int
    title: str
    date: date
    start_time: time
    end_time: time
    status: AppointmentStatus = AppointmentStatus.pending
    description: Optional[str] = None
    details: ModeDetails = field(default_factory=ModeDetails)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.date, self.end_time)

    @property
    def is_blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES


@dataclass(frozen=True)
class RescheduleProposal:
    requested_by: int
    requested_date: Optional[date]
    requested_start_time: Optional[time]
    requested_end_time: Optional[time]
    reason: Optional[str] = None


@dataclass(frozen=True)
class RescheduleRecord:
    id: Optional[int]
    appointment_id: int
    requested_by: int
    requested_date: date
    requested_start_time: time
    requested_end_time: time
    status: RescheduleStatus = RescheduleStatus.pending
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class MeetingRecord:
    id: Optional[int]
    title: str
    date: date
    start_time: time
    end_time: time
    created_by: Optional[int] = None
    participants: FrozenSet[int] = frozenset()
    description: Optional[str] = None
    details: ModeDetails = field(default_factory=ModeDetails)
