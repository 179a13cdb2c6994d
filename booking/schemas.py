from datetime import date, datetime, time
from typing import Annotated, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from .records import (
    AppointmentRecord,
    AppointmentStatus,
    MeetingMode,
    MeetingRecord,
    MeetingStatus,
    ModeDetails,
    RescheduleRecord,
    RescheduleStatus,
    UserRole,
    WorkingHours,
)

# Horas de pared como "HH:MM" en la salida; la entrada acepta "HH:MM" o "HH:MM:SS"
HHMM = Annotated[time, PlainSerializer(lambda t: t.strftime("%H:%M"), return_type=str)]


class ModeFields(BaseModel):
    mode: Optional[MeetingMode] = None
    url: Optional[str] = None
    password: Optional[str] = None

    def details(self) -> ModeDetails:
        return ModeDetails(self.mode, self.url, self.password)

    def override(self) -> Optional[ModeDetails]:
        """Sólo hay override si el admin mandó un modo."""
        return self.details() if self.mode is not None else None


class SlotOut(BaseModel):
    start_time: HHMM
    end_time: HHMM

class SlotsResponse(BaseModel):
    date: date
    slots: List[SlotOut]

class WorkingHoursIn(BaseModel):
    day_start: Optional[time] = None
    day_end: Optional[time] = None
    break_start: Optional[time] = None
    break_end: Optional[time] = None
    slot_minutes: Optional[int] = Field(default=None, gt=0)

class WorkingHoursOut(BaseModel):
    day_start: HHMM
    day_end: HHMM
    break_start: HHMM
    break_end: HHMM
    slot_minutes: int

    @classmethod
    def from_record(cls, wh: WorkingHours) -> "WorkingHoursOut":
        return cls(day_start=wh.day_start, day_end=wh.day_end, break_start=wh.break_start,
                   break_end=wh.break_end, slot_minutes=wh.slot_minutes)

class BookRequest(ModeFields):
    title: str
    description: Optional[str] = None
    date: date
    start_time: time

class AppointmentOut(BaseModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    date: date
    start_time: HHMM
    end_time: HHMM
    status: AppointmentStatus
    mode: Optional[MeetingMode] = None
    url: Optional[str] = None
    password: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, rec: AppointmentRecord) -> "AppointmentOut":
        return cls(
            id=rec.id, user_id=rec.user_id, title=rec.title, description=rec.description,
            date=rec.date, start_time=rec.start_time, end_time=rec.end_time, status=rec.status,
            mode=rec.details.mode, url=rec.details.url, password=rec.details.password,
            created_at=rec.created_at, updated_at=rec.updated_at,
        )

class AdminRescheduleIn(ModeFields):
    new_date: date
    new_start_time: time
    new_end_time: time

class RescheduleRequestIn(BaseModel):
    requested_date: date
    requested_start_time: time
    requested_end_time: time
    reason: Optional[str] = None

class RescheduleRequestOut(BaseModel):
    id: int
    appointment_id: int
    requested_by: int
    requested_date: date
    requested_start_time: HHMM
    requested_end_time: HHMM
    reason: Optional[str] = None
    status: RescheduleStatus
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, rec: RescheduleRecord) -> "RescheduleRequestOut":
        return cls(
            id=rec.id, appointment_id=rec.appointment_id, requested_by=rec.requested_by,
            requested_date=rec.requested_date, requested_start_time=rec.requested_start_time,
            requested_end_time=rec.requested_end_time, reason=rec.reason, status=rec.status,
            created_at=rec.created_at,
        )

class ResolveRescheduleOut(BaseModel):
    request: RescheduleRequestOut
    appointment: AppointmentOut

class UserIn(BaseModel):
    username: str
    full_name: str
    phone: Optional[str] = None
    role: UserRole = UserRole.user

class UserUpdate(BaseModel):
    username: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[UserRole] = None

class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: str
    phone: Optional[str] = None
    role: UserRole
    created_at: Optional[datetime] = None
    appointment_counts: Dict[str, int] = Field(default_factory=dict)

class MeetingIn(ModeFields):
    title: str
    description: Optional[str] = None
    date: date
    start_time: time
    end_time: time
    participant_ids: List[int] = Field(default_factory=list)

class MeetingUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    participant_ids: Optional[List[int]] = None
    mode: Optional[MeetingMode] = None
    url: Optional[str] = None
    password: Optional[str] = None

class MeetingOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    date: date
    start_time: HHMM
    end_time: HHMM
    created_by: Optional[int] = None
    participants: List[int]
    mode: Optional[MeetingMode] = None
    url: Optional[str] = None
    password: Optional[str] = None
    status: MeetingStatus

    @classmethod
    def from_record(cls, rec: MeetingRecord, status: MeetingStatus) -> "MeetingOut":
        return cls(
            id=rec.id, title=rec.title, description=rec.description, date=rec.date,
            start_time=rec.start_time, end_time=rec.end_time, created_by=rec.created_by,
            participants=sorted(rec.participants), mode=rec.details.mode, url=rec.details.url,
            password=rec.details.password, status=status,
        )

class MessageIn(BaseModel):
    body: str

class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: str
    receiver_id: str
    body: str
    seen_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
