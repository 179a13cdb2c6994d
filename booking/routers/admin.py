# booking/routers/admin.py
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..deps import require_admin
from .. import schemas
from ..records import AppointmentStatus, Decision, RescheduleStatus, UserRole
from ..services import store
from ..services.clock import local_now
from ..services.notifications import send_decision, send_reschedule_outcome

logger = logging.getLogger(__name__)

# recuerda: main.py monta este router con prefix="/admin"
router = APIRouter(tags=["admin"], dependencies=[Depends(require_admin)])

# ──────────────────────────────────────────────────────────────────────────────
# Básicos
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/health")
def admin_health():
    return {
        "ok": True,
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "tz": settings.TIMEZONE,
        "scheduler": settings.SCHEDULER_ENABLED,
        "ts": datetime.now(timezone.utc).isoformat(),
    }

@router.get("/stats")
def admin_stats(db: Session = Depends(get_db)):
    return store.admin_stats(db, local_now())

# ──────────────────────────────────────────────────────────────────────────────
# Working hours
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/settings", response_model=schemas.WorkingHoursOut)
def get_settings(db: Session = Depends(get_db)):
    return schemas.WorkingHoursOut.from_record(store.get_working_hours(db))

@router.put("/settings", response_model=schemas.WorkingHoursOut)
def put_settings(req: schemas.WorkingHoursIn, db: Session = Depends(get_db)):
    wh = store.update_working_hours(
        db,
        day_start=req.day_start,
        day_end=req.day_end,
        break_start=req.break_start,
        break_end=req.break_end,
        slot_minutes=req.slot_minutes,
    )
    return schemas.WorkingHoursOut.from_record(wh)

# ──────────────────────────────────────────────────────────────────────────────
# Citas
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/appointments", response_model=List[schemas.AppointmentOut])
def list_appointments(
    status: Optional[AppointmentStatus] = None,
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    """Aplica la promoción approved → completed antes de responder."""
    records = store.load_appointments(db, local_now(), user_id=user_id, status=status)
    return [schemas.AppointmentOut.from_record(r) for r in records]

def _decide(db: Session, appointment_id: int, decision: Decision) -> schemas.AppointmentOut:
    rec = store.decide_appointment(db, appointment_id, decision)
    send_decision(store.get_user(db, rec.user_id).phone, rec)
    return schemas.AppointmentOut.from_record(rec)

@router.post("/appointments/{appointment_id}/approve", response_model=schemas.AppointmentOut)
def approve_appointment(appointment_id: int, db: Session = Depends(get_db)):
    return _decide(db, appointment_id, Decision.approve)

@router.post("/appointments/{appointment_id}/reject", response_model=schemas.AppointmentOut)
def reject_appointment(appointment_id: int, db: Session = Depends(get_db)):
    return _decide(db, appointment_id, Decision.reject)

@router.post("/appointments/{appointment_id}/reschedule", response_model=schemas.AppointmentOut)
def reschedule_appointment(appointment_id: int, req: schemas.AdminRescheduleIn, db: Session = Depends(get_db)):
    rec = store.reschedule_appointment(
        db,
        appointment_id,
        req.new_date,
        req.new_start_time,
        req.new_end_time,
        details=req.override(),
    )
    return schemas.AppointmentOut.from_record(rec)

# ──────────────────────────────────────────────────────────────────────────────
# Solicitudes de reprogramación
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/reschedule-requests", response_model=List[schemas.RescheduleRequestOut])
def list_reschedule_requests(status: Optional[RescheduleStatus] = None, db: Session = Depends(get_db)):
    return [schemas.RescheduleRequestOut.from_record(r) for r in store.list_reschedule_requests(db, status=status)]

def _resolve(db: Session, request_id: int, decision: Decision,
             override: Optional[schemas.ModeFields] = None) -> schemas.ResolveRescheduleOut:
    req, appt = store.resolve_reschedule_request(
        db, request_id, decision,
        override=override.override() if override else None,
        now=local_now(),
    )
    send_reschedule_outcome(store.get_user(db, appt.user_id).phone, req, appt)
    return schemas.ResolveRescheduleOut(
        request=schemas.RescheduleRequestOut.from_record(req),
        appointment=schemas.AppointmentOut.from_record(appt),
    )

@router.post("/reschedule-requests/{request_id}/approve", response_model=schemas.ResolveRescheduleOut)
def approve_reschedule(
    request_id: int,
    override: Optional[schemas.ModeFields] = None,
    db: Session = Depends(get_db),
):
    """Body opcional {mode, url, password}: el admin puede cambiar el modo al aprobar."""
    return _resolve(db, request_id, Decision.approve, override)

@router.post("/reschedule-requests/{request_id}/reject", response_model=schemas.ResolveRescheduleOut)
def reject_reschedule(request_id: int, db: Session = Depends(get_db)):
    return _resolve(db, request_id, Decision.reject)

# ──────────────────────────────────────────────────────────────────────────────
# Usuarios
# ──────────────────────────────────────────────────────────────────────────────
def _user_out(user, counts) -> schemas.UserOut:
    out = schemas.UserOut.model_validate(user)
    out.appointment_counts = counts.get(user.id, {s.value: 0 for s in AppointmentStatus})
    return out

@router.get("/users", response_model=List[schemas.UserOut])
def list_users(role: Optional[UserRole] = Query(default=None), db: Session = Depends(get_db)):
    counts = store.appointment_counts_by_user(db)
    return [_user_out(u, counts) for u in store.list_users(db, role=role)]

@router.post("/users", response_model=schemas.UserOut, status_code=201)
def create_user(req: schemas.UserIn, db: Session = Depends(get_db)):
    user = store.create_user(db, req.username, req.full_name, phone=req.phone, role=req.role)
    logger.info("Usuario creado id=%s username=%s", user.id, user.username)
    return _user_out(user, {})

@router.patch("/users/{user_id}", response_model=schemas.UserOut)
def update_user(user_id: int, req: schemas.UserUpdate, db: Session = Depends(get_db)):
    user = store.update_user(db, user_id, **req.model_dump(exclude_unset=True))
    return _user_out(user, store.appointment_counts_by_user(db))
