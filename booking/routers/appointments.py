import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from dateutil import parser as dtparser

from ..database import get_db
from ..deps import current_user
from .. import models, schemas
from ..records import AppointmentStatus, BookingCandidate, RescheduleProposal
from ..services import store
from ..services.clock import local_now
from ..services.notifications import send_booking_received
from ..services.slots import compute_available_slots

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["appointments"])

def _parse_date(value: str):
    try:
        return dtparser.parse(value).date()
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD.")

@router.get("/slots", response_model=schemas.SlotsResponse)
def get_slots(date: str = Query(..., description="YYYY-MM-DD"), db: Session = Depends(get_db)):
    d = _parse_date(date)
    config = store.get_working_hours(db)
    slots = compute_available_slots(d, config, store.appointments_for_date(db, d))
    return schemas.SlotsResponse(
        date=d,
        slots=[schemas.SlotOut(start_time=s.start_time, end_time=s.end_time) for s in slots],
    )

@router.post("/appointments", response_model=schemas.AppointmentOut, status_code=201)
def book(
    req: schemas.BookRequest,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
):
    candidate = BookingCandidate(
        user_id=user.id,
        title=req.title,
        description=req.description,
        date=req.date,
        start_time=req.start_time,
        details=req.details(),
    )
    rec = store.book_appointment(db, candidate, now=local_now())
    send_booking_received(user.phone, rec)
    return schemas.AppointmentOut.from_record(rec)

@router.get("/appointments/mine", response_model=List[schemas.AppointmentOut])
def my_appointments(
    status: Optional[AppointmentStatus] = None,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
):
    records = store.load_appointments(db, local_now(), user_id=user.id, status=status)
    return [schemas.AppointmentOut.from_record(r) for r in records]

@router.get("/appointments/stats")
def my_stats(user: models.User = Depends(current_user), db: Session = Depends(get_db)):
    return store.user_stats(db, user.id, local_now())

@router.post(
    "/appointments/{appointment_id}/reschedule-requests",
    response_model=schemas.RescheduleRequestOut,
    status_code=201,
)
def request_reschedule(
    appointment_id: int,
    req: schemas.RescheduleRequestIn,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
):
    proposal = RescheduleProposal(
        requested_by=user.id,
        requested_date=req.requested_date,
        requested_start_time=req.requested_start_time,
        requested_end_time=req.requested_end_time,
        reason=req.reason,
    )
    rec = store.create_reschedule_request(db, appointment_id, proposal, local_now())
    return schemas.RescheduleRequestOut.from_record(rec)

@router.get("/reschedule-requests/mine", response_model=List[schemas.RescheduleRequestOut])
def my_reschedule_requests(user: models.User = Depends(current_user), db: Session = Depends(get_db)):
    return [schemas.RescheduleRequestOut.from_record(r) for r in store.list_reschedule_requests(db, user_id=user.id)]
