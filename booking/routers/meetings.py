# booking/routers/meetings.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import current_user, require_admin
from .. import models, schemas
from ..records import MeetingRecord, MeetingStatus
from ..services import store
from ..services.clock import local_now
from ..services.lifecycle import meeting_status

router = APIRouter(prefix="", tags=["meetings"])

def _out(records, status: Optional[MeetingStatus] = None) -> List[schemas.MeetingOut]:
    now = local_now()
    out = [schemas.MeetingOut.from_record(r, meeting_status(r, now)) for r in records]
    if status is not None:
        out = [m for m in out if m.status is status]
    return out

@router.get("/meetings/mine", response_model=List[schemas.MeetingOut])
def my_meetings(
    status: Optional[MeetingStatus] = None,
    user: models.User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return _out(store.list_meetings(db, participant_id=user.id), status)

# ──────────────────────────────────────────────────────────────────────────────
# Admin
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/admin/meetings", response_model=List[schemas.MeetingOut], dependencies=[Depends(require_admin)])
def list_meetings(status: Optional[MeetingStatus] = None, db: Session = Depends(get_db)):
    return _out(store.list_meetings(db), status)

@router.post("/admin/meetings", response_model=schemas.MeetingOut, status_code=201,
             dependencies=[Depends(require_admin)])
def create_meeting(
    req: schemas.MeetingIn,
    x_user_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db),
):
    """X-User-Id opcional: el admin que la crea."""
    rec = store.create_meeting(db, MeetingRecord(
        id=None,
        title=req.title,
        description=req.description,
        date=req.date,
        start_time=req.start_time,
        end_time=req.end_time,
        created_by=x_user_id,
        participants=frozenset(req.participant_ids),
        details=req.details(),
    ))
    return _out([rec])[0]

@router.patch("/admin/meetings/{meeting_id}", response_model=schemas.MeetingOut,
              dependencies=[Depends(require_admin)])
def update_meeting(meeting_id: int, req: schemas.MeetingUpdate, db: Session = Depends(get_db)):
    changes = req.model_dump(exclude_unset=True)
    participant_ids = changes.pop("participant_ids", None)
    rec = store.update_meeting(db, meeting_id, changes, participant_ids=participant_ids)
    return _out([rec])[0]

@router.delete("/admin/meetings/{meeting_id}", status_code=204, dependencies=[Depends(require_admin)])
def delete_meeting(meeting_id: int, db: Session = Depends(get_db)):
    store.delete_meeting(db, meeting_id)
    return Response(status_code=204)
