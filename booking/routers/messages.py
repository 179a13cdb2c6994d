# booking/routers/messages.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import current_user, require_admin
from .. import models, schemas
from ..services import store

router = APIRouter(prefix="", tags=["messages"])

# ----- lado usuario -----
@router.get("/messages", response_model=List[schemas.MessageOut])
def my_messages(user: models.User = Depends(current_user), db: Session = Depends(get_db)):
    return store.conversation(db, user.id)

@router.post("/messages", response_model=schemas.MessageOut, status_code=201)
def send_to_admin(req: schemas.MessageIn, user: models.User = Depends(current_user), db: Session = Depends(get_db)):
    return store.send_message(db, str(user.id), store.ADMIN_INBOX, req.body)

@router.post("/messages/seen")
def mark_admin_messages_seen(user: models.User = Depends(current_user), db: Session = Depends(get_db)):
    n = store.mark_seen(db, receiver_id=str(user.id), sender_id=store.ADMIN_INBOX)
    return {"ok": True, "marked": n}

# ----- lado admin -----
@router.get("/admin/messages/{user_id}", response_model=List[schemas.MessageOut],
            dependencies=[Depends(require_admin)])
def admin_conversation(user_id: int, db: Session = Depends(get_db)):
    store.get_user(db, user_id)
    return store.conversation(db, user_id)

@router.post("/admin/messages/{user_id}", response_model=schemas.MessageOut, status_code=201,
             dependencies=[Depends(require_admin)])
def admin_send(user_id: int, req: schemas.MessageIn, db: Session = Depends(get_db)):
    store.get_user(db, user_id)
    return store.send_message(db, store.ADMIN_INBOX, str(user_id), req.body)

@router.post("/admin/messages/{user_id}/seen", dependencies=[Depends(require_admin)])
def admin_mark_seen(user_id: int, db: Session = Depends(get_db)):
    n = store.mark_seen(db, receiver_id=store.ADMIN_INBOX, sender_id=str(user_id))
    return {"ok": True, "marked": n}
