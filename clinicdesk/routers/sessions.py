# clinicdesk/routers/sessions.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from .. import schemas, security
from ..database import get_db
from ..dependencies import require_active_subscription
from ..security import ClinicContext
from ..services.session_service import SessionService

router = APIRouter(
    prefix="/sessions",
    tags=["Sessions"],
    dependencies=[Depends(security.get_current_user), Depends(require_active_subscription)],
    responses={404: {"description": "Not found"}},
)

require_sessions = security.require_clinic_permission("sessions")


@router.post("", response_model=schemas.SessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(
    session: schemas.SessionCreate,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(require_sessions)
):
    return SessionService(db).create_session(ctx.clinic_id, session)


@router.get("", response_model=List[schemas.SessionResponse])
def list_sessions(db: Session = Depends(get_db), ctx: ClinicContext = Depends(security.get_clinic_context)):
    return SessionService(db).list_sessions(ctx.clinic_id)


@router.get("/{session_id}", response_model=schemas.SessionResponse)
def read_session(session_id: int, db: Session = Depends(get_db), ctx: ClinicContext = Depends(security.get_clinic_context)):
    return SessionService(db).get_session(ctx.clinic_id, session_id)


@router.put("/{session_id}", response_model=schemas.SessionResponse)
def update_session(
    session_id: int,
    session_update: schemas.SessionUpdate,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(require_sessions)
):
    return SessionService(db).update_session(ctx.clinic_id, session_id, session_update)


@router.delete("/{session_id}", response_model=schemas.MessageResponse)
def delete_session(session_id: int, db: Session = Depends(get_db), ctx: ClinicContext = Depends(require_sessions)):
    SessionService(db).delete_session(ctx.clinic_id, session_id)
    return {"message": "Session deleted"}
