# clinicdesk/services/session_service.py
import logging
from typing import List

from fastapi import status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..exceptions import ApiError

logger = logging.getLogger(__name__)


class SessionService:
    """Bookable service types offered by a clinic."""

    def __init__(self, db: Session):
        self.db = db

    def create_session(self, clinic_id: int, session: schemas.SessionCreate) -> models.ClinicSession:
        db_session = models.ClinicSession(**session.model_dump(), clinic_id=clinic_id)
        self.db.add(db_session)
        self.db.commit()
        self.db.refresh(db_session)
        logger.info(f"Session type '{db_session.name}' created in clinic {clinic_id}")
        return db_session

    def list_sessions(self, clinic_id: int) -> List[models.ClinicSession]:
        return (
            self.db.query(models.ClinicSession)
            .filter(models.ClinicSession.clinic_id == clinic_id)
            .order_by(models.ClinicSession.name)
            .all()
        )

    def get_session(self, clinic_id: int, session_id: int) -> models.ClinicSession:
        db_session = self.db.query(models.ClinicSession).filter(
            models.ClinicSession.id == session_id,
            models.ClinicSession.clinic_id == clinic_id,
        ).first()
        if db_session is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Session not found")
        return db_session

    def update_session(self, clinic_id: int, session_id: int, session_update: schemas.SessionUpdate) -> models.ClinicSession:
        db_session = self.get_session(clinic_id, session_id)
        for key, value in session_update.model_dump(exclude_unset=True).items():
            setattr(db_session, key, value)
        self.db.commit()
        self.db.refresh(db_session)
        return db_session

    def delete_session(self, clinic_id: int, session_id: int) -> None:
        db_session = self.get_session(clinic_id, session_id)
        if db_session.appointments:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Session has appointments and cannot be deleted")
        self.db.delete(db_session)
        self.db.commit()
