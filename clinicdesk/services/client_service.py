# clinicdesk/services/client_service.py
import logging
from typing import Optional, Dict, Any, List

from fastapi import status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..exceptions import ApiError
from .subscription_service import LimitService

logger = logging.getLogger(__name__)


class ClientService:

    def __init__(self, db: Session):
        self.db = db
        self.limits = LimitService(db)

    def _check_email_free(self, clinic_id: int, email: str, exclude_id: Optional[int] = None):
        query = self.db.query(models.Client).filter(
            models.Client.clinic_id == clinic_id,
            models.Client.email == email,
        )
        if exclude_id is not None:
            query = query.filter(models.Client.id != exclude_id)
        if query.first():
            raise ApiError(status.HTTP_409_CONFLICT, "A client with this email already exists in this clinic")

    def _check_clinician(self, clinic_id: int, member_id: Optional[int]):
        if member_id is None:
            return
        member = self.db.query(models.ClinicMember).filter(
            models.ClinicMember.id == member_id,
            models.ClinicMember.clinic_id == clinic_id,
        ).first()
        if member is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Assigned clinician not found")

    def create_client(self, clinic_id: int, client: schemas.ClientCreate, added_by: int) -> models.Client:
        # Inactive clients do not count toward the plan quota
        if client.status != models.ClientStatus.inactive:
            self.limits.enforce_client_limit(clinic_id)
        self._check_email_free(clinic_id, client.email)
        self._check_clinician(clinic_id, client.assigned_clinician_id)

        db_client = models.Client(**client.model_dump(), clinic_id=clinic_id, added_by=added_by)
        self.db.add(db_client)
        self.db.commit()
        self.db.refresh(db_client)
        logger.info(f"Client {db_client.id} created in clinic {clinic_id}")
        return db_client

    def list_clients(self, clinic_id: int, page: int = 1, limit: int = 20,
                     search: Optional[str] = None,
                     status_filter: Optional[models.ClientStatus] = None,
                     assigned_clinician_id: Optional[int] = None) -> Dict[str, Any]:
        query = self.db.query(models.Client).filter(models.Client.clinic_id == clinic_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                models.Client.first_name.ilike(pattern),
                models.Client.last_name.ilike(pattern),
                models.Client.email.ilike(pattern),
            ))
        if status_filter:
            query = query.filter(models.Client.status == status_filter)
        if assigned_clinician_id:
            query = query.filter(models.Client.assigned_clinician_id == assigned_clinician_id)

        total = query.count()
        items = (
            query.order_by(models.Client.created_at.desc(), models.Client.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {"items": items, "total": total, "page": page, "limit": limit}

    def get_client(self, clinic_id: int, client_id: int) -> models.Client:
        client = self.db.query(models.Client).filter(
            models.Client.id == client_id,
            models.Client.clinic_id == clinic_id,
        ).first()
        if client is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Client not found")
        return client

    def update_client(self, clinic_id: int, client_id: int, client_update: schemas.ClientUpdate) -> models.Client:
        client = self.get_client(clinic_id, client_id)
        data = client_update.model_dump(exclude_unset=True)

        if "email" in data and data["email"] != client.email:
            self._check_email_free(clinic_id, data["email"], exclude_id=client.id)
        if "assigned_clinician_id" in data:
            self._check_clinician(clinic_id, data["assigned_clinician_id"])
        # Reactivating an inactive client takes a quota slot
        if client.status == models.ClientStatus.inactive and data.get("status") in (
            models.ClientStatus.active, models.ClientStatus.pending
        ):
            self.limits.enforce_client_limit(clinic_id)

        for key, value in data.items():
            setattr(client, key, value)
        self.db.commit()
        self.db.refresh(client)
        return client

    def delete_client(self, clinic_id: int, client_id: int) -> None:
        client = self.get_client(clinic_id, client_id)
        if client.invoices:
            raise ApiError(
                status.HTTP_400_BAD_REQUEST,
                "Client has invoices and cannot be deleted; mark the client inactive instead"
            )
        self.db.delete(client)
        self.db.commit()
        logger.info(f"Client {client_id} deleted from clinic {clinic_id}")

    # --- notes ---
    def add_note(self, clinic_id: int, client_id: int, note: schemas.ClientNoteCreate, author_id: int) -> models.ClientNote:
        client = self.get_client(clinic_id, client_id)
        db_note = models.ClientNote(client_id=client.id, author_id=author_id, note=note.note)
        self.db.add(db_note)
        self.db.commit()
        self.db.refresh(db_note)
        return db_note

    def list_notes(self, clinic_id: int, client_id: int) -> List[models.ClientNote]:
        client = self.get_client(clinic_id, client_id)
        return (
            self.db.query(models.ClientNote)
            .filter(models.ClientNote.client_id == client.id)
            .order_by(models.ClientNote.created_at.desc(), models.ClientNote.id.desc())
            .all()
        )

    def delete_note(self, clinic_id: int, client_id: int, note_id: int) -> None:
        client = self.get_client(clinic_id, client_id)
        note = self.db.query(models.ClientNote).filter(
            models.ClientNote.id == note_id,
            models.ClientNote.client_id == client.id,
        ).first()
        if note is None:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Note not found")
        self.db.delete(note)
        self.db.commit()
