# clinicdesk/routers/clients.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import schemas, security, models
from ..database import get_db
from ..dependencies import require_feature
from ..security import ClinicContext
from ..services.client_service import ClientService

router = APIRouter(
    prefix="/clients",
    tags=["Clients"],
    dependencies=[Depends(security.get_current_user), Depends(require_feature("clients"))],
    responses={404: {"description": "Not found"}},
)

require_clients = security.require_clinic_permission("clients")


@router.post("", response_model=schemas.ClientResponse, status_code=status.HTTP_201_CREATED)
def create_client(
    client: schemas.ClientCreate,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(require_clients)
):
    """
    Create a client. Refused with 403 once the clinic reaches its plan's client limit.
    """
    return ClientService(db).create_client(ctx.clinic_id, client, added_by=ctx.user.id)


@router.get("", response_model=schemas.ClientListResponse)
def list_clients(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    status_filter: Optional[models.ClientStatus] = Query(None, alias="status"),
    assigned_clinician_id: Optional[int] = None,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(require_clients)
):
    return ClientService(db).list_clients(
        ctx.clinic_id, page=page, limit=limit, search=search,
        status_filter=status_filter, assigned_clinician_id=assigned_clinician_id,
    )


@router.get("/{client_id}", response_model=schemas.ClientResponse)
def read_client(client_id: int, db: Session = Depends(get_db), ctx: ClinicContext = Depends(require_clients)):
    return ClientService(db).get_client(ctx.clinic_id, client_id)


@router.put("/{client_id}", response_model=schemas.ClientResponse)
def update_client(
    client_id: int,
    client_update: schemas.ClientUpdate,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(require_clients)
):
    return ClientService(db).update_client(ctx.clinic_id, client_id, client_update)


@router.delete("/{client_id}", response_model=schemas.MessageResponse)
def delete_client(client_id: int, db: Session = Depends(get_db), ctx: ClinicContext = Depends(require_clients)):
    ClientService(db).delete_client(ctx.clinic_id, client_id)
    return {"message": "Client deleted"}


# --- Notes ---
@router.post("/{client_id}/notes", response_model=schemas.ClientNoteResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_feature("notes"))])
def add_client_note(
    client_id: int,
    note: schemas.ClientNoteCreate,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(require_clients)
):
    return ClientService(db).add_note(ctx.clinic_id, client_id, note, author_id=ctx.user.id)


@router.get("/{client_id}/notes", response_model=List[schemas.ClientNoteResponse],
            dependencies=[Depends(require_feature("notes"))])
def list_client_notes(client_id: int, db: Session = Depends(get_db), ctx: ClinicContext = Depends(require_clients)):
    return ClientService(db).list_notes(ctx.clinic_id, client_id)


@router.delete("/{client_id}/notes/{note_id}", response_model=schemas.MessageResponse)
def delete_client_note(
    client_id: int,
    note_id: int,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(require_clients)
):
    ClientService(db).delete_note(ctx.clinic_id, client_id, note_id)
    return {"message": "Note deleted"}
