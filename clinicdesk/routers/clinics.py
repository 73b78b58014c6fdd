# clinicdesk/routers/clinics.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security, models
from ..database import get_db
from ..security import ClinicContext

router = APIRouter(
    prefix="/clinics",
    tags=["Clinics"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


@router.post("", response_model=schemas.ClinicResponse, status_code=status.HTTP_201_CREATED)
def create_clinic(
    clinic: schemas.ClinicCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """
    Create a clinic owned by the current user. The clinic starts on the free plan.
    """
    return crud.create_clinic(db, clinic, current_user)


@router.get("/me", response_model=schemas.ClinicResponse)
def read_my_clinic(ctx: ClinicContext = Depends(security.get_clinic_context)):
    return ctx.clinic


@router.put("/me", response_model=schemas.ClinicResponse)
def update_my_clinic(
    clinic_update: schemas.ClinicUpdate,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(security.require_clinic_admin)
):
    return crud.update_clinic(db, ctx.clinic, clinic_update)


@router.put("/me/permissions", response_model=schemas.ClinicResponse)
def update_clinician_permissions(
    permissions: schemas.ClinicPermissions,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(security.require_clinic_admin)
):
    return crud.update_clinic_permissions(db, ctx.clinic, permissions)


@router.get("/me/members", response_model=List[schemas.MemberResponse])
def list_members(
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(security.require_clinic_permission("clinicians"))
):
    return crud.get_members(db, ctx.clinic_id)


@router.post("/me/members", response_model=schemas.MemberResponse, status_code=status.HTTP_201_CREATED)
def add_member(
    member: schemas.MemberCreate,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(security.require_clinic_admin)
):
    """
    Add an existing user (by username or email) to the clinic, subject to the plan's clinician limit.
    """
    return crud.add_member(db, ctx.clinic_id, member)


@router.delete("/me/members/{member_id}", response_model=schemas.MessageResponse)
def remove_member(
    member_id: int,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(security.require_clinic_admin)
):
    crud.remove_member(db, ctx.clinic, member_id)
    return {"message": "Member removed"}
