# clinicdesk/routers/appointments.py
from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import schemas, security, models
from ..database import get_db
from ..dependencies import require_feature
from ..security import ClinicContext
from ..services.appointment_service import AppointmentService

router = APIRouter(
    prefix="/appointments",
    tags=["Appointments"],
    dependencies=[Depends(security.get_current_user), Depends(require_feature("appointments"))],
    responses={404: {"description": "Not found"}},
)


@router.post("", response_model=schemas.AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    appointment: schemas.AppointmentCreate,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(security.get_clinic_context)
):
    """
    Book a session for a client. The end time defaults to the session's duration,
    and a clinician cannot be double-booked.
    """
    return AppointmentService(db).create_appointment(ctx.clinic_id, appointment, added_by=ctx.user.id)


@router.get("", response_model=List[schemas.AppointmentResponse])
def list_appointments(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    client_id: Optional[int] = None,
    clinician_id: Optional[int] = None,
    status_filter: Optional[models.AppointmentStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(security.get_clinic_context)
):
    return AppointmentService(db).list_appointments(
        ctx.clinic_id, start_date=start_date, end_date=end_date, client_id=client_id,
        clinician_id=clinician_id, status_filter=status_filter, skip=skip, limit=limit,
    )


@router.get("/{appointment_id}", response_model=schemas.AppointmentResponse)
def read_appointment(appointment_id: int, db: Session = Depends(get_db),
                     ctx: ClinicContext = Depends(security.get_clinic_context)):
    return AppointmentService(db).get_appointment(ctx.clinic_id, appointment_id)


@router.put("/{appointment_id}", response_model=schemas.AppointmentResponse)
def update_appointment(
    appointment_id: int,
    appointment_update: schemas.AppointmentUpdate,
    db: Session = Depends(get_db),
    ctx: ClinicContext = Depends(security.get_clinic_context)
):
    return AppointmentService(db).update_appointment(ctx.clinic_id, appointment_id, appointment_update)


@router.post("/{appointment_id}/cancel", response_model=schemas.AppointmentResponse)
def cancel_appointment(appointment_id: int, db: Session = Depends(get_db),
                       ctx: ClinicContext = Depends(security.get_clinic_context)):
    return AppointmentService(db).cancel_appointment(ctx.clinic_id, appointment_id)
