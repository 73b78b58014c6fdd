# clinicdesk/crud.py - users, clinics and clinic membership
from sqlalchemy.orm import Session
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timezone
from typing import Optional, List
import logging

from fastapi import status

from . import models, schemas
from .exceptions import ApiError
from .security import get_password_hash, verify_password

logger = logging.getLogger(__name__)
# Services import crud, so they are imported lazily inside functions here.


# --- Users ---
def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_identifier(db: Session, identifier: str) -> Optional[models.User]:
    """Get user by username OR email."""
    return db.query(models.User).filter(
        or_(models.User.username == identifier, models.User.email == identifier)
    ).first()


def create_user(db: Session, user: schemas.UserCreate, role: models.UserRole = models.UserRole.user) -> models.User:
    existing = db.query(models.User).filter(
        or_(models.User.username == user.username, models.User.email == user.email)
    ).first()
    if existing:
        raise ApiError(status.HTTP_409_CONFLICT, "A user with this username or email already exists")

    db_user = models.User(
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        password_hash=get_password_hash(user.password),
        role=role,
        is_active=True,
        is_restricted=False,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"Created user '{db_user.username}' with role {role.value}")
    return db_user


def authenticate_user(db: Session, identifier: str, password: str) -> Optional[models.User]:
    user = get_user_by_identifier(db, identifier)
    if not user or not verify_password(password, user.password_hash):
        return None
    user.last_login = datetime.now(timezone.utc)
    db.commit()
    return user


# --- Clinics ---
def get_clinic(db: Session, clinic_id: int) -> Optional[models.Clinic]:
    return db.query(models.Clinic).filter(models.Clinic.id == clinic_id).first()


def create_clinic(db: Session, clinic: schemas.ClinicCreate, owner: models.User) -> models.Clinic:
    """Create a clinic, make the owner its admin member and provision the free subscription."""
    from .services.subscription_service import SubscriptionService

    if db.query(models.Clinic).filter(models.Clinic.owner_id == owner.id).first():
        raise ApiError(status.HTTP_409_CONFLICT, "You already own a clinic")

    db_clinic = models.Clinic(
        **clinic.model_dump(),
        owner_id=owner.id,
        permissions=dict(models.DEFAULT_CLINIC_PERMISSIONS),
    )
    db.add(db_clinic)
    db.flush()
    db.add(models.ClinicMember(clinic_id=db_clinic.id, user_id=owner.id, role=models.MemberRole.admin))
    db.commit()
    db.refresh(db_clinic)
    logger.info(f"Clinic {db_clinic.id} '{db_clinic.name}' created by user {owner.id}")

    SubscriptionService(db).check_subscription_status(db_clinic.id)
    return db_clinic


def update_clinic(db: Session, clinic: models.Clinic, clinic_update: schemas.ClinicUpdate) -> models.Clinic:
    for key, value in clinic_update.model_dump(exclude_unset=True).items():
        setattr(clinic, key, value)
    db.commit()
    db.refresh(clinic)
    return clinic


def update_clinic_permissions(db: Session, clinic: models.Clinic, permissions: schemas.ClinicPermissions) -> models.Clinic:
    clinic.permissions = permissions.model_dump()
    db.commit()
    db.refresh(clinic)
    logger.info(f"Clinic {clinic.id} permissions updated")
    return clinic


# --- Members ---
def get_members(db: Session, clinic_id: int) -> List[models.ClinicMember]:
    return (
        db.query(models.ClinicMember)
        .filter(models.ClinicMember.clinic_id == clinic_id)
        .order_by(models.ClinicMember.id)
        .all()
    )


def get_member(db: Session, clinic_id: int, member_id: int) -> Optional[models.ClinicMember]:
    return db.query(models.ClinicMember).filter(
        models.ClinicMember.id == member_id,
        models.ClinicMember.clinic_id == clinic_id,
    ).first()


def add_member(db: Session, clinic_id: int, member: schemas.MemberCreate) -> models.ClinicMember:
    from .services.subscription_service import LimitService

    user = get_user_by_identifier(db, member.identifier)
    if user is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "User not found")
    LimitService(db).enforce_clinician_limit(clinic_id)

    db_member = models.ClinicMember(clinic_id=clinic_id, user_id=user.id, role=member.role)
    db.add(db_member)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ApiError(status.HTTP_409_CONFLICT, "User is already a member of this clinic")
    db.refresh(db_member)
    logger.info(f"User {user.id} added to clinic {clinic_id} as {member.role.value}")
    return db_member


def remove_member(db: Session, clinic: models.Clinic, member_id: int) -> None:
    db_member = get_member(db, clinic.id, member_id)
    if db_member is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "Clinic member not found")
    if db_member.user_id == clinic.owner_id:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "The clinic owner cannot be removed")
    db.delete(db_member)
    db.commit()
    logger.info(f"Member {member_id} removed from clinic {clinic.id}")
