# clinicdesk/security.py
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models
from .config import get_settings
from .database import get_db

security_logger = logging.getLogger("security")

pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__rounds=4,
    argon2__memory_cost=65536,
    argon2__parallelism=1,
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/token")

PLATFORM_ADMIN_ROLES = (models.UserRole.super_admin, models.UserRole.admin)


# Password utilities
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Unknown hash formats are a non-match, not a crash
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# JWT utilities
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))

    to_encode.update({
        "exp": expire,
        "type": "access",
        "iat": now,
        "jti": secrets.token_urlsafe(16),
    })
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
    """Decode a JWT, returning None when it is invalid, expired or of the wrong type."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload


# Dependencies for FastAPI
def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> models.User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_token(token)
    if payload is None:
        raise credentials_exception

    user_id = payload.get("user_id")
    if user_id is None:
        raise credentials_exception

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if user is None:
        raise credentials_exception
    if not user.is_active:
        security_logger.warning(f"Inactive user {user.username} attempted access")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")
    if user.is_restricted:
        security_logger.warning(f"Restricted user {user.username} attempted access")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is restricted")
    return user


def require_role(*allowed_roles: models.UserRole):
    """Dependency factory: only the listed platform roles pass."""
    def role_dependency(current_user: models.User = Depends(get_current_user)) -> models.User:
        if current_user.role not in allowed_roles:
            security_logger.warning(
                f"User {current_user.username} with role {current_user.role.value} denied; needs one of "
                f"{[r.value for r in allowed_roles]}"
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user
    return role_dependency


require_platform_admin = require_role(*PLATFORM_ADMIN_ROLES)


@dataclass
class ClinicContext:
    """The clinic a request acts on, and how the caller relates to it."""
    user: models.User
    clinic: models.Clinic
    member: Optional[models.ClinicMember]
    is_owner: bool

    @property
    def clinic_id(self) -> int:
        return self.clinic.id

    @property
    def is_clinic_admin(self) -> bool:
        return self.is_owner or (self.member is not None and self.member.role == models.MemberRole.admin)

    def has_permission(self, permission: str) -> bool:
        if self.is_clinic_admin:
            return True
        permissions = dict(models.DEFAULT_CLINIC_PERMISSIONS)
        permissions.update(self.clinic.permissions or {})
        return bool(permissions.get(f"clinician_{permission}", False))


def get_clinic_context(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ClinicContext:
    """Resolve the caller's clinic: the clinic they own first, otherwise their membership."""
    clinic = (
        db.query(models.Clinic)
        .filter(models.Clinic.owner_id == current_user.id)
        .order_by(models.Clinic.id)
        .first()
    )
    if clinic is not None:
        member = (
            db.query(models.ClinicMember)
            .filter(models.ClinicMember.clinic_id == clinic.id, models.ClinicMember.user_id == current_user.id)
            .first()
        )
        return ClinicContext(user=current_user, clinic=clinic, member=member, is_owner=True)

    member = (
        db.query(models.ClinicMember)
        .filter(models.ClinicMember.user_id == current_user.id)
        .order_by(models.ClinicMember.id)
        .first()
    )
    if member is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You don't have access to any clinic")
    return ClinicContext(user=current_user, clinic=member.clinic, member=member, is_owner=False)


def require_clinic_permission(permission: str):
    """Dependency factory gating a route on a clinician right (e.g. "invoices")."""
    def permission_dependency(ctx: ClinicContext = Depends(get_clinic_context)) -> ClinicContext:
        if not ctx.has_permission(permission):
            security_logger.warning(
                f"User {ctx.user.username} lacks clinic permission '{permission}' in clinic {ctx.clinic_id}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission '{permission}' is required"
            )
        return ctx
    return permission_dependency


def require_clinic_admin(ctx: ClinicContext = Depends(get_clinic_context)) -> ClinicContext:
    if not ctx.is_clinic_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Clinic admin access required")
    return ctx
