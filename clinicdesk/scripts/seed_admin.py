# clinicdesk/scripts/seed_admin.py
import os
import sys

from sqlalchemy.orm import Session

from .. import models
from ..core.logging import setup_logging
from ..database import SessionLocal, create_tables
from ..security import get_password_hash


def get_env(name: str, default: str | None = None, required: bool = False) -> str:
    val = os.getenv(name, default)
    if required and not val:
        raise RuntimeError(f"Missing required env var: {name}")
    return val or ""


def upsert_admin(db: Session) -> str:
    """Create or reset the platform super admin from ADMIN_* env vars."""
    username = get_env("ADMIN_USERNAME", "admin")
    email = get_env("ADMIN_EMAIL", "admin@clinicdesk.app")
    raw_password = get_env("ADMIN_PASSWORD", required=True)

    user = db.query(models.User).filter(
        (models.User.username == username) | (models.User.email == email)
    ).first()

    if user:
        user.username = username
        user.email = email
        user.role = models.UserRole.super_admin
        user.is_active = True
        user.is_restricted = False
        user.password_hash = get_password_hash(raw_password)
        action = "updated"
    else:
        user = models.User(
            username=username,
            email=email,
            role=models.UserRole.super_admin,
            is_active=True,
            password_hash=get_password_hash(raw_password),
        )
        db.add(user)
        action = "created"

    db.commit()
    print(f"Admin user {action}: username='{username}', email='{email}'")
    return action


def main() -> int:
    setup_logging()
    try:
        get_env("ADMIN_PASSWORD", required=True)
    except RuntimeError as e:
        print(f"Error: {e}")
        return 1

    create_tables()
    db = SessionLocal()
    try:
        upsert_admin(db)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
