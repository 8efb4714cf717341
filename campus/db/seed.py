"""Database seeding for the campus placement portal.

Creates the bootstrap administrator. Admins cannot self-register, so the
first one comes from ``BOOTSTRAP_ADMIN_EMAIL`` / ``BOOTSTRAP_ADMIN_PASSWORD``.

Usage:
    python -m campus.db.seed
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from campus.core.approval.states import Approved
from campus.core.config import get_settings
from campus.core.logger import setup_logging
from campus.core.security import get_password_hash
from campus.db.models import Account, AccountRole

logger = logging.getLogger(__name__)


def seed_admin(
    db: Session,
    email: str,
    password: str,
    *,
    first_name: str = "Platform",
    last_name: str = "Admin",
) -> Account:
    """
    Create an approved admin account.

    Idempotent: if the email is already registered, returns the existing
    account unchanged.
    """
    email = email.strip().lower()
    existing = db.query(Account).filter(Account.email == email).first()
    if existing:
        if existing.role != AccountRole.ADMIN.value:
            logger.warning("Bootstrap email %s belongs to a %s account", email, existing.role)
        return existing

    admin = Account(
        id=uuid.uuid4(),
        email=email,
        password_hash=get_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        role=AccountRole.ADMIN.value,
        is_active=True,
        is_verified=True,
    )
    admin.approval_state = Approved(by=admin.id, at=datetime.utcnow(), notes="Bootstrap administrator")
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("Created bootstrap admin %s", email)
    return admin


def seed_from_settings(db: Session) -> Optional[Account]:
    """Seed the bootstrap admin if both settings are present."""
    settings = get_settings()
    if not settings.bootstrap_admin_email or not settings.bootstrap_admin_password:
        logger.info("BOOTSTRAP_ADMIN_EMAIL/PASSWORD not set, nothing to seed")
        return None
    return seed_admin(db, settings.bootstrap_admin_email, settings.bootstrap_admin_password)


if __name__ == "__main__":
    from campus.db.session import SessionLocal

    setup_logging()
    session = SessionLocal()
    try:
        seed_from_settings(session)
    finally:
        session.close()
