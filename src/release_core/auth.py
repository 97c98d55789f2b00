"""Personal access token issuing and verification."""
import hashlib
import logging
import secrets
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import models
from .models import _utcnow

logger = logging.getLogger("release-core.auth")

TOKEN_PREFIX = "rt_"


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a raw token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_token() -> str:
    """New random token, e.g. ``rt_3Qx...``."""
    return TOKEN_PREFIX + secrets.token_urlsafe(32)


def create_access_token(
    db: Session,
    user: models.User,
    name: str,
    expires_at=None,
) -> tuple[models.PersonalAccessToken, str]:
    """
    Issue a personal access token for a user.

    Returns:
        Tuple of (token record, raw token). The raw token is not stored and
        cannot be recovered later.
    """
    raw = generate_token()
    record = models.PersonalAccessToken(
        user_id=user.id,
        name=name,
        token_hash=hash_token(raw),
        expires_at=expires_at,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(f"Issued access token '{name}' for {user.email}")
    return record, raw


def authenticate_token(db: Session, token: str) -> Optional[models.User]:
    """Resolve a raw token to its user, or None if unknown, revoked or expired."""
    if not token:
        return None
    record = (
        db.query(models.PersonalAccessToken)
        .filter(models.PersonalAccessToken.token_hash == hash_token(token))
        .first()
    )
    if not record or not record.is_active:
        return None

    record.last_used_at = _utcnow()
    db.commit()
    return record.user


def revoke_token(db: Session, token_id: UUID, user_id: Optional[UUID] = None) -> bool:
    """Revoke a token; with ``user_id`` only that user's tokens match."""
    query = db.query(models.PersonalAccessToken).filter(models.PersonalAccessToken.id == token_id)
    if user_id is not None:
        query = query.filter(models.PersonalAccessToken.user_id == user_id)
    record = query.first()
    if not record:
        return False
    record.revoked_at = _utcnow()
    db.commit()
    return True


def get_or_create_user(db: Session, email: str, name: Optional[str] = None) -> models.User:
    """Find a user by email or create one."""
    user = db.query(models.User).filter(models.User.email == email).first()
    if user:
        return user
    user = models.User(email=email, name=name)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {email}")
    return user
