"""
Helper functions for mirroring Clerk users into the local users table.
"""
from typing import Iterable, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from app.core.errors import MissingEmailError
from app.models import User
from app.utils.instrumentation import log_event
import logging

logger = logging.getLogger(__name__)


def select_email(candidate_emails: Iterable[Optional[str]]) -> str:
    """
    Return the first usable address from a list of candidates.

    Raises:
        MissingEmailError: if no candidate is a non-empty string
    """
    for candidate in candidate_emails or []:
        if candidate and candidate.strip():
            return candidate.strip()
    raise MissingEmailError()


def default_username(email: str, username: Optional[str] = None) -> str:
    """Use the provided username, falling back to the email local part."""
    if username and username.strip():
        return username.strip()
    return email.split("@")[0]


def get_user_by_external_id(db: Session, external_id: str) -> Optional[User]:
    return db.query(User).filter(User.external_id == external_id).one_or_none()


def ensure_user(db: Session, external_id: str, email: Optional[str] = "") -> User:
    """
    Get or create the local User for a Clerk subject.

    Normally the user.created webhook has already materialized the row. When a
    signed-in user acts before that event was processed, the row is created here
    instead (lazy creation). Idempotent and safe under concurrent requests: a
    unique-constraint race is resolved by re-fetching.

    Args:
        db: Database session
        external_id: Clerk user ID (JWT sub claim)
        email: Email from the session token, only used when creating

    Returns:
        User object (existing or newly created)

    Raises:
        MissingEmailError: user does not exist yet and no email is available
    """
    user = get_user_by_external_id(db, external_id)
    if user:
        return user

    normalized_email = select_email([email])

    new_user = User(
        external_id=external_id,
        email=normalized_email,
        username=default_username(normalized_email),
    )
    db.add(new_user)

    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        # Webhook or a parallel request created it first
        user = get_user_by_external_id(db, external_id)
        if user:
            logger.info(f"[LAZY_USER] race_refetch: external_id={external_id}, user_id={user.id}")
            return user
        raise

    log_event(db, "user_lazily_created", user_id=new_user.id, properties={"external_id": external_id})
    db.commit()
    db.refresh(new_user)

    logger.info(f"[LAZY_USER] created: external_id={external_id}, user_id={new_user.id}")
    return new_user
