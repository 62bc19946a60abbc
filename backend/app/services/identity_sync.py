"""
Projection of Clerk user lifecycle events into the local users table.

Events arrive already verified (see app.routers.webhooks). Every handler only
touches users / books / reading_status rows; none of them call back into Clerk.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    DuplicateUserError,
    MissingEmailError,
    PartialCascadeFailure,
    UserNotFoundError,
)
from app.core.user_helpers import default_username, get_user_by_external_id, select_email
from app.models import Book, ReadingStatus, User
from app.utils.instrumentation import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeStep:
    """Delete every row of `model` whose `column` equals `user_id`."""
    name: str
    model: Any
    column: str
    user_id: UUID

    def run(self, db: Session) -> int:
        # Bulk delete by owner: running it twice is a no-op
        return (
            db.query(self.model)
            .filter(getattr(self.model, self.column) == self.user_id)
            .delete(synchronize_session=False)
        )


@dataclass
class CascadeResult:
    user_id: UUID
    external_id: str
    deleted: Dict[str, int] = field(default_factory=dict)


def build_user_cascade(user_id: UUID) -> List[CascadeStep]:
    """Ordered plan for deleting a user: statuses, then books, then the user row."""
    return [
        CascadeStep("reading_status", ReadingStatus, "user_id", user_id),
        CascadeStep("books", Book, "user_id", user_id),
        CascadeStep("users", User, "id", user_id),
    ]


def on_identity_created(
    db: Session,
    external_id: str,
    candidate_emails: Sequence[Optional[str]],
    username: Optional[str] = None,
) -> User:
    """
    Insert the local user for a user.created event.

    This is a plain insert: a replayed event raises DuplicateUserError, which the
    webhook router treats as harmless. Any other integrity failure (an email
    already held by a different user) propagates.
    """
    email = select_email(candidate_emails)

    if get_user_by_external_id(db, external_id) is not None:
        raise DuplicateUserError(f"User with external_id={external_id} already exists")

    user = User(
        external_id=external_id,
        email=email,
        username=default_username(email, username),
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        # Only a concurrent insert of the same external_id is a replay
        if get_user_by_external_id(db, external_id) is not None:
            raise DuplicateUserError(f"User with external_id={external_id} already exists") from e
        logger.error(f"[SYNC] create failed: external_id={external_id}, email={email}, error={e}")
        raise

    log_event(db, "identity_user_created", user_id=user.id, properties={"external_id": external_id})
    db.commit()
    db.refresh(user)

    logger.info(f"[SYNC] created user: external_id={external_id}, user_id={user.id}")
    return user


def on_identity_updated(
    db: Session,
    external_id: str,
    candidate_emails: Sequence[Optional[str]],
    username: Optional[str] = None,
) -> Optional[User]:
    """
    Apply a user.updated event. Returns None when the user is not known locally;
    the update may have overtaken its own user.created delivery.
    """
    email = select_email(candidate_emails)

    user = get_user_by_external_id(db, external_id)
    if user is None:
        logger.info(f"[SYNC] update for unknown user dropped: external_id={external_id}")
        return None

    user.email = email
    user.username = default_username(email, username)
    db.flush()

    log_event(db, "identity_user_updated", user_id=user.id, properties={"external_id": external_id})
    db.commit()
    db.refresh(user)

    logger.info(f"[SYNC] updated user: external_id={external_id}, user_id={user.id}")
    return user


def on_identity_deleted(db: Session, external_id: str) -> CascadeResult:
    """
    Delete a user and everything it owns, one committed step at a time.

    The cascade is not transactional. Each step is idempotent, so a redelivered
    user.deleted event picks up where a failed run stopped.

    Raises:
        UserNotFoundError: no local user for this external_id
        PartialCascadeFailure: a step failed; earlier steps stay committed
    """
    user = get_user_by_external_id(db, external_id)
    if user is None:
        raise UserNotFoundError(f"No local user for external_id={external_id}")

    result = CascadeResult(user_id=user.id, external_id=external_id)
    completed: List[str] = []

    for step in build_user_cascade(user.id):
        try:
            result.deleted[step.name] = step.run(db)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"[CASCADE] step failed: external_id={external_id}, user_id={user.id}, "
                f"step={step.name}, completed={completed}, error={e}"
            )
            raise PartialCascadeFailure(step.name, completed, e) from e
        completed.append(step.name)
        logger.info(
            f"[CASCADE] step done: user_id={result.user_id}, step={step.name}, "
            f"rows={result.deleted[step.name]}"
        )

    log_event(db, "identity_user_deleted", user_id=result.user_id, properties={
        "external_id": external_id,
        "deleted": result.deleted,
    })
    db.commit()

    return result


def dispatch_event(db: Session, event: Dict[str, Any]) -> str:
    """
    Route a verified Clerk event to its handler.

    Returns an outcome string: created, updated, deleted, duplicate, not_found,
    missing_email or ignored. PartialCascadeFailure and database errors propagate.
    """
    event_type = event.get("type")
    data = event.get("data") or {}
    external_id = data.get("id")

    if event_type not in ("user.created", "user.updated", "user.deleted"):
        logger.info(f"[SYNC] ignoring event type={event_type}")
        return "ignored"

    if not external_id:
        logger.warning(f"[SYNC] event type={event_type} has no user id, ignoring")
        return "ignored"

    candidate_emails = [
        (address or {}).get("email_address")
        for address in (data.get("email_addresses") or [])
    ]
    username = data.get("username")

    try:
        if event_type == "user.created":
            on_identity_created(db, external_id, candidate_emails, username)
            return "created"
        if event_type == "user.updated":
            user = on_identity_updated(db, external_id, candidate_emails, username)
            return "updated" if user is not None else "not_found"
        on_identity_deleted(db, external_id)
        return "deleted"
    except DuplicateUserError:
        logger.info(f"[SYNC] duplicate user.created ignored: external_id={external_id}")
        return "duplicate"
    except UserNotFoundError:
        logger.info(f"[SYNC] user.deleted for unknown user: external_id={external_id}")
        return "not_found"
    except MissingEmailError:
        logger.error(f"[SYNC] {event_type} without email dropped: external_id={external_id}")
        return "missing_email"
