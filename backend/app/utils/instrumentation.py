"""
Server-side event logging helper.

Logs events to both the database (for querying) and structured logs (for immediate visibility).
"""
import logging
from typing import Optional, Dict, Any
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from app.models import EventLog

logger = logging.getLogger(__name__)


def log_event(
    db: Session,
    event_name: str,
    user_id: Optional[UUID] = None,
    properties: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log an event to the database and structured logs.

    Args:
        db: Database session
        event_name: Name of the event (e.g., "book_created", "identity_user_deleted")
        user_id: Optional local user ID
        properties: Optional dict of JSON-serializable event properties

    Note: This function does NOT commit. The row rides on the caller's next
    commit. It is written inside a SAVEPOINT, so a failed insert only rolls back
    the event row and the caller's transaction stays usable. Callers flush their
    own changes first.
    """
    try:
        with db.begin_nested():
            event = EventLog(
                event_name=event_name,
                user_id=user_id,
                properties=properties,
            )
            db.add(event)

        logger.info("event_logged", extra={
            "event_name": event_name,
            "user_id": str(user_id) if user_id else None,
            "properties": properties,
        })
    except SQLAlchemyError as e:
        logger.warning(
            "Failed to log event: event_name=%s, user_id=%s, error=%s",
            event_name,
            user_id,
            str(e),
            exc_info=True,
        )
