"""
Book and reading-status operations for a single signed-in user.

Every function takes the caller's local user id explicitly and scopes all reads
and writes to it. Multi-step writes commit step by step; read paths tolerate
the partial states that leaves behind (a book without a status row is unread).
"""
import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, NoResultFound
from sqlalchemy.orm import Session

from app.core.errors import NotFoundOrForbiddenError, StatusNotFoundError, ValidationError
from app.models import Book, ReadingState, ReadingStatus
from app.schemas.book import BookCreate
from app.utils.instrumentation import log_event
from app.utils.timing import time_operation, utcnow

logger = logging.getLogger(__name__)

MIN_PUBLISHED_YEAR = 1000
MIN_RATING = 1
MAX_RATING = 5
STATUS_FILTER_ALL = "all"


@dataclass
class BookFilter:
    search_text: Optional[str] = None
    status_equals: str = STATUS_FILTER_ALL


@dataclass
class BookWithStatus:
    book: Book
    reading_status: Optional[ReadingStatus]

    @property
    def status(self) -> str:
        if self.reading_status is None:
            return ReadingState.UNREAD.value
        return self.reading_status.status


def _clean_book_attrs(attrs: BookCreate) -> dict:
    title = (attrs.title or "").strip()
    author = (attrs.author or "").strip()
    if not title:
        raise ValidationError("Title is required")
    if not author:
        raise ValidationError("Author is required")

    year = attrs.published_year
    if year is not None:
        current_year = utcnow().year
        if isinstance(year, bool) or not MIN_PUBLISHED_YEAR <= year <= current_year:
            raise ValidationError(
                f"Published year must be between {MIN_PUBLISHED_YEAR} and {current_year}"
            )

    return {
        "title": title,
        "author": author,
        "published_year": year,
        "genre": attrs.genre or None,
        "isbn": attrs.isbn or None,
        "cover_url": attrs.cover_url or None,
    }


def _parse_state(value: str) -> ReadingState:
    try:
        return ReadingState(value)
    except ValueError:
        allowed = ", ".join(state.value for state in ReadingState)
        raise ValidationError(f"Invalid status. Must be one of: {allowed}")


def _validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be an integer")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    return rating


def _get_owned_book(db: Session, book_id: UUID, owner_user_id: UUID) -> Book:
    try:
        return (
            db.query(Book)
            .filter(Book.id == book_id, Book.user_id == owner_user_id)
            .one()
        )
    except NoResultFound:
        # Missing and foreign books look the same to the caller
        raise NotFoundOrForbiddenError()


def _get_status(db: Session, book_id: UUID, owner_user_id: UUID) -> Optional[ReadingStatus]:
    return (
        db.query(ReadingStatus)
        .filter(ReadingStatus.book_id == book_id, ReadingStatus.user_id == owner_user_id)
        .one_or_none()
    )


def _get_or_create_status(db: Session, book: Book) -> ReadingStatus:
    """Upsert helper: return the book's status row, inserting an unread one if missing."""
    reading_status = _get_status(db, book.id, book.user_id)
    if reading_status is not None:
        return reading_status

    reading_status = ReadingStatus(
        book_id=book.id,
        user_id=book.user_id,
        status=ReadingState.UNREAD.value,
    )
    db.add(reading_status)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # Another request inserted it first (unique book_id)
        reading_status = _get_status(db, book.id, book.user_id)
        if reading_status is None:
            raise
        return reading_status

    db.refresh(reading_status)
    logger.info(f"Created missing reading status: book_id={book.id}, user_id={book.user_id}")
    return reading_status


def create_book(db: Session, owner_user_id: UUID, attrs: BookCreate) -> Book:
    """
    Insert a book and its initial unread status.

    The two inserts are committed separately. If the status insert fails the
    book stays without a status row, which list_books reports as unread.
    """
    values = _clean_book_attrs(attrs)

    book = Book(user_id=owner_user_id, **values)
    db.add(book)
    db.commit()
    db.refresh(book)

    reading_status = ReadingStatus(
        book_id=book.id,
        user_id=owner_user_id,
        status=ReadingState.UNREAD.value,
    )
    db.add(reading_status)
    db.flush()

    log_event(db, "book_created", user_id=owner_user_id, properties={"book_id": str(book.id)})
    db.commit()
    db.refresh(book)

    logger.info(f"Created book: book_id={book.id}, user_id={owner_user_id}")
    return book


def get_book(db: Session, book_id: UUID, owner_user_id: UUID) -> BookWithStatus:
    book = _get_owned_book(db, book_id, owner_user_id)
    return BookWithStatus(book=book, reading_status=_get_status(db, book.id, owner_user_id))


def update_book(db: Session, book_id: UUID, owner_user_id: UUID, attrs: BookCreate) -> Book:
    values = _clean_book_attrs(attrs)
    book = _get_owned_book(db, book_id, owner_user_id)

    for key, value in values.items():
        setattr(book, key, value)
    db.commit()
    db.refresh(book)
    return book


def set_reading_status(
    db: Session,
    book_id: UUID,
    owner_user_id: UUID,
    new_status: str,
) -> ReadingStatus:
    """
    Move a book to new_status. Any transition is allowed.

    started_at and completed_at mark the first time the book entered
    reading / completed; they are set once and never cleared.
    """
    state = _parse_state(new_status)
    book = _get_owned_book(db, book_id, owner_user_id)

    reading_status = _get_status(db, book.id, owner_user_id)
    if reading_status is None:
        reading_status = ReadingStatus(book_id=book.id, user_id=owner_user_id)
        db.add(reading_status)

    now = utcnow()
    previous = reading_status.status
    reading_status.status = state.value
    if state == ReadingState.READING and reading_status.started_at is None:
        reading_status.started_at = now
    if state == ReadingState.COMPLETED and reading_status.completed_at is None:
        reading_status.completed_at = now
    reading_status.updated_at = now
    db.flush()

    log_event(db, "reading_status_changed", user_id=owner_user_id, properties={
        "book_id": str(book.id),
        "from": previous,
        "to": state.value,
    })
    db.commit()
    db.refresh(reading_status)
    return reading_status


def set_rating(db: Session, book_id: UUID, owner_user_id: UUID, rating: int) -> ReadingStatus:
    rating = _validate_rating(rating)
    book = _get_owned_book(db, book_id, owner_user_id)

    reading_status = _get_status(db, book.id, owner_user_id)
    if reading_status is None:
        raise StatusNotFoundError()

    reading_status.rating = rating
    reading_status.updated_at = utcnow()
    db.commit()
    db.refresh(reading_status)
    return reading_status


def open_review(db: Session, book_id: UUID, owner_user_id: UUID) -> ReadingStatus:
    """Load the review workflow for a book; materializes an unread status if missing."""
    book = _get_owned_book(db, book_id, owner_user_id)
    return _get_or_create_status(db, book)


def set_review(
    db: Session,
    book_id: UUID,
    owner_user_id: UUID,
    review_text: Optional[str],
    rating: Optional[int] = None,
) -> ReadingStatus:
    """Attach a review (and optionally a rating) to the book's status row."""
    if rating is not None:
        rating = _validate_rating(rating)
    book = _get_owned_book(db, book_id, owner_user_id)
    reading_status = _get_or_create_status(db, book)

    reading_status.review = review_text or None
    if rating is not None:
        reading_status.rating = rating
    reading_status.updated_at = utcnow()
    db.commit()
    db.refresh(reading_status)
    return reading_status


def delete_book(db: Session, book_id: UUID, owner_user_id: UUID) -> None:
    """
    Delete a book and its status, status first.

    Each delete is committed on its own; a failure on the book delete leaves a
    statusless book behind.
    """
    book = _get_owned_book(db, book_id, owner_user_id)
    book_pk = book.id

    (
        db.query(ReadingStatus)
        .filter(ReadingStatus.book_id == book_pk, ReadingStatus.user_id == owner_user_id)
        .delete(synchronize_session=False)
    )
    db.commit()

    db.query(Book).filter(Book.id == book_pk, Book.user_id == owner_user_id).delete(
        synchronize_session=False
    )
    db.flush()

    log_event(db, "book_deleted", user_id=owner_user_id, properties={"book_id": str(book_pk)})
    db.commit()
    logger.info(f"Deleted book: book_id={book_pk}, user_id={owner_user_id}")


def list_books(db: Session, owner_user_id: UUID, book_filter: Optional[BookFilter] = None) -> List[BookWithStatus]:
    """
    Books owned by the user with their status, ordered by title.

    search_text is a case-insensitive substring match over title, author and
    genre. status_equals is "all" or one reading state; a book without a status
    row counts as unread.
    """
    book_filter = book_filter or BookFilter()
    status_equals = (book_filter.status_equals or STATUS_FILTER_ALL).strip().lower()
    if status_equals != STATUS_FILTER_ALL:
        status_equals = _parse_state(status_equals).value

    query = (
        db.query(Book, ReadingStatus)
        .outerjoin(ReadingStatus, ReadingStatus.book_id == Book.id)
        .filter(Book.user_id == owner_user_id)
    )

    search_text = (book_filter.search_text or "").strip()
    if search_text:
        query = query.filter(
            or_(
                Book.title.icontains(search_text, autoescape=True),
                Book.author.icontains(search_text, autoescape=True),
                Book.genre.icontains(search_text, autoescape=True),
            )
        )

    if status_equals != STATUS_FILTER_ALL:
        query = query.filter(
            func.coalesce(ReadingStatus.status, ReadingState.UNREAD.value) == status_equals
        )

    query = query.order_by(func.lower(Book.title).asc(), Book.title.asc(), Book.created_at.asc())

    with time_operation(f"list_books user_id={owner_user_id}", log_fn=logger.debug):
        rows = query.all()

    return [BookWithStatus(book=book, reading_status=reading_status) for book, reading_status in rows]
