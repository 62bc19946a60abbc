"""
Book endpoints for the signed-in user's shelf.
"""
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from app.core.auth import get_current_user
from app.database import get_db
from app.models import Book, User
from app.schemas.book import (
    BookCreate,
    BookUpdate,
    BookWithStatusResponse,
    ReadingStatusResponse,
    SetRatingRequest,
    SetReviewRequest,
    SetStatusRequest,
)
from app.services import library

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/books", tags=["books"])


def _book_response(db: Session, book_id: UUID, user: User) -> BookWithStatusResponse:
    return BookWithStatusResponse.from_entry(library.get_book(db, book_id, user.id))


def _mutated_book_response(book: Book) -> BookWithStatusResponse:
    # The service returns the written Book; its status comes through the relationship
    return BookWithStatusResponse.from_entry(
        library.BookWithStatus(book=book, reading_status=book.reading_status)
    )


@router.get("", response_model=List[BookWithStatusResponse])
def list_books(
    q: Optional[str] = Query(None, description="Search in title, author or genre"),
    status_filter: str = Query("all", alias="status", description="all, unread, reading or completed"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the user's books with their reading status, ordered by title."""
    entries = library.list_books(
        db,
        user.id,
        library.BookFilter(search_text=q, status_equals=status_filter),
    )
    logger.info(f"Fetched {len(entries)} books", extra={"q": q, "status": status_filter})
    return [BookWithStatusResponse.from_entry(entry) for entry in entries]


@router.post("", response_model=BookWithStatusResponse, status_code=status.HTTP_201_CREATED)
def create_book(
    payload: BookCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    book = library.create_book(db, user.id, payload)
    return _mutated_book_response(book)


@router.get("/{book_id}", response_model=BookWithStatusResponse)
def get_book(
    book_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _book_response(db, book_id, user)


@router.put("/{book_id}", response_model=BookWithStatusResponse)
def update_book(
    book_id: UUID,
    payload: BookUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    book = library.update_book(db, book_id, user.id, payload)
    return _mutated_book_response(book)


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(
    book_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    library.delete_book(db, book_id, user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{book_id}/status", response_model=ReadingStatusResponse)
def set_status(
    book_id: UUID,
    payload: SetStatusRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return library.set_reading_status(db, book_id, user.id, payload.status)


@router.put("/{book_id}/rating", response_model=ReadingStatusResponse)
def set_rating(
    book_id: UUID,
    payload: SetRatingRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return library.set_rating(db, book_id, user.id, payload.rating)


@router.get("/{book_id}/review", response_model=ReadingStatusResponse)
def open_review(
    book_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Load the review form; creates an unread status if the book has none."""
    return library.open_review(db, book_id, user.id)


@router.put("/{book_id}/review", response_model=ReadingStatusResponse)
def set_review(
    book_id: UUID,
    payload: SetReviewRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return library.set_review(db, book_id, user.id, payload.review, rating=payload.rating)
