from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from uuid import UUID


class BookCreate(BaseModel):
    title: str
    author: str
    published_year: Optional[int] = None
    genre: Optional[str] = None
    isbn: Optional[str] = None
    cover_url: Optional[str] = None


class BookUpdate(BookCreate):
    """Full replacement of a book's editable fields."""


class ReadingStatusResponse(BaseModel):
    id: UUID
    book_id: UUID
    status: str
    rating: Optional[int]
    review: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookResponse(BaseModel):
    id: UUID
    title: str
    author: str
    published_year: Optional[int]
    genre: Optional[str]
    isbn: Optional[str]
    cover_url: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookWithStatusResponse(BookResponse):
    # "unread" when the book has no status row yet
    status: str
    reading_status: Optional[ReadingStatusResponse] = None

    @classmethod
    def from_entry(cls, entry) -> "BookWithStatusResponse":
        """Build from a library.BookWithStatus."""
        base = BookResponse.model_validate(entry.book)
        return cls(
            **base.model_dump(),
            status=entry.status,
            reading_status=(
                ReadingStatusResponse.model_validate(entry.reading_status)
                if entry.reading_status is not None else None
            ),
        )


class SetStatusRequest(BaseModel):
    status: str  # one of: unread | reading | completed


class SetRatingRequest(BaseModel):
    rating: int


class SetReviewRequest(BaseModel):
    review: Optional[str] = None
    rating: Optional[int] = None
