from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, JSON, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
import enum
import sqlalchemy as sa
from app.database import Base
from app.utils.timing import utcnow


class ReadingState(str, enum.Enum):
    UNREAD = "unread"
    READING = "reading"
    COMPLETED = "completed"


class User(Base):
    """
    Local mirror of a Clerk user.

    Rows are written by the identity webhook or lazily on first authenticated
    request; external_id (Clerk "sub") is the join key between both namespaces.
    """
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    external_id = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    books = relationship("Book", back_populates="owner")


class Book(Base):
    __tablename__ = "books"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    author = Column(String, nullable=False)
    published_year = Column(Integer, nullable=True)
    genre = Column(String, nullable=True)
    isbn = Column(String, nullable=True)
    cover_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="books")
    reading_status = relationship("ReadingStatus", back_populates="book", uselist=False)


class ReadingStatus(Base):
    """
    Reading progress for one book. At most one row per book.

    started_at / completed_at record the first time the book reached that
    state and are never cleared by later transitions.
    """
    __tablename__ = "reading_status"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    book_id = Column(Uuid(as_uuid=True), ForeignKey("books.id"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default=ReadingState.UNREAD.value)  # unread | reading | completed
    rating = Column(Integer, nullable=True)
    review = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    book = relationship("Book", back_populates="reading_status")

    __table_args__ = (
        UniqueConstraint("book_id", name="uq_reading_status_book_id"),
        sa.CheckConstraint("status IN ('unread', 'reading', 'completed')", name="ck_reading_status_status"),
        sa.CheckConstraint("rating IS NULL OR (rating BETWEEN 1 AND 5)", name="ck_reading_status_rating"),
    )


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime, server_default=sa.func.now(), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    event_name = Column(String, nullable=False, index=True)
    properties = Column(JSON, nullable=True)
