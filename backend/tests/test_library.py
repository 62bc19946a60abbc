"""Tests for book / reading-status consistency rules."""
import uuid

import pytest
from sqlalchemy.orm import Session

from app.core.errors import NotFoundOrForbiddenError, StatusNotFoundError, ValidationError
from app.core.user_helpers import ensure_user
from app.models import Book, ReadingStatus
from app.schemas.book import BookCreate, BookUpdate
from app.services import library
from app.services.library import BookFilter
from app.utils.timing import utcnow


@pytest.fixture
def owner(db: Session):
    return ensure_user(db, "user_owner", "owner@example.com")


@pytest.fixture
def stranger(db: Session):
    return ensure_user(db, "user_stranger", "stranger@example.com")


def _add(db, user, title, author="Someone", **extra):
    return library.create_book(db, user.id, BookCreate(title=title, author=author, **extra))


def test_create_then_list_returns_unread_book(db: Session, owner):
    _add(db, owner, "Dune", "Herbert")

    entries = library.list_books(db, owner.id, BookFilter())

    assert len(entries) == 1
    entry = entries[0]
    assert entry.book.title == "Dune"
    assert entry.status == "unread"
    assert entry.reading_status is not None
    assert entry.reading_status.rating is None
    assert entry.reading_status.review is None


def test_dune_scenario(db: Session, owner):
    book = _add(db, owner, "Dune", "Herbert")
    assert library.list_books(db, owner.id)[0].status == "unread"

    reading = library.set_reading_status(db, book.id, owner.id, "reading")
    assert reading.status == "reading"
    assert reading.started_at is not None
    started_at = reading.started_at

    completed = library.set_reading_status(db, book.id, owner.id, "completed")
    assert completed.status == "completed"
    assert completed.completed_at is not None
    assert completed.started_at == started_at

    rated = library.set_rating(db, book.id, owner.id, 5)
    assert rated.rating == 5

    library.delete_book(db, book.id, owner.id)
    assert library.list_books(db, owner.id) == []
    assert db.query(ReadingStatus).count() == 0


def test_started_at_is_set_once(db: Session, owner):
    book = _add(db, owner, "Foundation", "Asimov")

    first = library.set_reading_status(db, book.id, owner.id, "reading").started_at
    library.set_reading_status(db, book.id, owner.id, "unread")
    again = library.set_reading_status(db, book.id, owner.id, "reading")

    assert again.started_at == first
    assert again.completed_at is None


def test_completed_at_is_set_once(db: Session, owner):
    book = _add(db, owner, "Hyperion", "Simmons")

    first = library.set_reading_status(db, book.id, owner.id, "completed")
    assert first.started_at is None  # skipping "reading" is allowed
    completed_at = first.completed_at

    library.set_reading_status(db, book.id, owner.id, "reading")
    library.set_reading_status(db, book.id, owner.id, "unread")
    final = library.set_reading_status(db, book.id, owner.id, "completed")

    assert final.completed_at == completed_at
    assert final.started_at is not None


def test_status_transition_refreshes_updated_at(db: Session, owner):
    book = _add(db, owner, "Neuromancer", "Gibson")
    before = utcnow()

    status = library.set_reading_status(db, book.id, owner.id, "unread")

    assert status.updated_at >= before


def test_set_status_rejects_unknown_value(db: Session, owner):
    book = _add(db, owner, "Ubik", "Dick")

    with pytest.raises(ValidationError):
        library.set_reading_status(db, book.id, owner.id, "abandoned")


def test_set_status_creates_missing_row(db: Session, owner):
    book = _add(db, owner, "Solaris", "Lem")
    db.query(ReadingStatus).delete()
    db.commit()

    status = library.set_reading_status(db, book.id, owner.id, "reading")

    assert status.book_id == book.id
    assert status.started_at is not None
    assert db.query(ReadingStatus).count() == 1


@pytest.mark.parametrize("rating", [0, 6, -1])
def test_set_rating_out_of_range(db: Session, owner, rating):
    book = _add(db, owner, "Dune", "Herbert")

    with pytest.raises(ValidationError):
        library.set_rating(db, book.id, owner.id, rating)


def test_set_rating_is_idempotent(db: Session, owner):
    book = _add(db, owner, "Dune", "Herbert")

    library.set_rating(db, book.id, owner.id, 4)
    again = library.set_rating(db, book.id, owner.id, 4)

    assert again.rating == 4
    assert db.query(ReadingStatus).count() == 1


def test_set_rating_requires_status_row(db: Session, owner):
    book = _add(db, owner, "Dune", "Herbert")
    db.query(ReadingStatus).delete()
    db.commit()

    with pytest.raises(StatusNotFoundError):
        library.set_rating(db, book.id, owner.id, 3)


def test_set_review_lazily_creates_status(db: Session, owner):
    book = _add(db, owner, "Dune", "Herbert")
    db.query(ReadingStatus).delete()
    db.commit()

    status = library.set_review(db, book.id, owner.id, "Spice must flow", rating=4)

    assert status.status == "unread"
    assert status.review == "Spice must flow"
    assert status.rating == 4


def test_open_review_materializes_status(db: Session, owner):
    book = _add(db, owner, "Dune", "Herbert")
    db.query(ReadingStatus).delete()
    db.commit()

    status = library.open_review(db, book.id, owner.id)

    assert status.status == "unread"
    assert db.query(ReadingStatus).count() == 1
    # Opening twice does not add a second row
    library.open_review(db, book.id, owner.id)
    assert db.query(ReadingStatus).count() == 1


def test_set_review_rejects_bad_rating_before_writing(db: Session, owner):
    book = _add(db, owner, "Dune", "Herbert")

    with pytest.raises(ValidationError):
        library.set_review(db, book.id, owner.id, "text", rating=9)

    assert library.get_book(db, book.id, owner.id).reading_status.review is None


@pytest.mark.parametrize(
    "attrs",
    [
        {"title": "", "author": "Herbert"},
        {"title": "   ", "author": "Herbert"},
        {"title": "Dune", "author": ""},
        {"title": "Dune", "author": "Herbert", "published_year": 999},
        {"title": "Dune", "author": "Herbert", "published_year": utcnow().year + 1},
    ],
)
def test_create_book_validation(db: Session, owner, attrs):
    with pytest.raises(ValidationError):
        library.create_book(db, owner.id, BookCreate(**attrs))

    assert db.query(Book).count() == 0


def test_create_book_accepts_year_bounds(db: Session, owner):
    old = _add(db, owner, "Beowulf", "Unknown", published_year=1000)
    new = _add(db, owner, "Fresh", "Writer", published_year=utcnow().year)

    assert old.published_year == 1000
    assert new.published_year == utcnow().year


def test_update_book(db: Session, owner):
    book = _add(db, owner, "Dune", "Herbert")

    updated = library.update_book(
        db, book.id, owner.id,
        BookUpdate(title="Dune Messiah", author="Frank Herbert", published_year=1969, genre="SF"),
    )

    assert updated.title == "Dune Messiah"
    assert updated.author == "Frank Herbert"
    assert updated.genre == "SF"


def test_update_book_validates(db: Session, owner):
    book = _add(db, owner, "Dune", "Herbert")

    with pytest.raises(ValidationError):
        library.update_book(db, book.id, owner.id, BookUpdate(title="", author="Herbert"))


def test_foreign_and_missing_books_look_the_same(db: Session, owner, stranger):
    book = _add(db, owner, "Dune", "Herbert")
    attrs = BookUpdate(title="Mine now", author="Thief")

    with pytest.raises(NotFoundOrForbiddenError) as foreign:
        library.update_book(db, book.id, stranger.id, attrs)
    with pytest.raises(NotFoundOrForbiddenError) as missing:
        library.update_book(db, uuid.uuid4(), stranger.id, attrs)

    assert str(foreign.value) == str(missing.value)
    with pytest.raises(NotFoundOrForbiddenError):
        library.delete_book(db, book.id, stranger.id)
    with pytest.raises(NotFoundOrForbiddenError):
        library.set_reading_status(db, book.id, stranger.id, "reading")
    with pytest.raises(NotFoundOrForbiddenError):
        library.set_review(db, book.id, stranger.id, "nope")

    assert library.get_book(db, book.id, owner.id).book.title == "Dune"


def test_delete_book_removes_status_first(db: Session, owner, monkeypatch):
    book = _add(db, owner, "Dune", "Herbert")
    commits = []
    original_commit = db.commit

    def recording_commit():
        commits.append((db.query(ReadingStatus).count(), db.query(Book).count()))
        original_commit()

    monkeypatch.setattr(db, "commit", recording_commit)

    library.delete_book(db, book.id, owner.id)

    # First commit happens with the status gone but the book still present
    assert commits[0] == (0, 1)
    assert db.query(Book).count() == 0


def test_list_books_search_filter(db: Session, owner):
    _add(db, owner, "Dune", "Herbert")
    _add(db, owner, "Foundation", "Asimov")

    entries = library.list_books(db, owner.id, BookFilter(search_text="dune", status_equals="all"))

    assert [entry.book.title for entry in entries] == ["Dune"]


def test_list_books_search_matches_author_and_genre(db: Session, owner):
    _add(db, owner, "Dune", "Herbert", genre="Space Opera")
    _add(db, owner, "Foundation", "Asimov")
    _add(db, owner, "100% Wolf", "Somebody")

    assert [e.book.title for e in library.list_books(db, owner.id, BookFilter(search_text="ASIMOV"))] == ["Foundation"]
    assert [e.book.title for e in library.list_books(db, owner.id, BookFilter(search_text="opera"))] == ["Dune"]
    # LIKE wildcards are matched literally
    assert [e.book.title for e in library.list_books(db, owner.id, BookFilter(search_text="%"))] == ["100% Wolf"]


def test_list_books_status_filter_and_order(db: Session, owner):
    dune = _add(db, owner, "Dune", "Herbert")
    _add(db, owner, "foundation", "Asimov")
    _add(db, owner, "Anathem", "Stephenson")
    library.set_reading_status(db, dune.id, owner.id, "reading")

    assert [e.book.title for e in library.list_books(db, owner.id)] == ["Anathem", "Dune", "foundation"]
    reading = library.list_books(db, owner.id, BookFilter(status_equals="reading"))
    assert [e.book.title for e in reading] == ["Dune"]
    unread = library.list_books(db, owner.id, BookFilter(status_equals="unread"))
    assert [e.book.title for e in unread] == ["Anathem", "foundation"]

    with pytest.raises(ValidationError):
        library.list_books(db, owner.id, BookFilter(status_equals="shelved"))


def test_list_books_treats_missing_status_as_unread(db: Session, owner):
    _add(db, owner, "Dune", "Herbert")
    db.query(ReadingStatus).delete()
    db.commit()

    entries = library.list_books(db, owner.id, BookFilter(status_equals="unread"))

    assert len(entries) == 1
    assert entries[0].reading_status is None
    assert entries[0].status == "unread"


def test_list_books_is_scoped_to_owner(db: Session, owner, stranger):
    _add(db, owner, "Dune", "Herbert")
    _add(db, stranger, "Foundation", "Asimov")

    assert [e.book.title for e in library.list_books(db, owner.id)] == ["Dune"]
    assert [e.book.title for e in library.list_books(db, stranger.id)] == ["Foundation"]
