"""Pytest configuration for backend tests."""
import base64
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read at import time; never let tests reach a real database
TEST_WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"bookshelf-test-webhook-secret!!").decode()
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CLERK_WEBHOOK_SECRET"] = TEST_WEBHOOK_SECRET
os.environ["DEBUG"] = "false"

from fastapi.testclient import TestClient  # noqa: E402
from svix.webhooks import Webhook  # noqa: E402

from app.database import Base, get_db  # noqa: E402

# Import the entire models module to ensure all models are registered with Base.metadata
import app.models  # noqa: F401,E402
from app.core.auth import Principal, get_current_principal  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402


@pytest.fixture(scope="function")
def engine():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps a single connection so every session (including the ones
    handed out to the FastAPI app) sees the same data.
    """
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)

    yield test_engine

    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db(session_factory) -> Session:
    """Database session for calling services directly."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def principal() -> Principal:
    return Principal(external_id="user_2abcTEST", email="reader@example.com")


@pytest.fixture(scope="function")
def client(session_factory, principal):
    """TestClient with the database and the signed-in principal overridden."""

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = _get_db
    fastapi_app.dependency_overrides[get_current_principal] = lambda: principal

    yield TestClient(fastapi_app)

    fastapi_app.dependency_overrides.clear()


def svix_headers(body: str, msg_id: str = "msg_test_1") -> dict:
    """Sign a webhook body the way Clerk (via Svix) does."""
    timestamp = datetime.now(timezone.utc)
    signature = Webhook(TEST_WEBHOOK_SECRET).sign(msg_id, timestamp, body)
    return {
        "svix-id": msg_id,
        "svix-timestamp": str(int(timestamp.timestamp())),
        "svix-signature": signature,
        "content-type": "application/json",
    }


@pytest.fixture(scope="function")
def sign_webhook():
    return svix_headers
