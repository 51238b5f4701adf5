import os

# Settings are read at import time, so they must be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import date  # noqa: E402

import pytest  # noqa: E402

from smartbank.data.base import SessionLocal, create_tables, drop_tables  # noqa: E402
from smartbank.data.repositories.user_repository import create_user  # noqa: E402


@pytest.fixture
def db():
    drop_tables()
    create_tables()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    """A bare user with no seeded data."""
    return create_user(db, "Ana", "García", "ana@test.com", "not-a-real-hash")


@pytest.fixture
def other_user(db):
    return create_user(db, "Luis", "Martín", "luis@test.com", "not-a-real-hash")


@pytest.fixture
def today():
    return date(2024, 5, 15)


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from smartbank.main import app

    drop_tables()
    create_tables()
    with TestClient(app) as test_client:
        yield test_client
