"""Test configuration."""
import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///" + str(
    Path(tempfile.gettempdir()) / f"drillbook-test-{os.getpid()}.db"
)

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from faker import Faker  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from drillbook.models.base import SessionLocal, drop_db, engine, init_db  # noqa: E402
from drillbook.owner import AnonymousOwner, AuthenticatedOwner  # noqa: E402

fake = Faker()


@pytest.fixture(autouse=True)
def setup_database():
    """Drop and recreate the schema before each test."""
    engine.dispose()
    drop_db()
    init_db()

    yield

    engine.dispose()


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def owner() -> AuthenticatedOwner:
    """A signed-in user."""
    return AuthenticatedOwner(fake.uuid4())


@pytest.fixture
def other_owner() -> AnonymousOwner:
    """An anonymous session that shares nothing with ``owner``."""
    return AnonymousOwner(fake.uuid4())
