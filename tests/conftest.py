import os
import sys

# Must be set before any service module creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_bookings.db")
os.environ.setdefault("TESTING", "1")
os.environ.pop("REDIS_URL", None)
os.environ.pop("ADMIN_AUTH_DISABLED", None)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest

from bookings_service import models  # noqa: F401  (registers tables)
from bookings_service.database import Base, SessionLocal, engine


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
