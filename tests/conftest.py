import pytest
from sqlalchemy import StaticPool
from sqlalchemy.orm import sessionmaker

import benefit_cycles.models  # noqa: F401
from benefit_cycles.config import settings
from benefit_cycles.database import Base, create_db_engine

engine = create_db_engine("sqlite:///:memory:", poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct DB tests."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def override_settings(monkeypatch):
    """Set attributes on the shared settings object for one test."""
    def _override(**values):
        for name, value in values.items():
            monkeypatch.setattr(settings, name, value)
    return _override


@pytest.fixture
def session_factory():
    """Session factory bound to the test engine, for code that opens its own sessions."""
    return TestingSessionLocal
