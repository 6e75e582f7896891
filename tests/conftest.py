"""Pytest configuration and shared fixtures."""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from slotbook.config import BranchConfig, CategoryConfig, EngineConfig, PolicyConfig, PoolConfig, WindowConfig
from slotbook.domain.models import Base
from slotbook.engine.generator import SlotOffer
from slotbook.services.settings import apply_config

UTC = timezone.utc

# Friday 08:00 UTC; the following Monday is 2025-09-01
NOW = datetime(2025, 8, 29, 8, 0, tzinfo=UTC)
MONDAY = date(2025, 9, 1)
WEDNESDAY = date(2025, 9, 3)


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


def weekdays(start: str, end: str):
    """Monday-Friday windows with the given times."""
    return [WindowConfig(dow, start, end, True) for dow in range(1, 6)]


def at(day: date, hhmm: str) -> datetime:
    hour, minute = [int(x) for x in hhmm.split(":")]
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


def make_offer(category: str, resource_id: str, day: date, hhmm: str, minutes: int) -> SlotOffer:
    start = at(day, hhmm)
    return SlotOffer(category, resource_id, start, start + timedelta(minutes=minutes))


@pytest.fixture
def engine_config():
    """Two interview pools on the weekday template, two branches for trials."""
    return EngineConfig(
        db_url="sqlite://",
        timezone="UTC",
        interview=CategoryConfig(
            policy=PolicyConfig("interview", 30, 15, 14, 24, 7),
            schedule=weekdays("09:00", "17:00"),
            blocked_dates=[WEDNESDAY],
        ),
        trial=CategoryConfig(
            policy=PolicyConfig("trial", 240, 30, 21, 48, 7),
            # 07:00, 11:30 and 16:00 each day
            schedule=weekdays("07:00", "21:00"),
        ),
        pools=[
            PoolConfig("pool-1", "Interview Slot 1"),
            PoolConfig("pool-2", "Interview Slot 2"),
        ],
        branches=[
            BranchConfig("branch-1", "High Street", True, 2),
            BranchConfig("branch-2", "Riverside", False, 1),
        ],
    )


@pytest.fixture
def session_factory():
    """In-memory database shared by every session the factory hands out."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    """Create in-memory database session for testing."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded_session(db_session, engine_config):
    apply_config(db_session, engine_config)
    return db_session
