"""Database initialization and utilities."""

from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_DB_URL = "sqlite:///slotbook.db"


def create_db_engine(db_url: str = DEFAULT_DB_URL, echo: bool = False):
    """Create SQLAlchemy engine."""
    connect_args = {}
    if db_url.startswith("sqlite"):
        # Booking transactions wait on each other's write lock instead of failing fast
        connect_args = {"timeout": 30, "check_same_thread": False}
    return create_engine(db_url, echo=echo, connect_args=connect_args)


def init_database(db_url: str = DEFAULT_DB_URL):
    """Initialize database and create all tables. Returns the engine."""
    engine = create_db_engine(db_url)
    Base.metadata.create_all(engine)
    logger.info("Database initialized: %s", db_url)
    return engine


def get_session_factory(db_url: str = DEFAULT_DB_URL, engine=None):
    """Get a session factory for the database."""
    if engine is None:
        engine = create_db_engine(db_url)
    return sessionmaker(bind=engine, expire_on_commit=False)


def get_session(db_url: str = DEFAULT_DB_URL) -> Session:
    """Get a new database session."""
    SessionFactory = get_session_factory(db_url)
    return SessionFactory()


def reset_database(db_url: str = DEFAULT_DB_URL) -> None:
    """Drop all tables and recreate (WARNING: deletes all bookings!)."""
    engine = create_db_engine(db_url)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    logger.warning("Database reset: %s", db_url)
