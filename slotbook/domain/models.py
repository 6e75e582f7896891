"""SQLAlchemy models for the booking engine."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, relationship

INTERVIEW = "interview"
TRIAL = "trial"
CATEGORIES = (INTERVIEW, TRIAL)

TRIAL_DURATION_MINUTES = 240

# Booking statuses
HELD = "held"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
ACTIVE_STATUSES = (HELD, CONFIRMED)

# Booking link statuses
LINK_ACTIVE = "active"
LINK_USED = "used"
LINK_EXPIRED = "expired"
LINK_REVOKED = "revoked"


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class ResourcePool(Base):
    """An independently bookable interview pool (interviewer or room)."""

    __tablename__ = "resource_pools"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    category = Column(String(20), nullable=False, default=INTERVIEW)
    active = Column(Boolean, nullable=False, default=True)

    windows = relationship(
        "WeeklyWindow",
        back_populates="pool",
        cascade="all, delete-orphan",
        order_by="WeeklyWindow.day_of_week",
    )

    def __repr__(self) -> str:
        return f"<ResourcePool(id='{self.id}', name='{self.name}', active={self.active})>"


class WeeklyWindow(Base):
    """
    Recurring weekly availability for one day of the week.

    day_of_week follows 0=Sunday .. 6=Saturday. A window without a resource_id
    is the category-level template used by resources that have no windows of
    their own (every branch taking trials shares the trial template).
    """

    __tablename__ = "weekly_windows"
    __table_args__ = (
        UniqueConstraint("category", "resource_id", "day_of_week", name="uq_window_day"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    category = Column(String(20), nullable=False)
    resource_id = Column(String(64), ForeignKey("resource_pools.id"), nullable=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    end_time = Column(String(5), nullable=False)  # "HH:MM"
    enabled = Column(Boolean, nullable=False, default=True)

    pool = relationship("ResourcePool", back_populates="windows")

    def __repr__(self) -> str:
        return (
            f"<WeeklyWindow(category='{self.category}', resource='{self.resource_id}', "
            f"dow={self.day_of_week}, {self.start_time}-{self.end_time}, enabled={self.enabled})>"
        )


class BranchCapacity(Base):
    """Per-branch trial settings."""

    __tablename__ = "branch_capacity"

    branch_id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=True)
    accepting_trials = Column(Boolean, nullable=False, default=True)
    max_trials_per_day = Column(Integer, nullable=False, default=2)

    def __repr__(self) -> str:
        return (
            f"<BranchCapacity(branch='{self.branch_id}', accepting={self.accepting_trials}, "
            f"max_per_day={self.max_trials_per_day})>"
        )


class BlockedDate(Base):
    """A calendar date closed for every resource in a category."""

    __tablename__ = "blocked_dates"
    __table_args__ = (UniqueConstraint("category", "date", name="uq_blocked_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    category = Column(String(20), nullable=False)
    date = Column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<BlockedDate(category='{self.category}', date={self.date})>"


class BookingPolicy(Base):
    """Numeric booking policy, one row per category."""

    __tablename__ = "booking_policies"

    category = Column(String(20), primary_key=True)
    slot_duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, nullable=False, default=0)
    max_advance_days = Column(Integer, nullable=False)
    min_notice_hours = Column(Integer, nullable=False, default=0)
    link_expiry_days = Column(Integer, nullable=False, default=7)

    def __repr__(self) -> str:
        return (
            f"<BookingPolicy(category='{self.category}', duration={self.slot_duration_minutes}, "
            f"buffer={self.buffer_minutes}, advance={self.max_advance_days}d, "
            f"notice={self.min_notice_hours}h)>"
        )


class Booking(Base):
    """A committed reservation of a resource for an interval (UTC)."""

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    category = Column(String(20), nullable=False)
    resource_id = Column(String(64), nullable=False, index=True)
    start_at = Column(DateTime, nullable=False, index=True)  # naive UTC
    end_at = Column(DateTime, nullable=False)  # naive UTC
    candidate_id = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default=CONFIRMED)
    confirmation_code = Column(String(32), nullable=True)
    booking_link_id = Column(Integer, ForeignKey("booking_links.id"), nullable=True)
    created_at = Column(DateTime, nullable=False)
    cancelled_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, resource='{self.resource_id}', "
            f"{self.start_at}-{self.end_at}, status='{self.status}')>"
        )


class BookingLink(Base):
    """One-time booking link handed to a candidate. Only the token hash is stored."""

    __tablename__ = "booking_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_hash = Column(String(64), nullable=False, unique=True)
    candidate_id = Column(String(64), nullable=False)
    category = Column(String(20), nullable=False)
    resource_id = Column(String(64), nullable=True)  # e.g. the branch a trial is for
    status = Column(String(20), nullable=False, default=LINK_ACTIVE)
    expires_at = Column(DateTime, nullable=False)
    max_uses = Column(Integer, nullable=False, default=1)
    use_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    booking_id = Column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<BookingLink(id={self.id}, candidate='{self.candidate_id}', status='{self.status}')>"


class SlotLock(Base):
    """Serialization row for one (category, resource, date); bumped by every booking attempt."""

    __tablename__ = "slot_locks"

    key = Column(String(160), primary_key=True)
    version = Column(Integer, nullable=False, default=0)
