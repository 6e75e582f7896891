"""Repository classes for data access.

Repositories never commit; the caller owns the transaction boundary so that a
booking attempt or a settings save either lands completely or not at all.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from slotbook.timeplan import to_naive_utc

from .models import (
    ACTIVE_STATUSES,
    LINK_ACTIVE,
    LINK_USED,
    BlockedDate,
    Booking,
    BookingLink,
    BookingPolicy,
    BranchCapacity,
    ResourcePool,
    SlotLock,
    WeeklyWindow,
)


class PolicyRepository:
    """Repository for booking policy data access."""

    @staticmethod
    def get(session: Session, category: str) -> Optional[BookingPolicy]:
        return session.get(BookingPolicy, category)

    @staticmethod
    def upsert(session: Session, policy: BookingPolicy) -> BookingPolicy:
        """Insert or replace the policy for its category."""
        merged = session.merge(policy)
        session.flush()
        return merged


class ResourcePoolRepository:
    """Repository for interview pool data access."""

    @staticmethod
    def get_all(session: Session) -> List[ResourcePool]:
        return session.query(ResourcePool).order_by(ResourcePool.id).all()

    @staticmethod
    def get_active(session: Session) -> List[ResourcePool]:
        """Get all pools open for booking."""
        return session.query(ResourcePool).filter(ResourcePool.active.is_(True)).order_by(ResourcePool.id).all()

    @staticmethod
    def get_by_id(session: Session, pool_id: str) -> Optional[ResourcePool]:
        return session.get(ResourcePool, pool_id)

    @staticmethod
    def upsert(session: Session, pool: ResourcePool) -> ResourcePool:
        merged = session.merge(pool)
        session.flush()
        return merged


class WindowRepository:
    """Repository for weekly window data access."""

    @staticmethod
    def get_for_category(session: Session, category: str) -> List[WeeklyWindow]:
        """All windows of a category: the template (resource_id NULL) and per-resource ones."""
        return (
            session.query(WeeklyWindow)
            .filter(WeeklyWindow.category == category)
            .order_by(WeeklyWindow.resource_id, WeeklyWindow.day_of_week)
            .all()
        )

    @staticmethod
    def replace(session: Session, category: str, resource_id: Optional[str], windows: Iterable[WeeklyWindow]) -> int:
        """Swap the weekly template of one resource (or of the category when resource_id is None)."""
        query = delete(WeeklyWindow).where(WeeklyWindow.category == category)
        if resource_id is None:
            query = query.where(WeeklyWindow.resource_id.is_(None))
        else:
            query = query.where(WeeklyWindow.resource_id == resource_id)
        session.execute(query)

        count = 0
        for window in windows:
            window.category = category
            window.resource_id = resource_id
            session.add(window)
            count += 1
        session.flush()
        return count


class BlockedDateRepository:
    """Repository for blocked date data access."""

    @staticmethod
    def get_dates(session: Session, category: str) -> Set[date]:
        rows = session.execute(select(BlockedDate.date).where(BlockedDate.category == category)).scalars()
        return set(rows)

    @staticmethod
    def is_blocked(session: Session, category: str, day: date) -> bool:
        return (
            session.query(BlockedDate)
            .filter(BlockedDate.category == category, BlockedDate.date == day)
            .first()
            is not None
        )

    @staticmethod
    def replace(session: Session, category: str, dates: Iterable[date]) -> int:
        """Replace the whole exception calendar of a category."""
        session.execute(delete(BlockedDate).where(BlockedDate.category == category))
        unique = sorted(set(dates))
        session.add_all([BlockedDate(category=category, date=d) for d in unique])
        session.flush()
        return len(unique)

    @staticmethod
    def add(session: Session, category: str, dates: Iterable[date]) -> int:
        """Add dates, ignoring ones already blocked. Returns number added."""
        existing = BlockedDateRepository.get_dates(session, category)
        new = sorted(set(dates) - existing)
        session.add_all([BlockedDate(category=category, date=d) for d in new])
        session.flush()
        return len(new)


class BranchRepository:
    """Repository for branch trial capacity data access."""

    @staticmethod
    def get_all(session: Session) -> List[BranchCapacity]:
        return session.query(BranchCapacity).order_by(BranchCapacity.branch_id).all()

    @staticmethod
    def get_accepting(session: Session) -> List[BranchCapacity]:
        """Get branches currently taking trials."""
        return (
            session.query(BranchCapacity)
            .filter(BranchCapacity.accepting_trials.is_(True))
            .order_by(BranchCapacity.branch_id)
            .all()
        )

    @staticmethod
    def get_by_id(session: Session, branch_id: str) -> Optional[BranchCapacity]:
        return session.get(BranchCapacity, branch_id)

    @staticmethod
    def get_by_ids(session: Session, branch_ids: Iterable[str]) -> Dict[str, BranchCapacity]:
        ids = list(branch_ids)
        if not ids:
            return {}
        rows = session.query(BranchCapacity).filter(BranchCapacity.branch_id.in_(ids)).all()
        return {row.branch_id: row for row in rows}

    @staticmethod
    def upsert(session: Session, branch: BranchCapacity) -> BranchCapacity:
        merged = session.merge(branch)
        session.flush()
        return merged


class BookingRepository:
    """Repository for booking data access."""

    @staticmethod
    def get_by_id(session: Session, booking_id: int) -> Optional[Booking]:
        return session.get(Booking, booking_id)

    @staticmethod
    def get_all(session: Session, category: Optional[str] = None, status: Optional[str] = None) -> List[Booking]:
        query = session.query(Booking)
        if category is not None:
            query = query.filter(Booking.category == category)
        if status is not None:
            query = query.filter(Booking.status == status)
        return query.order_by(Booking.start_at, Booking.resource_id).all()

    @staticmethod
    def get_active_between(session: Session, category: str, start: datetime, end: datetime) -> List[Booking]:
        """Held/confirmed bookings of a category that intersect [start, end)."""
        return (
            session.query(Booking)
            .filter(
                Booking.category == category,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.start_at < to_naive_utc(end),
                Booking.end_at > to_naive_utc(start),
            )
            .order_by(Booking.start_at)
            .all()
        )

    @staticmethod
    def get_overlapping(
        session: Session, category: str, resource_id: str, start: datetime, end: datetime
    ) -> List[Booking]:
        """Held/confirmed bookings of one resource overlapping [start, end)."""
        return (
            session.query(Booking)
            .filter(
                Booking.category == category,
                Booking.resource_id == resource_id,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.start_at < to_naive_utc(end),
                Booking.end_at > to_naive_utc(start),
            )
            .all()
        )

    @staticmethod
    def count_starting_between(
        session: Session, category: str, resource_id: str, start: datetime, end: datetime
    ) -> int:
        """Number of held/confirmed bookings of one resource starting in [start, end)."""
        return (
            session.query(func.count(Booking.id))
            .filter(
                Booking.category == category,
                Booking.resource_id == resource_id,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.start_at >= to_naive_utc(start),
                Booking.start_at < to_naive_utc(end),
            )
            .scalar()
        )

    @staticmethod
    def add(session: Session, booking: Booking) -> Booking:
        session.add(booking)
        session.flush()
        return booking


class BookingLinkRepository:
    """Repository for booking link data access."""

    @staticmethod
    def get_by_id(session: Session, link_id: int) -> Optional[BookingLink]:
        return session.get(BookingLink, link_id)

    @staticmethod
    def get_by_token_hash(session: Session, token_hash: str) -> Optional[BookingLink]:
        return session.query(BookingLink).filter(BookingLink.token_hash == token_hash).first()

    @staticmethod
    def get_expired_active(session: Session, now: datetime) -> List[BookingLink]:
        """Links still marked active whose expiry has passed."""
        return (
            session.query(BookingLink)
            .filter(BookingLink.status == LINK_ACTIVE, BookingLink.expires_at < to_naive_utc(now))
            .all()
        )

    @staticmethod
    def add(session: Session, link: BookingLink) -> BookingLink:
        session.add(link)
        session.flush()
        return link

    @staticmethod
    def consume(session: Session, link_id: int, booking_id: int, now: datetime) -> bool:
        """
        Record one use of a link, only while it is still active, unexpired and under max_uses.

        The conditions are part of the UPDATE itself, so two transactions racing on
        the same link cannot both count a use. Returns False when nothing matched.
        """
        new_count = BookingLink.use_count + 1
        result = session.execute(
            update(BookingLink)
            .where(
                BookingLink.id == link_id,
                BookingLink.status == LINK_ACTIVE,
                BookingLink.use_count < BookingLink.max_uses,
                BookingLink.expires_at >= to_naive_utc(now),
            )
            .values(
                use_count=new_count,
                used_at=to_naive_utc(now),
                booking_id=booking_id,
                status=case((new_count >= BookingLink.max_uses, LINK_USED), else_=LINK_ACTIVE),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class SlotLockRepository:
    """Serialization rows for booking transactions."""

    @staticmethod
    def ensure(session: Session, key: str) -> None:
        """
        Make sure the lock row exists, in its own short transaction.

        Two callers may race to create the same row; the loser's insert fails on
        the primary key, which means the row now exists.
        """
        if session.get(SlotLock, key) is not None:
            return
        session.add(SlotLock(key=key, version=0))
        try:
            session.commit()
        except IntegrityError:
            session.rollback()

    @staticmethod
    def acquire(session: Session, key: str) -> int:
        """
        Bump the lock row inside the current transaction.

        The UPDATE takes the row lock (PostgreSQL) or the database write lock
        (SQLite), so a second booking for the same key waits here until the
        first commits or rolls back.
        """
        result = session.execute(
            update(SlotLock)
            .where(SlotLock.key == key)
            .values(version=SlotLock.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise RuntimeError(f"Slot lock '{key}' is missing; call ensure() first")
        return result.rowcount
