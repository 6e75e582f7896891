"""Booking transaction manager: atomic check-and-reserve, and cancellation.

Offers can go stale between generation and booking, so try_book re-checks
everything inside one transaction after taking the slot lock for
(category, resource, date). The lock row is the only synchronization point;
two concurrent attempts on the same resource and date run one after the other
and the second sees the first one's booking.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from slotbook.domain.models import CANCELLED, CONFIRMED, INTERVIEW, TRIAL, Booking
from slotbook.domain.repositories import (
    BlockedDateRepository,
    BookingRepository,
    BranchRepository,
    ResourcePoolRepository,
    SlotLockRepository,
)
from slotbook.errors import (
    BookingError,
    BookingNotFound,
    CapacityExceeded,
    PolicyViolation,
    SlotTaken,
)
from slotbook.services.capacity import has_trial_capacity, trial_count
from slotbook.services.links import check_link, consume_link, find_link
from slotbook.timeplan import day_of_week, local_to_utc, to_naive_utc, to_utc, utc_to_local_date

from .generator import SlotOffer, window_starts
from .rules import load_policy, load_resources

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    """Either a booking or the reason there is none."""

    booking: Optional[Booking] = None
    error: Optional[BookingError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.booking is not None


def lock_key(category: str, resource_id: str, day: date) -> str:
    return f"{category}:{resource_id}:{day.isoformat()}"


def confirmation_code(now: datetime) -> str:
    millis = int(to_utc(now).timestamp() * 1000)
    return f"AP-{millis:X}-{secrets.token_hex(2).upper()}"


def _check_known_resource(session: Session, offer: SlotOffer) -> None:
    """Reject offers for unknown categories or resources before any lock row is written."""
    if offer.category == INTERVIEW:
        known = ResourcePoolRepository.get_by_id(session, offer.resource_id) is not None
    elif offer.category == TRIAL:
        known = BranchRepository.get_by_id(session, offer.resource_id) is not None
    else:
        raise PolicyViolation(f"Unknown category '{offer.category}'")
    if not known:
        raise PolicyViolation(f"'{offer.resource_id}' is not taking {offer.category} bookings")


def _check_policy(session: Session, offer: SlotOffer, now: datetime, tz: str, link_token: Optional[str]):
    """Step 1: notice/advance window, slot grid, exceptions and booking link."""
    policy = load_policy(session, offer.category)
    if policy is None:
        raise PolicyViolation(f"No booking policy configured for {offer.category}")

    link = None
    if link_token is not None:
        link = find_link(session, link_token)
        reason = check_link(link, now)
        if reason is None and link.category != offer.category:
            reason = f"This booking link is for a {link.category}, not a {offer.category}"
        if reason is None and link.resource_id and link.resource_id != offer.resource_id:
            reason = "This booking link is for a different location"
        if reason is not None:
            raise PolicyViolation(reason)

    earliest = now + timedelta(hours=policy.min_notice_hours)
    latest = now + timedelta(days=policy.max_advance_days)
    if offer.start_at < earliest:
        raise PolicyViolation(
            f"Slot at {offer.start_at.isoformat()} is inside the {policy.min_notice_hours}h notice period"
        )
    if offer.start_at > latest:
        raise PolicyViolation(
            f"Slot at {offer.start_at.isoformat()} is beyond the {policy.max_advance_days}-day booking window"
        )
    if offer.end_at - offer.start_at != timedelta(minutes=policy.slot_duration_minutes):
        raise PolicyViolation(f"Slots last {policy.slot_duration_minutes} minutes")

    # Branches that stopped accepting trials are reported by the capacity check
    resources = load_resources(session, offer.category, include_inactive=offer.category == TRIAL)
    resource = next((r for r in resources if r.resource_id == offer.resource_id), None)
    if resource is None:
        raise PolicyViolation(f"'{offer.resource_id}' is not taking {offer.category} bookings")

    day = utc_to_local_date(offer.start_at, tz)
    if BlockedDateRepository.is_blocked(session, offer.category, day):
        raise PolicyViolation(f"{day.isoformat()} is not available for bookings")
    window = resource.windows.get(day_of_week(day))
    starts = window_starts(window[0], window[1], policy.slot_duration_minutes, policy.buffer_minutes) if window else []
    if not any(local_to_utc(day, minute, tz) == offer.start_at for minute in starts):
        raise PolicyViolation("That time is no longer offered; please pick a fresh slot")
    return day, link


def _reserve(session: Session, offer: SlotOffer, candidate_id: str, now: datetime, tz: str, link_token) -> Booking:
    day, link = _check_policy(session, offer, now, tz, link_token)

    # Step 2: overlap with anything already held or confirmed
    if BookingRepository.get_overlapping(session, offer.category, offer.resource_id, offer.start_at, offer.end_at):
        raise SlotTaken("This time slot has just been booked. Please select another time.")

    # Step 3: per-branch daily trial capacity
    if offer.category == TRIAL:
        branch = BranchRepository.get_by_id(session, offer.resource_id)
        booked = trial_count(session, offer.resource_id, day, tz)
        if not has_trial_capacity(branch, booked):
            if branch is not None and not branch.accepting_trials:
                raise CapacityExceeded(f"Branch {offer.resource_id} is not accepting trials")
            raise CapacityExceeded(f"Branch {offer.resource_id} is fully booked for trials on {day.isoformat()}")

    # Step 4: commit the reservation
    booking = BookingRepository.add(
        session,
        Booking(
            category=offer.category,
            resource_id=offer.resource_id,
            start_at=to_naive_utc(offer.start_at),
            end_at=to_naive_utc(offer.end_at),
            candidate_id=candidate_id,
            status=CONFIRMED,
            confirmation_code=confirmation_code(now),
            booking_link_id=link.id if link is not None else None,
            created_at=to_naive_utc(now),
        ),
    )
    if link is not None and not consume_link(session, link, booking.id, now):
        raise PolicyViolation("This booking link has already been used")
    return booking


def try_book(
    session: Session,
    offer: SlotOffer,
    candidate_id: str,
    now: datetime,
    link_token: Optional[str] = None,
    tz: str = "UTC",
) -> BookingResult:
    """
    Atomically turn an offer into a confirmed booking.

    Args:
        session: Database session (its transaction is committed or rolled back here)
        offer: the offer the candidate picked
        candidate_id: who is booking
        now: reference instant for notice/advance and link expiry checks
        link_token: raw booking link token, when booking through a link
        tz: timezone of the weekly windows

    Returns:
        BookingResult with the booking, or with PolicyViolation, SlotTaken or
        CapacityExceeded. Storage errors roll back and propagate.
    """
    now = to_utc(now)
    offer = SlotOffer(offer.category, offer.resource_id, to_utc(offer.start_at), to_utc(offer.end_at))
    key = lock_key(offer.category, offer.resource_id, utc_to_local_date(offer.start_at, tz))

    try:
        _check_known_resource(session, offer)
        SlotLockRepository.ensure(session, key)
        SlotLockRepository.acquire(session, key)
        booking = _reserve(session, offer, candidate_id, now, tz, link_token)
        session.commit()
    except BookingError as e:
        session.rollback()
        logger.info("Booking rejected for %s on %s: %s (%s)", candidate_id, offer.offer_id, e.kind, e.message)
        return BookingResult(error=e)
    except Exception:
        session.rollback()
        raise

    logger.info("Booking %s confirmed for %s on %s", booking.id, candidate_id, offer.offer_id)
    return BookingResult(booking=booking)


def cancel_booking(session: Session, booking_id: int, now: datetime) -> BookingResult:
    """Release a booking so its slot can be offered again. Cancelling twice is a no-op."""
    booking = BookingRepository.get_by_id(session, booking_id)
    if booking is None:
        return BookingResult(error=BookingNotFound(f"Booking {booking_id} not found"))

    if booking.status != CANCELLED:
        booking.status = CANCELLED
        booking.cancelled_at = to_naive_utc(now)
        session.commit()
        logger.info("Booking %s cancelled", booking_id)
    return BookingResult(booking=booking)
