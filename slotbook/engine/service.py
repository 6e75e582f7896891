"""BookingEngine - the surface the booking and settings front ends call."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import List, Tuple, Union

from slotbook.domain.db import get_session_factory, init_database
from slotbook.domain.models import BookingLink
from slotbook.domain.repositories import BookingRepository
from slotbook.errors import ConfigError, PolicyViolation
from slotbook.services import capacity, links
from slotbook.timeplan import local_day_bounds

from .generator import SlotOffer, generate_offers, parse_offer_id
from .rules import load_blocked_dates, load_policy, load_resources
from .transactions import BookingResult, cancel_booking, try_book

logger = logging.getLogger(__name__)


class BookingEngine:
    """
    Storage-backed entry point for availability and booking.

    Each call opens its own session, so one engine can be shared by concurrent
    request handlers; try_book's slot lock does the serializing.
    """

    def __init__(self, session_factory, tz: str = "UTC"):
        """
        Args:
            session_factory: SQLAlchemy sessionmaker bound to the booking store
            tz: timezone the weekly windows are expressed in
        """
        self.session_factory = session_factory
        self.tz = tz

    @classmethod
    def from_config(cls, cfg) -> "BookingEngine":
        engine = init_database(cfg.db_url)
        return cls(get_session_factory(engine=engine), tz=cfg.timezone)

    def availability(self, category: str, start_date: date, end_date: date, now: datetime) -> List[SlotOffer]:
        """Ordered offers for a category between two local dates (inclusive)."""
        with self.session_factory() as session:
            policy = load_policy(session, category)
            if policy is None:
                raise ConfigError(f"No booking policy configured for {category}")
            resources = load_resources(session, category)
            blocked = load_blocked_dates(session, category)
            range_start, _ = local_day_bounds(start_date, self.tz)
            _, range_end = local_day_bounds(end_date, self.tz)
            bookings = BookingRepository.get_active_between(session, category, range_start, range_end)

            offers = generate_offers(
                resources,
                blocked,
                policy,
                start_date,
                end_date,
                now,
                bookings=bookings,
                category=category,
                tz=self.tz,
            )
        logger.info("%d %s offers for %s..%s", len(offers), category, start_date, end_date)
        return offers

    def offer_from_id(self, offer_id: str) -> SlotOffer:
        """Rebuild an offer from its id using the current slot duration."""
        category, resource_id, start_at = parse_offer_id(offer_id)
        with self.session_factory() as session:
            policy = load_policy(session, category)
            if policy is None:
                raise ConfigError(f"No booking policy configured for {category}")
            duration = policy.slot_duration_minutes
        return SlotOffer(category, resource_id, start_at, start_at + timedelta(minutes=duration))

    def book(
        self,
        offer: Union[SlotOffer, str],
        candidate_id: str,
        now: datetime,
        link_token: str | None = None,
    ) -> BookingResult:
        """Book an offer (or an offer id). Always resolves to a booking or an error kind."""
        if isinstance(offer, str):
            try:
                offer = self.offer_from_id(offer)
            except (ValueError, ConfigError) as e:
                return BookingResult(error=PolicyViolation(str(e)))
        with self.session_factory() as session:
            return try_book(session, offer, candidate_id, now, link_token=link_token, tz=self.tz)

    def cancel_booking(self, booking_id: int, now: datetime) -> BookingResult:
        with self.session_factory() as session:
            return cancel_booking(session, booking_id, now)

    def can_book_trial(self, branch_id: str, day: date) -> bool:
        with self.session_factory() as session:
            return capacity.can_book_trial(session, branch_id, day, self.tz)

    def issue_link(
        self, candidate_id: str, category: str, now: datetime, resource_id: str | None = None
    ) -> Tuple[BookingLink, str]:
        """Create a booking link that expires after the category's link_expiry_days."""
        with self.session_factory() as session:
            policy = load_policy(session, category)
            if policy is None:
                raise ConfigError(f"No booking policy configured for {category}")
            return links.create_booking_link(
                session, candidate_id, category, now, policy.link_expiry_days, resource_id=resource_id
            )

    def expire_links(self, now: datetime) -> int:
        with self.session_factory() as session:
            return links.expire_links(session, now)
