"""Slot generation: expand weekly rules into concrete, bookable offers.

generate_offers is a pure function. It reads no clock and touches no storage;
identical inputs always give the identical ordered list.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pandas as pd

from slotbook.timeplan import day_of_week, local_to_utc, minutes_of_day, parse_instant, to_utc, utc_to_local_date

OFFER_ID_SEPARATOR = "|"


@dataclass(frozen=True)
class SlotOffer:
    """A candidate-facing bookable window (UTC instants). Derived, never stored."""

    category: str
    resource_id: str
    start_at: datetime
    end_at: datetime

    @property
    def offer_id(self) -> str:
        return OFFER_ID_SEPARATOR.join([self.category, self.resource_id, self.start_at.isoformat()])

    @property
    def duration_minutes(self) -> int:
        return int((self.end_at - self.start_at).total_seconds() // 60)

    def to_dict(self) -> Dict[str, str]:
        return {
            "offer_id": self.offer_id,
            "category": self.category,
            "resource_id": self.resource_id,
            "start_at": self.start_at.isoformat(),
            "end_at": self.end_at.isoformat(),
        }


def parse_offer_id(offer_id: str) -> Tuple[str, str, datetime]:
    """Split an offer id back into (category, resource_id, start_at)."""
    parts = offer_id.split(OFFER_ID_SEPARATOR)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Malformed offer id: {offer_id!r}")
    category, resource_id, start = parts
    return category, resource_id, parse_instant(start)


@dataclass
class ResourceSchedule:
    """
    One bookable resource as the generator sees it.

    windows maps day_of_week (0=Sunday) to (start_minute, end_minute) for
    enabled days only. capacity is a per-day booking limit (trials); None means
    the resource is limited only by overlap (interview pools).
    """

    resource_id: str
    windows: Dict[int, Tuple[int, int]] = field(default_factory=dict)
    capacity: Optional[int] = None


def resolve_windows(windows: Iterable, resource_id: Optional[str]) -> Dict[int, Tuple[int, int]]:
    """
    Pick the enabled windows that apply to a resource.

    A resource with at least one window of its own uses only those; otherwise
    it falls back to the category template (windows with resource_id None).
    """
    windows = list(windows)
    own = [w for w in windows if resource_id is not None and w.resource_id == resource_id]
    chosen = own if own else [w for w in windows if w.resource_id is None]
    return {
        w.day_of_week: (minutes_of_day(w.start_time), minutes_of_day(w.end_time))
        for w in chosen
        if w.enabled
    }


def window_slot_count(start_minute: int, end_minute: int, duration: int, buffer: int) -> int:
    """How many slots a single window yields (0 when the window is shorter than one step)."""
    length = end_minute - start_minute
    step = duration + buffer
    if duration <= 0 or length < step:
        return 0
    return (length - duration) // step + 1


def window_starts(start_minute: int, end_minute: int, duration: int, buffer: int) -> List[int]:
    """Start minutes of every slot in a window."""
    count = window_slot_count(start_minute, end_minute, duration, buffer)
    step = duration + buffer
    return [start_minute + i * step for i in range(count)]


def _overlaps(start: datetime, end: datetime, intervals: Sequence[Tuple[datetime, datetime]]) -> bool:
    return any(start < other_end and other_start < end for other_start, other_end in intervals)


def generate_offers(
    resources: Sequence[ResourceSchedule],
    blocked_dates: Set[date],
    policy,
    start_date: date,
    end_date: date,
    now: datetime,
    bookings: Iterable = (),
    category: Optional[str] = None,
    tz: str = "UTC",
) -> List[SlotOffer]:
    """
    Expand rules into ordered, conflict-free slot offers.

    Args:
        resources: active resources with their resolved weekly windows
        blocked_dates: local calendar dates closed for the whole category
        policy: object with slot_duration_minutes, buffer_minutes,
            min_notice_hours and max_advance_days (validated beforehand)
        start_date: first local date requested (inclusive)
        end_date: last local date requested (inclusive)
        now: the reference instant; the only notion of time used
        bookings: held/confirmed bookings (resource_id, start_at, end_at)
        category: stamped on each offer (defaults to policy.category)
        tz: timezone the weekly windows are expressed in

    Returns:
        Offers sorted by start_at then resource_id
    """
    category = category or getattr(policy, "category", "")
    now = to_utc(now)
    duration = int(policy.slot_duration_minutes)
    buffer = int(policy.buffer_minutes)
    earliest = now + timedelta(hours=policy.min_notice_hours)
    latest = now + timedelta(days=policy.max_advance_days)

    # 1. clamp the requested range to the policy window
    if earliest > latest:
        return []
    first_day = max(start_date, utc_to_local_date(earliest, tz))
    last_day = min(end_date, utc_to_local_date(latest, tz))
    if first_day > last_day:
        return []

    # Index existing bookings per resource, and per resource/day for capacity
    taken: Dict[str, List[Tuple[datetime, datetime]]] = defaultdict(list)
    per_day: Dict[Tuple[str, date], int] = defaultdict(int)
    for booking in bookings:
        b_start, b_end = to_utc(booking.start_at), to_utc(booking.end_at)
        taken[booking.resource_id].append((b_start, b_end))
        per_day[(booking.resource_id, utc_to_local_date(b_start, tz))] += 1

    offers: List[SlotOffer] = []
    for stamp in pd.date_range(first_day, last_day, freq="D"):
        day = stamp.date()
        # 2. exceptions override every rule
        if day in blocked_dates:
            continue
        dow = day_of_week(day)

        for resource in resources:
            window = resource.windows.get(dow)
            if window is None:
                continue
            # capacity trim for per-day limited resources
            if resource.capacity is not None and per_day[(resource.resource_id, day)] >= resource.capacity:
                continue

            # 3. enumerate candidate starts inside the window
            for minute in window_starts(window[0], window[1], duration, buffer):
                start_at = local_to_utc(day, minute, tz)
                if start_at < earliest or start_at > latest:
                    continue
                end_at = start_at + timedelta(minutes=duration)
                # 5. conflict filter
                if _overlaps(start_at, end_at, taken.get(resource.resource_id, ())):
                    continue
                offers.append(SlotOffer(category, resource.resource_id, start_at, end_at))

    # 6. stable order
    offers.sort(key=lambda o: (o.start_at, o.resource_id))
    return offers
