"""CSV export utilities."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import pandas as pd
from sqlalchemy.orm import Session

from slotbook.domain.repositories import BookingRepository

logger = logging.getLogger(__name__)

BOOKING_COLUMNS = [
    "id",
    "category",
    "resource_id",
    "start_at",
    "end_at",
    "candidate_id",
    "status",
    "confirmation_code",
    "created_at",
    "cancelled_at",
]


def bookings_frame(session: Session, category: str | None = None, status: str | None = None) -> pd.DataFrame:
    bookings = BookingRepository.get_all(session, category=category, status=status)
    df = pd.DataFrame([{col: getattr(b, col) for col in BOOKING_COLUMNS} for b in bookings], columns=BOOKING_COLUMNS)
    for col in ("start_at", "end_at", "created_at", "cancelled_at"):
        df[col] = pd.to_datetime(df[col]).dt.tz_localize("UTC")
    return df


def export_bookings_csv(
    session: Session, csv_path: str | Path, category: str | None = None, status: str | None = None
) -> int:
    """
    Export bookings to CSV with UTC ISO timestamps.

    Returns:
        Number of bookings exported
    """
    df = bookings_frame(session, category=category, status=status)
    df.to_csv(csv_path, index=False, date_format="%Y-%m-%dT%H:%M:%S%z")
    logger.info("Exported %d bookings to %s", len(df), csv_path)
    return len(df)


def export_offers_csv(offers: Iterable, csv_path: str | Path) -> int:
    """Write slot offers to CSV. Returns number of rows."""
    df = pd.DataFrame(
        [offer.to_dict() for offer in offers],
        columns=["offer_id", "category", "resource_id", "start_at", "end_at"],
    )
    df.to_csv(csv_path, index=False)
    return len(df)
