"""One-time booking links handed to candidates.

The raw token is returned once at creation and never stored; lookups go
through its SHA-256 hash. Expiry is enforced when a link is presented
(check_link); expire_links is an on-demand sweep that only tidies statuses.
"""

from __future__ import annotations

import hashlib
import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from slotbook.domain.models import (
    CATEGORIES,
    LINK_ACTIVE,
    LINK_EXPIRED,
    LINK_REVOKED,
    LINK_USED,
    BookingLink,
)
from slotbook.domain.repositories import BookingLinkRepository
from slotbook.errors import ConfigError
from slotbook.timeplan import to_naive_utc, to_utc

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{10,64}$")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.strip().encode("utf-8")).hexdigest()


def create_booking_link(
    session: Session,
    candidate_id: str,
    category: str,
    now: datetime,
    expiry_days: int,
    resource_id: Optional[str] = None,
    max_uses: int = 1,
) -> Tuple[BookingLink, str]:
    """
    Issue a booking link.

    Returns:
        (link, token) - the token is only available here
    """
    if category not in CATEGORIES:
        raise ConfigError(f"Unknown category '{category}'")
    if expiry_days <= 0 or max_uses < 1:
        raise ConfigError("Booking links need a positive expiry and at least one use")

    token = secrets.token_hex(32)
    link = BookingLink(
        token_hash=hash_token(token),
        candidate_id=candidate_id,
        category=category,
        resource_id=resource_id,
        status=LINK_ACTIVE,
        expires_at=to_naive_utc(to_utc(now) + timedelta(days=expiry_days)),
        max_uses=max_uses,
        use_count=0,
        created_at=to_naive_utc(now),
    )
    BookingLinkRepository.add(session, link)
    session.commit()
    logger.info("Booking link %s issued for candidate %s (%s)", link.id, candidate_id, category)
    return link, token


def find_link(session: Session, token: str) -> Optional[BookingLink]:
    """Look a link up by its raw token. Malformed tokens never reach the database."""
    if not token or not TOKEN_PATTERN.match(token.strip()):
        return None
    return BookingLinkRepository.get_by_token_hash(session, hash_token(token))


def check_link(link: Optional[BookingLink], now: datetime) -> Optional[str]:
    """Return why a link cannot be used right now, or None when it can."""
    if link is None:
        return "Invalid or expired booking link"
    if link.status != LINK_ACTIVE:
        if link.status == LINK_USED:
            return "This booking link has already been used"
        return "Invalid or expired booking link"
    if to_utc(link.expires_at) < to_utc(now):
        return "Invalid or expired booking link"
    if (link.use_count or 0) >= (link.max_uses or 1):
        return "This booking link has already been used"
    return None


def consume_link(session: Session, link: BookingLink, booking_id: int, now: datetime) -> bool:
    """
    Record one use; the caller commits as part of the booking transaction.

    Returns False when another booking used up the link after it was checked.
    """
    if not BookingLinkRepository.consume(session, link.id, booking_id, now):
        return False
    session.refresh(link)
    return True


def revoke_link(session: Session, link_id: int) -> bool:
    link = BookingLinkRepository.get_by_id(session, link_id)
    if link is None or link.status != LINK_ACTIVE:
        return False
    link.status = LINK_REVOKED
    session.commit()
    logger.info("Booking link %s revoked", link_id)
    return True


def expire_links(session: Session, now: datetime) -> int:
    """Mark every active link past its expiry as expired. Returns how many changed."""
    links = BookingLinkRepository.get_expired_active(session, now)
    for link in links:
        link.status = LINK_EXPIRED
    session.commit()
    logger.info("Expired %d booking links", len(links))
    return len(links)
