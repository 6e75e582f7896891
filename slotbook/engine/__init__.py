"""Slot generation and booking transactions."""

from .generator import ResourceSchedule, SlotOffer, generate_offers, parse_offer_id
from .service import BookingEngine
from .transactions import BookingResult, cancel_booking, try_book

__all__ = [
    "ResourceSchedule",
    "SlotOffer",
    "generate_offers",
    "parse_offer_id",
    "BookingEngine",
    "BookingResult",
    "cancel_booking",
    "try_book",
]
