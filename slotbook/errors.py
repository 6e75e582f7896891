"""Error taxonomy for the booking engine.

ConfigError is raised at save time. The booking errors are never raised to
callers of the booking operations; they travel inside a BookingResult so every
call resolves to either a Booking or a specific error kind.
"""

from __future__ import annotations

from typing import List


class EngineError(Exception):
    """Base class for all engine errors."""


class ConfigError(EngineError, ValueError):
    """Invalid policy or rule set. Carries every problem found, not just the first."""

    def __init__(self, problems: List[str] | str):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class BookingError(EngineError):
    """A booking attempt that did not produce a booking."""

    kind = "booking_error"
    recoverable = True

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(kind='{self.kind}', message='{self.message}')>"


class PolicyViolation(BookingError):
    """Outside notice/advance windows, off the slot grid, or link no longer usable."""

    kind = "policy_violation"


class SlotTaken(BookingError):
    """Race lost: another booking now overlaps the interval."""

    kind = "slot_taken"


class CapacityExceeded(BookingError):
    """Branch/day trial limit reached or branch not accepting trials."""

    kind = "capacity_exceeded"


class BookingNotFound(BookingError):
    kind = "not_found"
    recoverable = False
