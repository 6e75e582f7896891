"""Domain models and data access layer."""

from .models import (
    Base,
    BlockedDate,
    Booking,
    BookingLink,
    BookingPolicy,
    BranchCapacity,
    ResourcePool,
    SlotLock,
    WeeklyWindow,
)
from .repositories import (
    BlockedDateRepository,
    BookingLinkRepository,
    BookingRepository,
    BranchRepository,
    PolicyRepository,
    ResourcePoolRepository,
    SlotLockRepository,
    WindowRepository,
)

__all__ = [
    "Base",
    "BlockedDate",
    "Booking",
    "BookingLink",
    "BookingPolicy",
    "BranchCapacity",
    "ResourcePool",
    "SlotLock",
    "WeeklyWindow",
    "BlockedDateRepository",
    "BookingLinkRepository",
    "BookingRepository",
    "BranchRepository",
    "PolicyRepository",
    "ResourcePoolRepository",
    "SlotLockRepository",
    "WindowRepository",
]
