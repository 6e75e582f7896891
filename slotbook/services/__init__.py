"""Services for configuration and capacity logic."""

from .capacity import bulk_set_accepting, bulk_set_capacity, can_book_trial
from .links import check_link, create_booking_link, expire_links
from .validation import validate_branch_capacity, validate_policy, validate_windows

__all__ = [
    "bulk_set_accepting",
    "bulk_set_capacity",
    "can_book_trial",
    "check_link",
    "create_booking_link",
    "expire_links",
    "validate_branch_capacity",
    "validate_policy",
    "validate_windows",
]
