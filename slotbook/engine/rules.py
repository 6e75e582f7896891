"""Read the stored rule set into the plain shapes the generator works on."""

from __future__ import annotations

from typing import List, Set

from sqlalchemy.orm import Session

from slotbook.domain.models import INTERVIEW, TRIAL, BookingPolicy
from slotbook.domain.repositories import (
    BlockedDateRepository,
    BranchRepository,
    PolicyRepository,
    ResourcePoolRepository,
    WindowRepository,
)
from slotbook.errors import ConfigError

from .generator import ResourceSchedule, resolve_windows


def load_policy(session: Session, category: str) -> BookingPolicy | None:
    return PolicyRepository.get(session, category)


def load_resources(session: Session, category: str, include_inactive: bool = False) -> List[ResourceSchedule]:
    """
    Build ResourceSchedules for a category.

    Interview pools carry their own windows (or the interview template);
    branches use the trial template and carry max_trials_per_day as capacity.
    """
    windows = WindowRepository.get_for_category(session, category)
    if category == INTERVIEW:
        pools = ResourcePoolRepository.get_all(session) if include_inactive else ResourcePoolRepository.get_active(session)
        return [ResourceSchedule(pool.id, resolve_windows(windows, pool.id)) for pool in pools]
    if category == TRIAL:
        branches = BranchRepository.get_all(session) if include_inactive else BranchRepository.get_accepting(session)
        return [
            ResourceSchedule(branch.branch_id, resolve_windows(windows, branch.branch_id), branch.max_trials_per_day)
            for branch in branches
        ]
    raise ConfigError(f"Unknown category '{category}'")


def load_blocked_dates(session: Session, category: str) -> Set:
    return BlockedDateRepository.get_dates(session, category)
