"""Trial capacity per branch and the bulk edits the settings screen applies."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List

from sqlalchemy.orm import Session

from slotbook.domain.models import TRIAL, BranchCapacity
from slotbook.domain.repositories import BookingRepository, BranchRepository
from slotbook.errors import ConfigError
from slotbook.timeplan import local_day_bounds

logger = logging.getLogger(__name__)


@dataclass
class BulkResult:
    """Outcome of a bulk edit: which branches were written and which ids were unknown."""

    updated: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)


def trial_count(session: Session, branch_id: str, day: date, tz: str = "UTC") -> int:
    """Held/confirmed trials starting at a branch on a local date."""
    day_start, day_end = local_day_bounds(day, tz)
    return BookingRepository.count_starting_between(session, TRIAL, branch_id, day_start, day_end)


def has_trial_capacity(branch: BranchCapacity | None, booked: int) -> bool:
    if branch is None or not branch.accepting_trials:
        return False
    return booked < branch.max_trials_per_day


def can_book_trial(session: Session, branch_id: str, day: date, tz: str = "UTC") -> bool:
    """
    Check whether a branch can take another trial on a date.

    True when the branch is accepting trials and its bookings for that date are
    below max_trials_per_day. Unknown branches cannot take trials.
    """
    branch = BranchRepository.get_by_id(session, branch_id)
    if branch is None:
        return False
    return has_trial_capacity(branch, trial_count(session, branch_id, day, tz))


def _apply(session: Session, branch_ids: Iterable[str], field_name: str, value) -> BulkResult:
    ids = list(dict.fromkeys(branch_ids))
    branches = BranchRepository.get_by_ids(session, ids)
    result = BulkResult()
    for branch_id in ids:
        branch = branches.get(branch_id)
        if branch is None:
            result.missing.append(branch_id)
            continue
        # plain assignment: re-applying the same edit leaves the same state
        setattr(branch, field_name, value)
        result.updated.append(branch_id)
    session.commit()

    if result.missing:
        logger.warning("Bulk %s skipped unknown branches: %s", field_name, ", ".join(result.missing))
    logger.info("Bulk %s=%s applied to %d branches", field_name, value, len(result.updated))
    return result


def bulk_set_accepting(session: Session, branch_ids: Iterable[str], accepting: bool) -> BulkResult:
    """Enable or disable trials for a set of branches."""
    return _apply(session, branch_ids, "accepting_trials", bool(accepting))


def bulk_set_capacity(session: Session, branch_ids: Iterable[str], max_trials_per_day: int) -> BulkResult:
    """Set max_trials_per_day for a set of branches."""
    if max_trials_per_day is None or int(max_trials_per_day) < 1:
        raise ConfigError(f"max_trials_per_day must be >= 1, got {max_trials_per_day}")
    return _apply(session, branch_ids, "max_trials_per_day", int(max_trials_per_day))
