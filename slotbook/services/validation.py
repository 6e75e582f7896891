"""Save-time validation of policy, weekly windows and branch capacity.

Generation assumes valid configuration, so every check lives here and runs
when settings are saved. Each validator collects all problems and raises a
single ConfigError; nothing is silently corrected.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

from slotbook.domain.models import CATEGORIES, TRIAL, TRIAL_DURATION_MINUTES
from slotbook.errors import ConfigError
from slotbook.timeplan import minutes_of_day


def policy_problems(policy) -> List[str]:
    """Return a list of human-readable problems with a policy (empty when valid)."""
    problems: List[str] = []
    category = getattr(policy, "category", None)

    if category is not None and category not in CATEGORIES:
        problems.append(f"Unknown category '{category}'")

    duration = policy.slot_duration_minutes
    if duration is None or duration <= 0:
        problems.append(f"slot_duration_minutes must be positive, got {duration}")
    elif category == TRIAL and duration != TRIAL_DURATION_MINUTES:
        problems.append(f"Trial duration is fixed at {TRIAL_DURATION_MINUTES} minutes, got {duration}")

    if policy.buffer_minutes is None or policy.buffer_minutes < 0:
        problems.append(f"buffer_minutes must be >= 0, got {policy.buffer_minutes}")

    if policy.max_advance_days is None or policy.max_advance_days < 0:
        problems.append(f"max_advance_days must be >= 0, got {policy.max_advance_days}")

    if policy.min_notice_hours is None or policy.min_notice_hours < 0:
        problems.append(f"min_notice_hours must be >= 0, got {policy.min_notice_hours}")
    elif policy.max_advance_days is not None and policy.min_notice_hours > policy.max_advance_days * 24:
        problems.append(
            f"min_notice_hours ({policy.min_notice_hours}) exceeds the advance window "
            f"({policy.max_advance_days} days = {policy.max_advance_days * 24} hours)"
        )

    link_expiry = getattr(policy, "link_expiry_days", None)
    if link_expiry is not None and link_expiry <= 0:
        problems.append(f"link_expiry_days must be positive, got {link_expiry}")

    return problems


def validate_policy(policy, active_resources: Sequence) -> None:
    """
    Validate a booking policy together with the resources it will apply to.

    Args:
        policy: BookingPolicy or PolicyConfig
        active_resources: resources that would be bookable under this policy

    Raises:
        ConfigError: listing every problem found
    """
    problems = policy_problems(policy)
    if not active_resources:
        problems.append("At least one active resource is required")
    if problems:
        raise ConfigError(problems)


def window_problems(windows: Iterable, label: str = "schedule") -> List[str]:
    problems: List[str] = []
    seen = set()
    for window in windows:
        dow = window.day_of_week
        if dow is None or not 0 <= dow <= 6:
            problems.append(f"{label}: day_of_week must be 0-6, got {dow}")
            continue
        if dow in seen:
            problems.append(f"{label}: more than one window for day {dow}")
        seen.add(dow)

        try:
            start = minutes_of_day(window.start_time)
            end = minutes_of_day(window.end_time)
        except (TypeError, ValueError):
            problems.append(f"{label}: day {dow} has an unreadable time ({window.start_time}-{window.end_time})")
            continue
        if window.enabled and start >= end:
            problems.append(f"{label}: day {dow} starts at {window.start_time} but ends at {window.end_time}")
    return problems


def validate_windows(windows: Iterable, label: str = "schedule") -> None:
    """Raise ConfigError unless every window is well formed and days are unique."""
    problems = window_problems(windows, label)
    if problems:
        raise ConfigError(problems)


def validate_branch_capacity(branch) -> None:
    if branch.max_trials_per_day is None or branch.max_trials_per_day < 1:
        raise ConfigError(f"Branch {branch.branch_id}: max_trials_per_day must be >= 1, got {branch.max_trials_per_day}")
