"""Validated writes of booking configuration.

Every save validates first and only then writes, inside one transaction, so a
ConfigError leaves the stored configuration exactly as it was.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from slotbook.domain.models import (
    CATEGORIES,
    INTERVIEW,
    BookingPolicy,
    BranchCapacity,
    ResourcePool,
    WeeklyWindow,
)
from slotbook.domain.repositories import (
    BlockedDateRepository,
    BranchRepository,
    PolicyRepository,
    ResourcePoolRepository,
    WindowRepository,
)
from slotbook.errors import ConfigError
from slotbook.services.validation import policy_problems, validate_branch_capacity, validate_windows, window_problems

logger = logging.getLogger(__name__)


def _check_category(category: str) -> None:
    if category not in CATEGORIES:
        raise ConfigError(f"Unknown category '{category}'")


def _to_windows(windows: Iterable) -> List[WeeklyWindow]:
    return [
        WeeklyWindow(
            day_of_week=w.day_of_week,
            start_time=str(w.start_time),
            end_time=str(w.end_time),
            enabled=bool(w.enabled),
        )
        for w in windows
    ]


def active_resource_ids(session: Session, category: str) -> List[str]:
    """Ids of the resources currently bookable in a category."""
    if category == INTERVIEW:
        return [pool.id for pool in ResourcePoolRepository.get_active(session)]
    return [branch.branch_id for branch in BranchRepository.get_accepting(session)]


def save_policy(session: Session, policy) -> BookingPolicy:
    """
    Validate and store the booking policy of a category.

    Args:
        session: Database session
        policy: BookingPolicy or PolicyConfig carrying the category

    Raises:
        ConfigError: invalid numbers or no active resource in the category
    """
    _check_category(policy.category)
    problems = policy_problems(policy)
    if not active_resource_ids(session, policy.category):
        problems.append(f"At least one active {policy.category} resource is required")
    if problems:
        raise ConfigError(problems)

    stored = PolicyRepository.upsert(
        session,
        BookingPolicy(
            category=policy.category,
            slot_duration_minutes=policy.slot_duration_minutes,
            buffer_minutes=policy.buffer_minutes,
            max_advance_days=policy.max_advance_days,
            min_notice_hours=policy.min_notice_hours,
            link_expiry_days=policy.link_expiry_days,
        ),
    )
    session.commit()
    logger.info("Saved %s policy: %r", policy.category, stored)
    return stored


def save_weekly_windows(session: Session, category: str, windows: Sequence, resource_id: Optional[str] = None) -> int:
    """
    Replace the weekly template of a category, or of one interview pool.

    Raises:
        ConfigError: invalid windows, per-resource windows outside the interview
            category, or an unknown pool
    """
    _check_category(category)
    if resource_id is not None:
        if category != INTERVIEW:
            raise ConfigError(f"{category} windows are shared by every resource and cannot be set per resource")
        if ResourcePoolRepository.get_by_id(session, resource_id) is None:
            raise ConfigError(f"Unknown interview pool '{resource_id}'")
    validate_windows(windows, label=resource_id or f"{category} schedule")
    count = WindowRepository.replace(session, category, resource_id, _to_windows(windows))
    session.commit()
    return count


def save_resource_pool(
    session: Session,
    pool_id: str,
    name: str,
    active: bool = True,
    windows: Optional[Sequence] = None,
) -> ResourcePool:
    """
    Create or update an interview pool and, when given, its weekly windows.

    Deactivating the last active pool is rejected once an interview policy
    exists, since the category would have nothing left to book.
    """
    if not name or not name.strip():
        raise ConfigError("Please enter a slot name")
    if windows is not None:
        validate_windows(windows, label=f"pool {pool_id}")

    if not active and PolicyRepository.get(session, INTERVIEW) is not None:
        others = [pid for pid in active_resource_ids(session, INTERVIEW) if pid != pool_id]
        if not others:
            raise ConfigError("At least one active interview resource is required")

    pool = ResourcePoolRepository.upsert(
        session, ResourcePool(id=pool_id, name=name.strip(), category=INTERVIEW, active=bool(active))
    )
    if windows is not None:
        WindowRepository.replace(session, INTERVIEW, pool_id, _to_windows(windows))
    session.commit()
    logger.info("Saved pool %s (%s), active=%s", pool_id, pool.name, pool.active)
    return pool


def set_blocked_dates(session: Session, category: str, dates: Iterable[date]) -> int:
    """Replace the exception calendar of a category."""
    _check_category(category)
    count = BlockedDateRepository.replace(session, category, dates)
    session.commit()
    logger.info("Blocked %d dates for %s", count, category)
    return count


def save_branch(
    session: Session,
    branch_id: str,
    name: Optional[str] = None,
    accepting_trials: bool = True,
    max_trials_per_day: int = 2,
) -> BranchCapacity:
    """Create or update the trial settings of one branch."""
    branch = BranchCapacity(
        branch_id=branch_id,
        name=name,
        accepting_trials=bool(accepting_trials),
        max_trials_per_day=max_trials_per_day,
    )
    validate_branch_capacity(branch)
    stored = BranchRepository.upsert(session, branch)
    session.commit()
    return stored


def config_problems(cfg) -> List[str]:
    """Every problem in an EngineConfig, across both categories."""
    problems: List[str] = []
    for category in CATEGORIES:
        section = cfg.category(category)
        problems.extend(f"{category}: {p}" for p in policy_problems(section.policy))
        problems.extend(window_problems(section.schedule, label=f"{category} schedule"))

    seen = set()
    for pool in cfg.pools:
        if pool.id in seen:
            problems.append(f"Duplicate pool id '{pool.id}'")
        seen.add(pool.id)
        problems.extend(window_problems(pool.windows, label=f"pool {pool.id}"))
    if not any(pool.active for pool in cfg.pools):
        problems.append("interview: At least one active resource is required")

    for branch in cfg.branches:
        if branch.max_trials_per_day < 1:
            problems.append(f"Branch {branch.branch_id}: max_trials_per_day must be >= 1")
    if not any(branch.accepting_trials for branch in cfg.branches):
        problems.append("trial: At least one active resource is required")
    return problems


def apply_config(session: Session, cfg) -> None:
    """
    Store a whole EngineConfig (policies, schedules, pools, blocked dates, branches).

    Raises:
        ConfigError: before anything is written, listing every problem
    """
    problems = config_problems(cfg)
    if problems:
        raise ConfigError(problems)

    try:
        for category in CATEGORIES:
            section = cfg.category(category)
            p = section.policy
            PolicyRepository.upsert(
                session,
                BookingPolicy(
                    category=category,
                    slot_duration_minutes=p.slot_duration_minutes,
                    buffer_minutes=p.buffer_minutes,
                    max_advance_days=p.max_advance_days,
                    min_notice_hours=p.min_notice_hours,
                    link_expiry_days=p.link_expiry_days,
                ),
            )
            WindowRepository.replace(session, category, None, _to_windows(section.schedule))
            BlockedDateRepository.replace(session, category, section.blocked_dates)

        for pool in cfg.pools:
            ResourcePoolRepository.upsert(
                session, ResourcePool(id=pool.id, name=pool.name, category=INTERVIEW, active=pool.active)
            )
            WindowRepository.replace(session, INTERVIEW, pool.id, _to_windows(pool.windows))

        for branch in cfg.branches:
            BranchRepository.upsert(
                session,
                BranchCapacity(
                    branch_id=branch.branch_id,
                    name=branch.name,
                    accepting_trials=branch.accepting_trials,
                    max_trials_per_day=branch.max_trials_per_day,
                ),
            )
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        "Applied configuration: %d pools, %d branches, %d/%d blocked dates",
        len(cfg.pools),
        len(cfg.branches),
        len(cfg.interview.blocked_dates),
        len(cfg.trial.blocked_dates),
    )
