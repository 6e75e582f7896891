"""Load engine configuration from YAML.

The file mirrors what the settings screens edit: one section per category with
its booking policy, weekly schedule and blocked dates, interview pools, and the
branch list for trials. Anything omitted falls back to the defaults below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import yaml

from .domain.models import INTERVIEW, TRIAL, TRIAL_DURATION_MINUTES
from .errors import ConfigError
from .timeplan import format_minutes


@dataclass
class PolicyConfig:
    category: str
    slot_duration_minutes: int
    buffer_minutes: int
    max_advance_days: int
    min_notice_hours: int
    link_expiry_days: int = 7


@dataclass
class WindowConfig:
    day_of_week: int  # 0=Sunday
    start_time: str
    end_time: str
    enabled: bool = True


@dataclass
class PoolConfig:
    id: str
    name: str
    active: bool = True
    windows: List[WindowConfig] = field(default_factory=list)


@dataclass
class BranchConfig:
    branch_id: str
    name: Optional[str] = None
    accepting_trials: bool = True
    max_trials_per_day: int = 2


@dataclass
class CategoryConfig:
    policy: PolicyConfig
    schedule: List[WindowConfig] = field(default_factory=list)
    blocked_dates: List[date] = field(default_factory=list)


@dataclass
class EngineConfig:
    db_url: str = "sqlite:///slotbook.db"
    timezone: str = "UTC"
    interview: CategoryConfig = None
    trial: CategoryConfig = None
    pools: List[PoolConfig] = field(default_factory=list)
    branches: List[BranchConfig] = field(default_factory=list)

    def __post_init__(self):
        if self.interview is None:
            self.interview = default_category(INTERVIEW)
        if self.trial is None:
            self.trial = default_category(TRIAL)

    def category(self, name: str) -> CategoryConfig:
        if name == INTERVIEW:
            return self.interview
        if name == TRIAL:
            return self.trial
        raise ConfigError(f"Unknown category '{name}'")


# Monday-Friday 09:00-17:00, weekend 09:00-13:00 but switched off
def default_schedule() -> List[WindowConfig]:
    weekdays = [WindowConfig(dow, "09:00", "17:00", True) for dow in range(1, 6)]
    weekend = [WindowConfig(dow, "09:00", "13:00", False) for dow in (6, 0)]
    return weekdays + weekend


DEFAULT_POLICIES: Dict[str, Dict[str, int]] = {
    INTERVIEW: {
        "slot_duration_minutes": 30,
        "buffer_minutes": 15,
        "max_advance_days": 14,
        "min_notice_hours": 24,
        "link_expiry_days": 7,
    },
    TRIAL: {
        "slot_duration_minutes": TRIAL_DURATION_MINUTES,
        "buffer_minutes": 30,
        "max_advance_days": 21,
        "min_notice_hours": 48,
        "link_expiry_days": 7,
    },
}


def default_category(name: str) -> CategoryConfig:
    return CategoryConfig(policy=PolicyConfig(category=name, **DEFAULT_POLICIES[name]), schedule=default_schedule())


def _as_int(value, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{label} must be an integer, got {value!r}") from None


def _time_value(value) -> str:
    # YAML 1.1 reads unquoted 17:00 as the base-60 integer 1020
    if isinstance(value, int) and not isinstance(value, bool):
        return format_minutes(value)
    return str(value)


def _parse_windows(raw: List[Dict] | None, label: str) -> List[WindowConfig]:
    windows = []
    for item in raw or []:
        try:
            windows.append(
                WindowConfig(
                    day_of_week=_as_int(item["day_of_week"], f"{label}.day_of_week"),
                    start_time=_time_value(item.get("start_time", item.get("start"))),
                    end_time=_time_value(item.get("end_time", item.get("end"))),
                    enabled=bool(item.get("enabled", True)),
                )
            )
        except KeyError as e:
            raise ConfigError(f"{label}: window is missing {e}") from None
    return windows


def _parse_dates(raw: List | None) -> List[date]:
    return [pd.Timestamp(d).date() for d in raw or []]


def _parse_category(name: str, raw: Dict | None) -> CategoryConfig:
    raw = raw or {}
    policy_values = dict(DEFAULT_POLICIES[name])
    for key, value in (raw.get("policy") or {}).items():
        if key not in policy_values:
            raise ConfigError(f"{name}.policy: unknown field '{key}'")
        policy_values[key] = _as_int(value, f"{name}.policy.{key}")

    schedule = _parse_windows(raw.get("schedule"), f"{name}.schedule") if "schedule" in raw else default_schedule()
    return CategoryConfig(
        policy=PolicyConfig(category=name, **policy_values),
        schedule=schedule,
        blocked_dates=_parse_dates(raw.get("blocked_dates")),
    )


def parse_config(data: Dict | None) -> EngineConfig:
    """Build an EngineConfig from an already-loaded mapping."""
    data = data or {}
    interview_raw = data.get(INTERVIEW) or {}
    trial_raw = data.get(TRIAL) or {}

    pools = []
    for item in interview_raw.get("pools") or []:
        if "id" not in item:
            raise ConfigError("interview.pools: every pool needs an id")
        pools.append(
            PoolConfig(
                id=str(item["id"]),
                name=str(item.get("name", item["id"])),
                active=bool(item.get("active", True)),
                windows=_parse_windows(item.get("windows"), f"pool {item['id']}"),
            )
        )

    default_capacity = _as_int(trial_raw.get("default_max_trials_per_day", 2), "trial.default_max_trials_per_day")
    branches = []
    for item in trial_raw.get("branches") or []:
        if "branch_id" not in item:
            raise ConfigError("trial.branches: every branch needs a branch_id")
        branches.append(
            BranchConfig(
                branch_id=str(item["branch_id"]),
                name=item.get("name"),
                accepting_trials=bool(item.get("accepting_trials", True)),
                max_trials_per_day=_as_int(
                    item.get("max_trials_per_day", default_capacity), f"branch {item['branch_id']}.max_trials_per_day"
                ),
            )
        )

    return EngineConfig(
        db_url=str((data.get("database") or {}).get("url", "sqlite:///slotbook.db")),
        timezone=str(data.get("timezone", "UTC")),
        interview=_parse_category(INTERVIEW, interview_raw),
        trial=_parse_category(TRIAL, trial_raw),
        pools=pools,
        branches=branches,
    )


def load_config(path: str | Path | None) -> EngineConfig:
    """Load configuration from a YAML file. None gives the defaults."""
    if path is None:
        return EngineConfig()
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return parse_config(data)
