"""CSV import utilities to load settings into the database."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd
from sqlalchemy.orm import Session

from slotbook.domain.models import CATEGORIES, BranchCapacity
from slotbook.domain.repositories import BlockedDateRepository, BranchRepository
from slotbook.errors import ConfigError
from slotbook.services.validation import validate_branch_capacity

logger = logging.getLogger(__name__)

TRUE_VALUES = {"TRUE", "T", "1", "YES", "Y"}


def _as_bool(value, default: bool = True) -> bool:
    if pd.isna(value):
        return default
    return str(value).strip().upper() in TRUE_VALUES


def import_branches_csv(session: Session, csv_path: str | Path, default_capacity: int = 2) -> int:
    """
    Import branch trial settings from CSV (branch_id, name, accepting_trials, max_trials_per_day).

    Existing branches are updated in place. Every row is validated before any
    write, so a bad row aborts the whole import.

    Returns:
        Number of branches imported
    """
    df = pd.read_csv(csv_path, dtype={"branch_id": str})

    # Normalize column names
    df.columns = df.columns.str.lower().str.strip()
    if "branch_id" not in df.columns:
        raise ConfigError(f"{csv_path}: missing branch_id column")
    df = df.drop_duplicates(subset=["branch_id"], keep="last")

    branches = []
    for _, row in df.iterrows():
        capacity = row.get("max_trials_per_day")
        branch = BranchCapacity(
            branch_id=str(row["branch_id"]).strip(),
            name=str(row["name"]) if pd.notna(row.get("name")) else None,
            accepting_trials=_as_bool(row.get("accepting_trials")),
            max_trials_per_day=int(capacity) if pd.notna(capacity) else default_capacity,
        )
        validate_branch_capacity(branch)
        branches.append(branch)

    for branch in branches:
        BranchRepository.upsert(session, branch)
    session.commit()

    logger.info("Imported %d branches from %s", len(branches), csv_path)
    return len(branches)


def import_blocked_dates_csv(session: Session, csv_path: str | Path, category: str | None = None) -> int:
    """
    Import blocked dates from CSV (date[, category]).

    Rows without a category use the category argument. Dates already blocked
    are skipped.

    Returns:
        Number of dates newly blocked
    """
    df = pd.read_csv(csv_path)
    df.columns = df.columns.str.lower().str.strip()
    if "date" not in df.columns:
        raise ConfigError(f"{csv_path}: missing date column")
    if "category" not in df.columns:
        if category is None:
            raise ConfigError(f"{csv_path}: no category column and no category given")
        df["category"] = category
    if category is not None:
        df["category"] = df["category"].fillna(category)
    df["category"] = df["category"].astype(str).str.lower().str.strip()
    df["date"] = pd.to_datetime(df["date"]).dt.date

    unknown = sorted(set(df["category"]) - set(CATEGORIES))
    if unknown:
        raise ConfigError(f"{csv_path}: unknown categories {unknown}")

    added = 0
    for cat, group in df.groupby("category"):
        added += BlockedDateRepository.add(session, cat, group["date"].tolist())
    session.commit()

    logger.info("Imported %d blocked dates from %s", added, csv_path)
    return added
