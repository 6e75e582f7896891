"""Tests for CSV import/export functionality."""

import pandas as pd
import pytest
from conftest import MONDAY, NOW, make_offer

from slotbook.domain.repositories import BlockedDateRepository, BranchRepository
from slotbook.engine.generator import generate_offers
from slotbook.engine.rules import load_blocked_dates, load_policy, load_resources
from slotbook.engine.transactions import cancel_booking, try_book
from slotbook.errors import ConfigError
from slotbook.io.export_csv import export_bookings_csv, export_offers_csv
from slotbook.io.import_csv import import_blocked_dates_csv, import_branches_csv


def test_import_branches_csv(db_session, tmp_path):
    """Test importing branches from CSV."""
    csv_content = """branch_id,name,accepting_trials,max_trials_per_day
branch-001,High Street,true,3
branch-002,Market Square,false,
branch-003,Riverside,,1
"""
    csv_file = tmp_path / "branches.csv"
    csv_file.write_text(csv_content)

    count = import_branches_csv(db_session, csv_file)
    assert count == 3

    branches = BranchRepository.get_all(db_session)
    assert [b.branch_id for b in branches] == ["branch-001", "branch-002", "branch-003"]

    high_street = BranchRepository.get_by_id(db_session, "branch-001")
    assert high_street.name == "High Street"
    assert high_street.accepting_trials
    assert high_street.max_trials_per_day == 3

    # blank capacity falls back to the default
    market = BranchRepository.get_by_id(db_session, "branch-002")
    assert not market.accepting_trials
    assert market.max_trials_per_day == 2

    # blank accepting_trials means accepting
    assert BranchRepository.get_by_id(db_session, "branch-003").accepting_trials


def test_import_branches_csv_updates_existing(seeded_session, tmp_path):
    csv_file = tmp_path / "branches.csv"
    csv_file.write_text("branch_id,max_trials_per_day\nbranch-1,5\n")

    import_branches_csv(seeded_session, csv_file)

    assert BranchRepository.get_by_id(seeded_session, "branch-1").max_trials_per_day == 5
    assert len(BranchRepository.get_all(seeded_session)) == 2


def test_import_branches_csv_rejects_bad_row(db_session, tmp_path):
    csv_file = tmp_path / "branches.csv"
    csv_file.write_text("branch_id,max_trials_per_day\nbranch-001,2\nbranch-002,0\n")

    with pytest.raises(ConfigError):
        import_branches_csv(db_session, csv_file)
    assert BranchRepository.get_all(db_session) == []


def test_import_blocked_dates_csv(db_session, tmp_path):
    csv_file = tmp_path / "blocked.csv"
    csv_file.write_text("date,category\n2025-12-25,interview\n2025-12-25,trial\n2025-12-26,\n")

    added = import_blocked_dates_csv(db_session, csv_file, category="interview")
    assert added == 3

    assert BlockedDateRepository.get_dates(db_session, "interview") == {
        pd.Timestamp("2025-12-25").date(),
        pd.Timestamp("2025-12-26").date(),
    }
    assert BlockedDateRepository.get_dates(db_session, "trial") == {pd.Timestamp("2025-12-25").date()}

    # importing the same file again adds nothing
    assert import_blocked_dates_csv(db_session, csv_file, category="interview") == 0


def test_import_blocked_dates_needs_a_category(db_session, tmp_path):
    csv_file = tmp_path / "blocked.csv"
    csv_file.write_text("date\n2025-12-25\n")

    with pytest.raises(ConfigError):
        import_blocked_dates_csv(db_session, csv_file)
    assert import_blocked_dates_csv(db_session, csv_file, category="trial") == 1


def test_import_blocked_dates_unknown_category(db_session, tmp_path):
    csv_file = tmp_path / "blocked.csv"
    csv_file.write_text("date,category\n2025-12-25,massage\n")

    with pytest.raises(ConfigError):
        import_blocked_dates_csv(db_session, csv_file)


def test_export_bookings_csv(seeded_session, tmp_path):
    first = try_book(seeded_session, make_offer("interview", "pool-1", MONDAY, "09:00", 30), "cand-1", NOW)
    try_book(seeded_session, make_offer("trial", "branch-1", MONDAY, "07:00", 240), "cand-2", NOW)
    cancel_booking(seeded_session, first.booking.id, NOW)

    out = tmp_path / "bookings.csv"
    assert export_bookings_csv(seeded_session, out) == 2

    df = pd.read_csv(out)
    assert list(df["resource_id"]) == ["branch-1", "pool-1"]
    assert list(df["status"]) == ["confirmed", "cancelled"]
    assert df.loc[0, "start_at"] == "2025-09-01T07:00:00+0000"

    assert export_bookings_csv(seeded_session, out, status="confirmed") == 1
    assert export_bookings_csv(seeded_session, out, category="interview", status="confirmed") == 0


def test_export_offers_csv(seeded_session, tmp_path):
    offers = generate_offers(
        load_resources(seeded_session, "interview"),
        load_blocked_dates(seeded_session, "interview"),
        load_policy(seeded_session, "interview"),
        MONDAY,
        MONDAY,
        NOW,
    )

    out = tmp_path / "offers.csv"
    assert export_offers_csv(offers, out) == 22

    df = pd.read_csv(out)
    assert list(df.columns) == ["offer_id", "category", "resource_id", "start_at", "end_at"]
    assert df.loc[0, "offer_id"] == "interview|pool-1|2025-09-01T09:00:00+00:00"
