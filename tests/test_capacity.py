"""Tests for branch trial capacity and bulk edits."""

from datetime import timedelta

import pytest
from conftest import MONDAY, NOW, make_offer

from slotbook.domain.repositories import BranchRepository
from slotbook.engine.transactions import cancel_booking, try_book
from slotbook.errors import ConfigError
from slotbook.services.capacity import bulk_set_accepting, bulk_set_capacity, can_book_trial, trial_count


def _book_trial(session, hhmm, candidate="cand-1", day=MONDAY):
    return try_book(session, make_offer("trial", "branch-1", day, hhmm, 240), candidate, NOW)


class TestCanBookTrial:
    """Tests for can_book_trial."""

    def test_accepting_branch_with_room(self, seeded_session):
        assert can_book_trial(seeded_session, "branch-1", MONDAY)

    def test_branch_full_for_the_day(self, seeded_session):
        assert _book_trial(seeded_session, "07:00", "cand-1").ok
        assert can_book_trial(seeded_session, "branch-1", MONDAY)
        assert _book_trial(seeded_session, "11:30", "cand-2").ok

        assert trial_count(seeded_session, "branch-1", MONDAY) == 2
        assert not can_book_trial(seeded_session, "branch-1", MONDAY)
        assert can_book_trial(seeded_session, "branch-1", MONDAY + timedelta(days=1))

    def test_cancelled_trials_do_not_count(self, seeded_session):
        first = _book_trial(seeded_session, "07:00", "cand-1")
        assert _book_trial(seeded_session, "11:30", "cand-2").ok
        cancel_booking(seeded_session, first.booking.id, NOW)

        assert trial_count(seeded_session, "branch-1", MONDAY) == 1
        assert can_book_trial(seeded_session, "branch-1", MONDAY)

    def test_branch_not_accepting(self, seeded_session):
        assert not can_book_trial(seeded_session, "branch-2", MONDAY)

    def test_unknown_branch(self, seeded_session):
        assert not can_book_trial(seeded_session, "branch-404", MONDAY)


class TestBulkEdits:
    """Tests for bulk_set_accepting / bulk_set_capacity."""

    def test_bulk_accepting_reports_missing_ids(self, seeded_session):
        result = bulk_set_accepting(seeded_session, ["branch-1", "branch-2", "branch-404"], False)

        assert result.updated == ["branch-1", "branch-2"]
        assert result.missing == ["branch-404"]
        assert not BranchRepository.get_by_id(seeded_session, "branch-1").accepting_trials
        assert not BranchRepository.get_by_id(seeded_session, "branch-2").accepting_trials

    def test_bulk_accepting_is_idempotent(self, seeded_session):
        bulk_set_accepting(seeded_session, ["branch-2"], True)
        first = [(b.branch_id, b.accepting_trials, b.max_trials_per_day) for b in BranchRepository.get_all(seeded_session)]

        again = bulk_set_accepting(seeded_session, ["branch-2", "branch-2"], True)
        second = [(b.branch_id, b.accepting_trials, b.max_trials_per_day) for b in BranchRepository.get_all(seeded_session)]

        assert again.updated == ["branch-2"]
        assert first == second
        assert can_book_trial(seeded_session, "branch-2", MONDAY)

    def test_bulk_capacity(self, seeded_session):
        result = bulk_set_capacity(seeded_session, ["branch-1"], 1)
        assert result.updated == ["branch-1"]

        assert _book_trial(seeded_session, "07:00").ok
        assert not can_book_trial(seeded_session, "branch-1", MONDAY)

    def test_bulk_capacity_rejects_zero(self, seeded_session):
        with pytest.raises(ConfigError):
            bulk_set_capacity(seeded_session, ["branch-1"], 0)
        assert BranchRepository.get_by_id(seeded_session, "branch-1").max_trials_per_day == 2
