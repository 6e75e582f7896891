"""Concurrent booking attempts against a file-backed SQLite database."""

import threading

import pytest
from conftest import MONDAY, NOW, make_offer

from slotbook.domain.db import get_session_factory, init_database
from slotbook.domain.models import LINK_USED, Booking, BookingLink
from slotbook.engine.transactions import try_book
from slotbook.errors import PolicyViolation
from slotbook.services.links import create_booking_link, find_link
from slotbook.services.settings import apply_config


@pytest.fixture
def file_factory(tmp_path, engine_config):
    engine = init_database(f"sqlite:///{tmp_path / 'slotbook.db'}")
    factory = get_session_factory(engine=engine)
    with factory() as session:
        apply_config(session, engine_config)
    yield factory
    engine.dispose()


def _race(factory, offers, link_token=None):
    """Run one try_book per offer, all released at the same moment."""
    barrier = threading.Barrier(len(offers))
    results = [None] * len(offers)
    errors = []

    def attempt(i, offer):
        try:
            with factory() as session:
                barrier.wait()
                results[i] = try_book(session, offer, f"cand-{i}", NOW, link_token=link_token)
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=attempt, args=(i, offer)) for i, offer in enumerate(offers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    return results


@pytest.mark.integration
def test_two_candidates_race_for_one_slot(file_factory):
    offer = make_offer("interview", "pool-1", MONDAY, "10:30", 30)

    results = _race(file_factory, [offer, offer])

    kinds = sorted("ok" if r.ok else r.error.kind for r in results)
    assert kinds == ["ok", "slot_taken"]
    with file_factory() as session:
        assert session.query(Booking).count() == 1


@pytest.mark.integration
def test_concurrent_trials_respect_daily_capacity(file_factory):
    offers = [make_offer("trial", "branch-1", MONDAY, hhmm, 240) for hhmm in ("07:00", "11:30", "16:00")]

    results = _race(file_factory, offers)

    kinds = sorted("ok" if r.ok else r.error.kind for r in results)
    assert kinds == ["capacity_exceeded", "ok", "ok"]
    with file_factory() as session:
        assert session.query(Booking).filter(Booking.resource_id == "branch-1").count() == 2


@pytest.mark.integration
def test_different_resources_do_not_block_each_other(file_factory):
    offers = [
        make_offer("interview", "pool-1", MONDAY, "09:00", 30),
        make_offer("interview", "pool-2", MONDAY, "09:00", 30),
    ]

    results = _race(file_factory, offers)

    assert all(r.ok for r in results)


@pytest.mark.integration
def test_one_link_used_concurrently_on_two_pools_books_once(file_factory):
    with file_factory() as session:
        _, token = create_booking_link(session, "cand-1", "interview", NOW, 7)
    offers = [
        make_offer("interview", "pool-1", MONDAY, "09:00", 30),
        make_offer("interview", "pool-2", MONDAY, "09:00", 30),
    ]
    results = _race(file_factory, offers, link_token=token)

    kinds = sorted("ok" if r.ok else r.error.kind for r in results)
    assert kinds == ["ok", "policy_violation"]
    with file_factory() as session:
        assert session.query(Booking).count() == 1
        link = session.query(BookingLink).one()
        assert (link.status, link.use_count) == (LINK_USED, 1)


@pytest.mark.integration
def test_link_used_up_after_it_was_read_is_not_used_twice(file_factory):
    """A session holding a stale copy of the link still cannot book with it."""
    with file_factory() as session:
        _, token = create_booking_link(session, "cand-1", "interview", NOW, 7)

    with file_factory() as stale, file_factory() as other:
        # stale reads the link while it is unused and keeps that copy
        stale_link = find_link(stale, token)
        assert stale_link.use_count == 0

        first_offer = make_offer("interview", "pool-2", MONDAY, "09:00", 30)
        first = try_book(other, first_offer, "cand-1", NOW, link_token=token)
        assert first.ok

        second_offer = make_offer("interview", "pool-1", MONDAY, "09:45", 30)
        second = try_book(stale, second_offer, "cand-1", NOW, link_token=token)

    assert isinstance(second.error, PolicyViolation)
    assert second.error.message == "This booking link has already been used"
    with file_factory() as session:
        assert session.query(Booking).count() == 1
