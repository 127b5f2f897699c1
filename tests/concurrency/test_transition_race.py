"""
Concurrent transitions for one employee.

Each thread gets its own session and coordinator.  The employee row lock
(BEGIN IMMEDIATE on SQLite, SELECT ... FOR UPDATE on PostgreSQL) makes the
transitions commit one after the other; whichever runs second sees the
first one's records.  Whatever the order, history never overlaps and never
has two open records.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from threading import Barrier

import pytest

from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.dtos import ConfigurationCandidate
from payroll_kernel.exceptions import HistoryOverlapError
from payroll_kernel.services.history_store import ConfigurationHistoryStore
from payroll_kernel.services.transition_coordinator import TransitionCoordinator

from tests.conftest import TEST_NOW

pytestmark = pytest.mark.slow_locks


def _run_concurrently(session_factory, candidates):
    """Apply each candidate from its own thread, released together."""
    barrier = Barrier(len(candidates))

    def _apply(candidate):
        session = session_factory()
        try:
            coordinator = TransitionCoordinator(
                session, clock=DeterministicClock(TEST_NOW)
            )
            barrier.wait(timeout=10)
            return coordinator.apply(candidate, performed_by="race")
        except HistoryOverlapError as exc:
            return exc
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(candidates)) as pool:
        return list(pool.map(_apply, candidates))


def _assert_valid_chain(session_factory, subject_id):
    session = session_factory()
    try:
        store = ConfigurationHistoryStore(session)
        history = store.get_history(subject_id)
        assert store.find_overlaps(subject_id) == []
        assert len([r for r in history if r.is_open]) == 1
        return history
    finally:
        session.close()


@pytest.mark.parametrize("attempt", range(5))
def test_two_dates_same_employee(session_factory, apply_split, employee, attempt):
    apply_split(employee.id, 70, 20, 10, date(2024, 1, 1))
    march = ConfigurationCandidate.percentage(employee.id, 72, 18, 10, date(2024, 3, 1))
    june = ConfigurationCandidate.percentage(employee.id, 75, 15, 10, date(2024, 6, 1))

    outcomes = _run_concurrently(session_factory, [march, june])

    committed = [o for o in outcomes if not isinstance(o, Exception)]
    rejected = [o for o in outcomes if isinstance(o, Exception)]
    assert committed
    assert all(isinstance(o, HistoryOverlapError) for o in rejected)

    history = _assert_valid_chain(session_factory, employee.id)
    assert len(history) == 1 + len(committed)
    # June always lands: either after March or straight over January
    assert history[0].effective_date == date(2024, 6, 1)
    if len(committed) == 2:
        assert [r.end_date for r in history] == [
            None,
            date(2024, 5, 31),
            date(2024, 2, 29),
        ]


def test_same_date_exactly_one_commits(session_factory, apply_split, employee):
    apply_split(employee.id, 70, 20, 10, date(2024, 1, 1))
    candidates = [
        ConfigurationCandidate.percentage(employee.id, 70 + n, 20 - n, 10, date(2024, 6, 1))
        for n in range(1, 7)
    ]

    outcomes = _run_concurrently(session_factory, candidates)

    committed = [o for o in outcomes if not isinstance(o, Exception)]
    assert len(committed) == 1
    assert sum(isinstance(o, HistoryOverlapError) for o in outcomes) == 5

    history = _assert_valid_chain(session_factory, employee.id)
    assert [r.id for r in history][0] == committed[0].record.id
    assert history[1].end_date == date(2024, 5, 31)
