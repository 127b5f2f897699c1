"""
TransitionCoordinator: validate, lock, close, insert, refresh cache, commit,
then audit.

Covers the Jan/Jun split change end to end, pending changes, rollback on
storage failure, multi-employee changes and historical backfill.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from payroll_kernel.domain.dtos import ConfigurationCandidate
from payroll_kernel.domain.values import AuditAction, ConfigField, PaymentKind, RecordState
from payroll_kernel.exceptions import (
    ConfigurationValidationError,
    HistoryOverlapError,
    SubjectNotFoundError,
    TransitionFailedError,
)
from payroll_kernel.models.audit_entry import AuditEntry
from payroll_kernel.services.audit_logger import AuditLogger
from payroll_kernel.services.employee_service import EmployeeService
from payroll_kernel.services.history_store import ConfigurationHistoryStore
from payroll_kernel.services.transition_coordinator import TransitionCoordinator

from tests.conftest import TEST_ACTOR

D = date


class TestSplitChange:
    """70/20/10 from January, 75/15/10 from June."""

    @pytest.fixture
    def june_change(self, apply_split, employee, clock):
        first = apply_split(employee.id, 70, 20, 10, D(2024, 1, 1))
        clock.advance(60)
        second = apply_split(employee.id, 75, 15, 10, D(2024, 6, 1))
        return first, second

    def test_previous_record_closed_day_before(self, store, june_change):
        first, second = june_change
        assert second.closed_record_ids == (first.record.id,)
        assert store.get(first.record.id).end_date == D(2024, 5, 31)
        assert second.record.effective_date == D(2024, 6, 1)
        assert second.record.end_date is None

    def test_resolution_either_side_of_change(self, resolver, employee, june_change):
        march = resolver.resolve(employee.id, D(2024, 3, 1))
        july = resolver.resolve(employee.id, D(2024, 7, 1))
        assert (march.driver_percent, march.company_percent) == (Decimal("70"), Decimal("20"))
        assert (july.driver_percent, july.company_percent) == (Decimal("75"), Decimal("15"))
        assert march.is_from_history and july.is_from_history

    def test_history_has_no_overlap(self, store, employee, june_change):
        assert store.find_overlaps(employee.id) == []
        open_records = [r for r in store.get_history(employee.id) if r.is_open]
        assert len(open_records) == 1

    def test_first_record_audited_as_create(self, audit, june_change):
        first, _ = june_change
        entries = audit.get_logs_for_session(first.session_id)
        assert first.audit_entries_written == 3
        assert {e.action for e in entries} == {AuditAction.CREATE}
        assert {e.field: e.new_value for e in entries} == {
            ConfigField.DRIVER_PERCENT: Decimal("70"),
            ConfigField.COMPANY_PERCENT: Decimal("20"),
            ConfigField.SERVICE_FEE_PERCENT: Decimal("10"),
        }
        assert all(e.old_value is None for e in entries)

    def test_change_audited_once_per_changed_field(self, audit, june_change):
        _, second = june_change
        entries = audit.get_logs_for_session(second.session_id)
        assert second.audit_entries_written == 2
        assert sorted((e.field.value, e.old_value, e.new_value) for e in entries) == [
            ("COMPANY_PERCENT", Decimal("20"), Decimal("15")),
            ("DRIVER_PERCENT", Decimal("70"), Decimal("75")),
        ]
        assert all(e.action == AuditAction.FINAL_UPDATE for e in entries)
        assert all(e.performed_by == TEST_ACTOR for e in entries)
        assert all(e.subject_name == "Dana Driver" for e in entries)

    def test_cache_mirrors_latest_record(self, employees, employee, june_change):
        info = employees.get(employee.id)
        assert info.driver_percent == Decimal("75")
        assert info.company_percent == Decimal("15")
        assert info.payment_kind == PaymentKind.PERCENTAGE
        assert info.payment_effective_date == D(2024, 6, 1)

    def test_old_effective_date_warns(self, june_change):
        first, second = june_change
        # clock is 2024-06-15
        assert first.warnings == ("Effective date is more than 30 days in the past",)
        assert second.warnings == ()


class TestApply:
    def test_round_trip_per_mile(self, coordinator, store, employee):
        candidate = ConfigurationCandidate.per_mile(
            employee.id, "0.55", D(2024, 6, 1), notes="new lane"
        )
        result = coordinator.apply(candidate, performed_by="dispatch")

        history = store.get_history(employee.id)
        assert [r.id for r in history] == [result.record.id]
        assert history[0].per_mile_rate == Decimal("0.55")
        assert history[0].kind == PaymentKind.PER_MILE
        assert history[0].created_by == "dispatch"
        assert history[0].notes == "new lane"

    def test_four_place_split_round_trips_through_fresh_session(
        self, apply_split, session_factory, employee
    ):
        result = apply_split(
            employee.id, "33.3333", "33.3333", "33.3334", D(2024, 6, 1)
        )

        fresh = session_factory()
        try:
            stored = ConfigurationHistoryStore(fresh).get_history(employee.id)
        finally:
            fresh.close()
        assert stored[0].field_values() == result.record.field_values()
        assert stored[0].driver_percent == Decimal("33.3333")

    def test_finer_than_stored_precision_rejected(self, apply_split, store, employee):
        with pytest.raises(ConfigurationValidationError) as exc_info:
            apply_split(employee.id, "33.33333", "33.33333", "33.33334", D(2024, 6, 1))

        assert {e.code for e in exc_info.value.errors} == {"PRECISION_EXCEEDED"}
        assert store.get_history(employee.id) == []

    def test_identical_reapply_writes_no_audit(self, apply_split, employee, store):
        apply_split(employee.id, 70, 20, 10, D(2024, 1, 1))
        result = apply_split(employee.id, 70, 20, 10, D(2024, 6, 1))

        assert result.audit_entries_written == 0
        assert not result.is_audited
        assert len(store.get_history(employee.id)) == 2

    def test_kind_switch_audits_dropped_fields(self, coordinator, audit, apply_split, employee):
        apply_split(employee.id, 70, 20, 10, D(2024, 1, 1))
        result = coordinator.apply(
            ConfigurationCandidate.flat_rate(employee.id, 500, D(2024, 6, 1)),
            performed_by=TEST_ACTOR,
        )

        entries = audit.get_logs_for_session(result.session_id)
        assert {e.field: (e.old_value, e.new_value) for e in entries} == {
            ConfigField.DRIVER_PERCENT: (Decimal("70"), None),
            ConfigField.COMPANY_PERCENT: (Decimal("20"), None),
            ConfigField.SERVICE_FEE_PERCENT: (Decimal("10"), None),
            ConfigField.FLAT_RATE_AMOUNT: (None, Decimal("500")),
        }

    def test_explicit_session_id_groups_entries(self, apply_split, audit, employee):
        result = apply_split(employee.id, 70, 20, 10, D(2024, 1, 1), session_id="dialog-42")
        assert result.session_id == "dialog-42"
        assert len(audit.get_logs_for_session("dialog-42")) == 3

    def test_same_effective_date_rejected(self, apply_split, store, employee):
        apply_split(employee.id, 70, 20, 10, D(2024, 6, 1))

        with pytest.raises(HistoryOverlapError):
            apply_split(employee.id, 80, 10, 10, D(2024, 6, 1))

        history = store.get_history(employee.id)
        assert len(history) == 1
        assert history[0].driver_percent == Decimal("70")

    def test_logs_bracket_transaction(self, apply_split, employee, captured_logs):
        result = apply_split(employee.id, 70, 20, 10, D(2024, 6, 1))

        logs = captured_logs()
        started = next(r for r in logs if r["message"] == "transition_started")
        committed = next(r for r in logs if r["message"] == "transition_committed")
        assert started["session_id"] == result.session_id
        assert started["subject_id"] == str(employee.id)
        assert started["actor"] == TEST_ACTOR
        assert committed["correlation_id"] == started["correlation_id"]
        assert committed["record_id"] == str(result.record.id)
        assert "duration_ms" in committed


class TestPendingChange:
    def test_future_change_is_pending_and_closes_current(
        self, apply_split, resolver, store, clock, employee
    ):
        current = apply_split(employee.id, 70, 20, 10, D(2024, 6, 1))
        pending = apply_split(employee.id, 75, 15, 10, D(2024, 9, 1))

        assert pending.record.state_on(clock.today()) == RecordState.PENDING
        assert store.get(current.record.id).end_date == D(2024, 8, 31)
        assert resolver.resolve(employee.id, D(2024, 7, 1)).driver_percent == Decimal("70")
        assert resolver.resolve(employee.id, D(2024, 9, 15)).driver_percent == Decimal("75")
        assert store.get_future(employee.id, clock.today())[0].id == pending.record.id

    def test_change_before_pending_record_rejected(self, apply_split, store, employee):
        apply_split(employee.id, 70, 20, 10, D(2024, 6, 1))
        apply_split(employee.id, 75, 15, 10, D(2024, 9, 1))

        with pytest.raises(HistoryOverlapError):
            apply_split(employee.id, 72, 18, 10, D(2024, 7, 1))

        assert len(store.get_history(employee.id)) == 2
        assert store.find_overlaps(employee.id) == []


class TestFailures:
    def test_validation_failure_has_no_side_effects(
        self, coordinator, store, audit, employees, employee, captured_logs
    ):
        candidate = ConfigurationCandidate.flat_rate(employee.id, 0, D(2024, 6, 1))

        with pytest.raises(ConfigurationValidationError) as exc_info:
            coordinator.apply(candidate, performed_by=TEST_ACTOR)

        assert [e.code for e in exc_info.value.errors] == ["RATE_NOT_POSITIVE"]
        assert store.get_history(employee.id) == []
        assert audit.get_logs_for_subject(employee.id) == []
        assert employees.get(employee.id).payment_kind == PaymentKind.PERCENTAGE
        messages = [r["message"] for r in captured_logs()]
        assert "transition_rejected" in messages
        assert "transition_started" not in messages

    def test_nan_is_a_validation_error(self, apply_split, store, employee):
        with pytest.raises(ConfigurationValidationError) as exc_info:
            apply_split(employee.id, float("nan"), 20, 10, D(2024, 6, 1))

        assert [e.code for e in exc_info.value.errors] == ["NOT_A_NUMBER"]
        assert store.get_history(employee.id) == []

    def test_audit_failure_inside_caller_transaction_keeps_change(
        self, session, store, clock, employee, captured_logs
    ):
        audit = AuditLogger(session, clock, auto_commit=False)
        coordinator = TransitionCoordinator(
            session, audit_logger=audit, clock=clock, auto_commit=False
        )

        def _reject(mapper, connection, target):
            raise RuntimeError("audit table is read-only")

        event.listen(AuditEntry, "before_insert", _reject)
        try:
            result = coordinator.apply(
                ConfigurationCandidate.flat_rate(employee.id, 500, D(2024, 6, 1)),
                performed_by=TEST_ACTOR,
            )
        finally:
            event.remove(AuditEntry, "before_insert", _reject)
        session.commit()

        assert result.audit_entries_written == 0
        assert [r.id for r in store.get_history(employee.id)] == [result.record.id]
        assert any(r["message"] == "audit_trail_incomplete" for r in captured_logs())

    def test_unknown_employee(self, apply_split, captured_logs):
        with pytest.raises(SubjectNotFoundError):
            apply_split(uuid4(), 70, 20, 10, D(2024, 6, 1))
        assert any(r["message"] == "transition_rolled_back" for r in captured_logs())

    def test_storage_failure_rolls_back_closure(
        self, apply_split, store, employees, employee, monkeypatch
    ):
        first = apply_split(employee.id, 70, 20, 10, D(2024, 1, 1))

        def _fail(self, employee, record):
            raise OperationalError("UPDATE employees", {}, Exception("disk I/O error"))

        monkeypatch.setattr(EmployeeService, "mirror_configuration", _fail)

        with pytest.raises(TransitionFailedError) as exc_info:
            apply_split(employee.id, 75, 15, 10, D(2024, 6, 1))

        assert exc_info.value.code == "TRANSITION_FAILED"
        history = store.get_history(employee.id)
        assert [r.id for r in history] == [first.record.id]
        assert history[0].end_date is None
        assert employees.get(employee.id).payment_effective_date == D(2024, 1, 1)

    def test_audit_failure_does_not_undo_change(
        self, apply_split, store, audit, employee, captured_logs
    ):
        def _reject(mapper, connection, target):
            raise RuntimeError("audit table is read-only")

        event.listen(AuditEntry, "before_insert", _reject)
        try:
            result = apply_split(employee.id, 70, 20, 10, D(2024, 6, 1))
        finally:
            event.remove(AuditEntry, "before_insert", _reject)

        assert result.audit_entries_written == 0
        assert [r.id for r in store.get_history(employee.id)] == [result.record.id]
        assert audit.get_logs_for_subject(employee.id) == []
        incomplete = [r for r in captured_logs() if r["message"] == "audit_trail_incomplete"]
        assert incomplete[0]["entry_count"] == 3


class TestApplyToSubjects:
    def test_partial_failure_reported(self, coordinator, audit, store, make_employee):
        drivers = [make_employee(f"Driver {n}") for n in range(3)]
        missing = uuid4()
        template = ConfigurationCandidate.flat_rate(None, 500, D(2024, 6, 1))

        report = coordinator.apply_to_subjects(
            template, [d.id for d in drivers] + [missing], performed_by=TEST_ACTOR
        )

        assert report.succeeded == 3
        assert report.failed == 1
        assert not report.all_succeeded
        assert report.failures[0].subject_id == missing
        assert report.failures[0].error_code == "SUBJECT_NOT_FOUND"
        assert {r.session_id for r in report.results} == {report.session_id}
        assert len(audit.get_logs_for_session(report.session_id)) == 3
        for driver in drivers:
            assert store.get_open_record(driver.id).flat_rate_amount == Decimal("500")

    def test_conflict_for_one_employee_does_not_stop_others(
        self, coordinator, apply_split, make_employee
    ):
        busy = make_employee("Busy")
        free = make_employee("Free")
        apply_split(busy.id, 70, 20, 10, D(2024, 6, 1))
        template = ConfigurationCandidate.per_mile(None, "0.60", D(2024, 6, 1))

        report = coordinator.apply_to_subjects(
            template, [busy.id, free.id], performed_by=TEST_ACTOR
        )

        assert [f.error_code for f in report.failures] == ["HISTORY_OVERLAP"]
        assert [r.record.subject_id for r in report.results] == [free.id]

    def test_requires_auto_commit(self, session, clock):
        coordinator = TransitionCoordinator(session, clock=clock, auto_commit=False)
        template = ConfigurationCandidate.flat_rate(None, 500, D(2024, 6, 1))
        with pytest.raises(ValueError):
            coordinator.apply_to_subjects(template, [uuid4()], performed_by=TEST_ACTOR)


class TestBackfill:
    def test_fills_gap_before_first_record(
        self, coordinator, apply_split, store, employees, employee
    ):
        apply_split(employee.id, 70, 20, 10, D(2024, 6, 1))
        candidate = ConfigurationCandidate.flat_rate(
            employee.id, 450, D(2024, 1, 1), end_date=D(2024, 5, 31)
        )

        result = coordinator.backfill(candidate, performed_by="importer")

        assert result.closed_record_ids == ()
        assert result.warnings == ()
        assert store.find_overlaps(employee.id) == []
        assert store.get_effective(employee.id, D(2024, 3, 1)).flat_rate_amount == Decimal("450")
        # cache still reflects the current record
        assert employees.get(employee.id).payment_kind == PaymentKind.PERCENTAGE

    def test_overlapping_backfill_rejected(self, coordinator, apply_split, store, employee):
        apply_split(employee.id, 70, 20, 10, D(2024, 6, 1))
        candidate = ConfigurationCandidate.flat_rate(
            employee.id, 450, D(2024, 5, 1), end_date=D(2024, 6, 30)
        )

        with pytest.raises(HistoryOverlapError):
            coordinator.backfill(candidate, performed_by="importer")
        assert len(store.get_history(employee.id)) == 1

    def test_end_date_required(self, coordinator, employee):
        candidate = ConfigurationCandidate.flat_rate(employee.id, 450, D(2024, 1, 1))
        with pytest.raises(ConfigurationValidationError) as exc_info:
            coordinator.backfill(candidate, performed_by="importer")
        assert exc_info.value.errors[0].code == "END_DATE_REQUIRED"
