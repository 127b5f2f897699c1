"""
TransitionCoordinator -- the one place a configuration change is committed.

Responsibility:
    Turns a ConfigurationCandidate into committed history: validate, lock
    the employee, close the open record, check for overlap, insert the new
    record, refresh the employee's current-configuration cache, commit.
    After commit, hands the field diffs to AuditLogger.

Architecture position:
    Kernel > Services -- orchestrator.  Owns its transaction boundary when
    ``auto_commit=True``.  Composes EmployeeService, ConfigurationHistoryStore
    and AuditLogger over the caller's session.

Invariants enforced:
    NON_OVERLAP / SINGLE_OPEN -- close + overlap check + insert run under the
        employee row lock (SELECT ... FOR UPDATE; BEGIN IMMEDIATE on SQLite),
        so two transitions for one employee cannot interleave.
    CACHE_CONSISTENCY -- the cache update is part of the same transaction as
        the history insert.  A failure anywhere rolls back all three writes.

Failure modes:
    - ConfigurationValidationError: raised before any database access.
    - SubjectNotFoundError: unknown employee; nothing written.
    - HistoryOverlapError: candidate collides with a record that cannot be
      closed (same effective date, pending future record, backfilled range).
      Rolled back, including any closure.
    - TransitionFailedError: storage error; rolled back.
    - Audit failures after commit are logged (``audit_trail_incomplete``)
      and swallowed.  TransitionResult.audit_entries_written is 0.

Audit relevance:
    One CREATE entry per field for an employee's first record, one
    FINAL_UPDATE entry per changed field afterwards, all carrying the
    operation's session_id and performed_by.
"""

import time
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.diffing import diff_fields
from payroll_kernel.domain.dtos import (
    AuditEntryDraft,
    BulkTransitionReport,
    ConfigurationCandidate,
    ConfigurationRecordInfo,
    SubjectFailure,
    TransitionResult,
)
from payroll_kernel.domain.validation import (
    ValidationError,
    ValidationLimits,
    advisory_warnings,
    validate_candidate,
)
from payroll_kernel.domain.values import AuditAction
from payroll_kernel.exceptions import (
    AuditError,
    ConfigurationValidationError,
    PayrollKernelError,
    TransitionFailedError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.services.audit_logger import AuditLogger, new_session_id
from payroll_kernel.services.employee_service import EmployeeService
from payroll_kernel.services.history_store import ConfigurationHistoryStore

logger = get_logger("services.transition_coordinator")

# performed_by for changes made by importers and other unattended jobs
SYSTEM_ACTOR = "SYSTEM"


@dataclass(frozen=True)
class _Committed:
    subject_name: str
    record: ConfigurationRecordInfo
    previous: ConfigurationRecordInfo | None
    closed_ids: tuple[UUID, ...]


class TransitionCoordinator:
    """
    Commits configuration transitions.

    Contract:
        apply(), apply_to_subjects() and backfill() each define their own
        transaction boundary when auto_commit=True (the default).  Set
        auto_commit=False to run inside a caller-owned transaction; the
        default AuditLogger then follows the same setting.
    """

    def __init__(
        self,
        session: Session,
        audit_logger: AuditLogger | None = None,
        clock: Clock | None = None,
        limits: ValidationLimits | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._limits = limits or ValidationLimits()
        self._auto_commit = auto_commit
        self._audit = audit_logger or AuditLogger(
            session, self._clock, auto_commit=auto_commit
        )
        self._store = ConfigurationHistoryStore(session, self._limits, self._clock)
        self._employees = EmployeeService(session)

    # =========================================================================
    # Public API
    # =========================================================================

    def apply(
        self,
        candidate: ConfigurationCandidate,
        *,
        performed_by: str,
        session_id: str | None = None,
    ) -> TransitionResult:
        """
        Make ``candidate`` the employee's configuration from its effective date.

        The employee's open record (if it started earlier) is closed the day
        before.  A future effective date creates a pending record and closes
        the current one immediately.

        Args:
            candidate: Proposed configuration.
            performed_by: Free-text actor recorded on history and audit rows.
            session_id: Groups audit entries; generated when omitted.

        Returns:
            TransitionResult with the new record, closed record ids,
            advisory warnings and the audit entry count.
        """
        session_id = session_id or new_session_id()
        self._validate(candidate)
        warnings = advisory_warnings(candidate, self._clock.today(), self._limits)

        committed = self._run(
            "transition",
            candidate,
            performed_by,
            session_id,
            lambda: self._do_apply(candidate, performed_by),
        )
        written = self._audit_transition(committed, performed_by, session_id)
        return TransitionResult(
            record=committed.record,
            session_id=session_id,
            closed_record_ids=committed.closed_ids,
            warnings=warnings,
            audit_entries_written=written,
        )

    def apply_to_subjects(
        self,
        template: ConfigurationCandidate,
        subject_ids: list[UUID],
        *,
        performed_by: str,
        session_id: str | None = None,
    ) -> BulkTransitionReport:
        """
        Apply one change to many employees.

        Each employee gets its own transaction; a rejected employee does not
        stop the others.  All audit entries share one session_id.
        """
        if not self._auto_commit:
            raise ValueError(
                "apply_to_subjects commits per employee and needs auto_commit=True"
            )
        session_id = session_id or new_session_id()
        results: list[TransitionResult] = []
        failures: list[SubjectFailure] = []

        for subject_id in subject_ids:
            try:
                results.append(
                    self.apply(
                        template.for_subject(subject_id),
                        performed_by=performed_by,
                        session_id=session_id,
                    )
                )
            except PayrollKernelError as exc:
                failures.append(SubjectFailure(subject_id, exc.code, str(exc)))

        logger.info(
            "bulk_transition_completed",
            extra={
                "session_id": session_id,
                "succeeded": len(results),
                "failed": len(failures),
            },
        )
        return BulkTransitionReport(
            session_id=session_id,
            results=tuple(results),
            failures=tuple(failures),
        )

    def backfill(
        self,
        candidate: ConfigurationCandidate,
        *,
        performed_by: str,
        session_id: str | None = None,
    ) -> TransitionResult:
        """
        Record a bounded historical configuration without closing anything.

        The candidate must have an end date and must not overlap any
        existing record.  The employee's cache is left alone.
        """
        session_id = session_id or new_session_id()
        if candidate.end_date is None:
            error = ValidationError(
                code="END_DATE_REQUIRED",
                message="Historical records need an end date",
                field="end_date",
            )
            raise ConfigurationValidationError([error], candidate.subject_id)
        self._validate(candidate)
        warnings = advisory_warnings(
            candidate, self._clock.today(), self._limits, check_dates=False
        )

        committed = self._run(
            "backfill",
            candidate,
            performed_by,
            session_id,
            lambda: self._do_backfill(candidate, performed_by),
        )
        written = self._audit_transition(committed, performed_by, session_id)
        return TransitionResult(
            record=committed.record,
            session_id=session_id,
            warnings=warnings,
            audit_entries_written=written,
        )

    # =========================================================================
    # Transaction handling
    # =========================================================================

    def _validate(self, candidate: ConfigurationCandidate) -> None:
        result = validate_candidate(candidate, self._limits)
        if not result:
            logger.warning(
                "transition_rejected",
                extra={
                    "subject_id": str(candidate.subject_id),
                    "error_codes": [e.code for e in result.errors],
                },
            )
            raise ConfigurationValidationError(result.errors, candidate.subject_id)

    def _run(self, operation, candidate, performed_by, session_id, work) -> _Committed:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            session_id=session_id,
            subject_id=str(candidate.subject_id),
            actor=performed_by,
        ):
            logger.info(
                f"{operation}_started",
                extra={
                    "kind": candidate.kind.value,
                    "effective_date": candidate.effective_date.isoformat(),
                },
            )
            t0 = time.monotonic()
            try:
                committed = work()
                if self._auto_commit:
                    self._session.commit()
            except PayrollKernelError:
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    f"{operation}_rolled_back",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise
            except SQLAlchemyError as exc:
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    f"{operation}_rolled_back",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise TransitionFailedError(str(candidate.subject_id), str(exc)) from exc
            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.error(f"{operation}_rolled_back", exc_info=True)
                raise

            logger.info(
                f"{operation}_committed",
                extra={
                    "record_id": str(committed.record.id),
                    "closed_record_ids": [str(i) for i in committed.closed_ids],
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return committed

    def _do_apply(
        self, candidate: ConfigurationCandidate, performed_by: str
    ) -> _Committed:
        employee = self._employees.lock_for_transition(candidate.subject_id)
        closed = self._store.supersede_open_records(
            candidate.subject_id, candidate.effective_date
        )
        self._store.ensure_no_overlap(candidate.subject_id, candidate.interval)
        record_id = self._store.create(candidate, created_by=performed_by)
        record = self._store.get(record_id)
        self._employees.mirror_configuration(employee, record)
        return _Committed(
            subject_name=employee.name,
            record=record,
            previous=closed[0] if closed else None,
            closed_ids=tuple(r.id for r in closed),
        )

    def _do_backfill(
        self, candidate: ConfigurationCandidate, performed_by: str
    ) -> _Committed:
        employee = self._employees.lock_for_transition(candidate.subject_id)
        self._store.ensure_no_overlap(candidate.subject_id, candidate.interval)
        record_id = self._store.create(candidate, created_by=performed_by)
        return _Committed(
            subject_name=employee.name,
            record=self._store.get(record_id),
            previous=None,
            closed_ids=(),
        )

    # =========================================================================
    # Audit
    # =========================================================================

    def _audit_transition(
        self, committed: _Committed, performed_by: str, session_id: str
    ) -> int:
        record = committed.record
        previous = committed.previous
        action = AuditAction.FINAL_UPDATE if previous else AuditAction.CREATE
        changes = diff_fields(
            previous.field_values() if previous else None,
            record.field_values(),
        )
        drafts = [
            AuditEntryDraft(
                subject_id=record.subject_id,
                subject_name=committed.subject_name,
                action=action,
                field=change.field,
                old_value=change.old_value,
                new_value=change.new_value,
                performed_by=performed_by,
                session_id=session_id,
                notes=record.notes,
            )
            for change in changes
        ]
        try:
            return len(self._audit.log_changes(drafts))
        except AuditError:
            logger.warning(
                "audit_trail_incomplete",
                extra={
                    "subject_id": str(record.subject_id),
                    "record_id": str(record.id),
                    "session_id": session_id,
                    "entry_count": len(drafts),
                },
                exc_info=True,
            )
            return 0
