"""
ConfigurationHistoryStore -- versioned configuration records per employee.

Responsibility:
    Persists configuration records, closes superseded open records and
    enforces that an employee's records never overlap in time.  Answers
    point-in-time, history, scheduled-change and overlap queries by
    delegating to HistorySelector.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.
    Called by TransitionCoordinator, which owns the transaction.  Nothing
    else should insert history: going around the coordinator skips the
    employee lock and the cache update.

Invariants enforced:
    NON_OVERLAP -- ensure_no_overlap() rejects any interval intersecting an
        existing record, including full containment.  Nothing is truncated
        or reordered to make room.
    SINGLE_OPEN -- close_open_records() sets end_date = new_effective_date - 1
        on every open record that started earlier.
    Records are validated again on create(), so a direct caller cannot
    persist a record the coordinator would have rejected.

Failure modes:
    - ConfigurationValidationError: candidate fails validation.
    - HistoryOverlapError: interval conflicts with an existing record.
    - RecordNotFoundError: get() with an unknown id.

Audit relevance:
    Closures and inserts are logged with record ids and dates.  Field-level
    audit entries are written by TransitionCoordinator after commit.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import (
    ConfigurationCandidate,
    ConfigurationRecordInfo,
    as_utc,
)
from payroll_kernel.domain.intervals import DateInterval, day_before
from payroll_kernel.domain.validation import ValidationLimits, validate_candidate
from payroll_kernel.exceptions import (
    ConfigurationValidationError,
    HistoryOverlapError,
    RecordNotFoundError,
)
from payroll_kernel.invariants import ConfigurationInvariant
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.configuration_record import ConfigurationRecord
from payroll_kernel.selectors.history_selector import HistorySelector
from payroll_kernel.services.base import BaseService

logger = get_logger("services.history_store")


class ConfigurationHistoryStore(BaseService[ConfigurationRecord]):
    """
    Store for ConfigurationRecord rows.

    Contract:
        Write methods flush within the caller's transaction; read methods
        return ConfigurationRecordInfo DTOs.
    """

    def __init__(
        self,
        session: Session,
        limits: ValidationLimits | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._limits = limits or ValidationLimits()
        self._clock = clock or SystemClock()
        self._selector = HistorySelector(session)

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, candidate: ConfigurationCandidate, *, created_by: str) -> UUID:
        """
        Validate and persist a record.  Returns the generated id.

        Overlap is NOT checked here; callers pair this with
        ensure_no_overlap() under the employee lock.

        Raises:
            ConfigurationValidationError: candidate fails per-kind rules.
        """
        result = validate_candidate(candidate, self._limits)
        if not result:
            logger.warning(
                "configuration_rejected",
                extra={
                    "subject_id": str(candidate.subject_id),
                    "error_codes": [e.code for e in result.errors],
                },
            )
            raise ConfigurationValidationError(result.errors, candidate.subject_id)

        now = as_utc(self._clock.now())
        record = ConfigurationRecord(
            subject_id=candidate.subject_id,
            kind=candidate.kind.value,
            driver_percent=candidate.driver_percent,
            company_percent=candidate.company_percent,
            service_fee_percent=candidate.service_fee_percent,
            flat_rate_amount=candidate.flat_rate_amount,
            per_mile_rate=candidate.per_mile_rate,
            effective_date=candidate.effective_date,
            end_date=candidate.end_date,
            created_by=created_by,
            notes=candidate.notes,
            created_at=now,
            modified_at=now,
        )
        self.session.add(record)
        self.session.flush()

        logger.info(
            "configuration_record_created",
            extra={
                "record_id": str(record.id),
                "subject_id": str(candidate.subject_id),
                "kind": candidate.kind.value,
                "effective_date": candidate.effective_date.isoformat(),
                "end_date": candidate.end_date.isoformat() if candidate.end_date else None,
            },
        )
        return record.id

    def supersede_open_records(
        self, subject_id: UUID, new_effective_date: date
    ) -> list[ConfigurationRecordInfo]:
        """
        Close every open record that started before ``new_effective_date``.

        Each gets end_date = new_effective_date - 1 day.  Returns the closed
        records (normally zero or one).  Idempotent: a second call finds no
        open records to close.
        """
        records = self.session.execute(
            select(ConfigurationRecord)
            .where(
                ConfigurationRecord.subject_id == subject_id,
                ConfigurationRecord.end_date.is_(None),
                ConfigurationRecord.effective_date < new_effective_date,
            )
            .order_by(ConfigurationRecord.effective_date.desc())
            .with_for_update()
        ).scalars().all()

        if not records:
            return []

        end_date = day_before(new_effective_date)
        now = as_utc(self._clock.now())
        for record in records:
            record.end_date = end_date
            record.modified_at = now
        self.session.flush()

        if len(records) > 1:
            logger.warning(
                "multiple_open_records_closed",
                extra={
                    "invariant": ConfigurationInvariant.SINGLE_OPEN.value,
                    "subject_id": str(subject_id),
                    "record_ids": [str(r.id) for r in records],
                },
            )
        logger.info(
            "records_closed",
            extra={
                "subject_id": str(subject_id),
                "record_ids": [str(r.id) for r in records],
                "end_date": end_date.isoformat(),
            },
        )
        return [ConfigurationRecordInfo.from_model(r) for r in records]

    def close_open_records(self, subject_id: UUID, new_effective_date: date) -> int:
        """Close open records ahead of ``new_effective_date``.  Returns the count."""
        return len(self.supersede_open_records(subject_id, new_effective_date))

    def ensure_no_overlap(
        self,
        subject_id: UUID,
        interval: DateInterval,
        exclude_id: UUID | None = None,
    ) -> None:
        """
        Raises:
            HistoryOverlapError: naming the earliest conflicting record and
                the span the two intervals share.
        """
        conflicts = self._selector.find_overlapping(subject_id, interval, exclude_id)
        if not conflicts:
            return

        existing = conflicts[0]
        shared = interval.intersection(existing.interval)
        logger.warning(
            "history_overlap_rejected",
            extra={
                "invariant": ConfigurationInvariant.NON_OVERLAP.value,
                "subject_id": str(subject_id),
                "existing_record_id": str(existing.id),
                "overlap_start": shared.start.isoformat(),
                "overlap_end": shared.end.isoformat() if shared.end else None,
            },
        )
        raise HistoryOverlapError(
            subject_id=str(subject_id),
            existing_record_id=str(existing.id),
            overlap_start=shared.start,
            overlap_end=shared.end,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, record_id: UUID) -> ConfigurationRecordInfo:
        """
        Raises:
            RecordNotFoundError: unknown record id.
        """
        record = self._selector.get_record(record_id)
        if record is None:
            raise RecordNotFoundError(str(record_id))
        return record

    def get_effective(
        self, subject_id: UUID, as_of: date
    ) -> ConfigurationRecordInfo | None:
        return self._selector.get_effective(subject_id, as_of)

    def get_open_record(self, subject_id: UUID) -> ConfigurationRecordInfo | None:
        return self._selector.get_open_record(subject_id)

    def get_history(self, subject_id: UUID) -> list[ConfigurationRecordInfo]:
        return self._selector.get_history(subject_id)

    def get_future(
        self, subject_id: UUID, from_date: date
    ) -> list[ConfigurationRecordInfo]:
        return self._selector.get_future(subject_id, from_date)

    def get_active_on(self, as_of: date) -> list[ConfigurationRecordInfo]:
        return self._selector.get_active_on(as_of)

    def has_overlap(
        self,
        subject_id: UUID,
        interval: DateInterval,
        exclude_id: UUID | None = None,
    ) -> bool:
        return self._selector.has_overlap(subject_id, interval, exclude_id)

    def find_overlaps(
        self, subject_id: UUID
    ) -> list[tuple[ConfigurationRecordInfo, ConfigurationRecordInfo]]:
        return self._selector.find_overlaps(subject_id)
