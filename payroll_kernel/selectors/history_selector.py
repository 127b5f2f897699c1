"""
Module: payroll_kernel.selectors.history_selector
Responsibility: Read-only queries over configuration history: point-in-time
    lookup, full history, scheduled changes, overlap detection and the
    "who is on what today" roster.
Architecture position: Kernel > Selectors.  Used by ConfigurationHistoryStore
    (for its read operations) and by EffectiveConfigResolver.

Invariants enforced:
    - Read-only: no mutations performed on any queried data.
    - NON_OVERLAP is assumed but not trusted.  If more than one record
      covers a date, get_effective() returns the latest effective_date and
      logs ``effective_config_ambiguous``; it never raises on bad data.

Failure modes:
    - Returns None or an empty list when nothing matches.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import or_, select

from payroll_kernel.domain.dtos import ConfigurationRecordInfo
from payroll_kernel.domain.intervals import DateInterval
from payroll_kernel.invariants import ConfigurationInvariant
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.configuration_record import ConfigurationRecord
from payroll_kernel.models.employee import Employee
from payroll_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.history")


def _covers(as_of: date):
    return (
        ConfigurationRecord.effective_date <= as_of,
        or_(
            ConfigurationRecord.end_date.is_(None),
            ConfigurationRecord.end_date >= as_of,
        ),
    )


class HistorySelector(BaseSelector[ConfigurationRecord]):
    """Read-side queries over the configuration_history table."""

    def get_record(self, record_id: UUID) -> ConfigurationRecordInfo | None:
        record = self.session.get(ConfigurationRecord, record_id)
        if record is None:
            return None
        return ConfigurationRecordInfo.from_model(record)

    def get_effective(
        self, subject_id: UUID, as_of: date
    ) -> ConfigurationRecordInfo | None:
        """The record whose interval contains ``as_of``, or None."""
        records = self.session.execute(
            select(ConfigurationRecord)
            .where(ConfigurationRecord.subject_id == subject_id, *_covers(as_of))
            .order_by(
                ConfigurationRecord.effective_date.desc(),
                ConfigurationRecord.created_at.desc(),
            )
        ).scalars().all()

        if not records:
            return None
        if len(records) > 1:
            logger.warning(
                "effective_config_ambiguous",
                extra={
                    "invariant": ConfigurationInvariant.NON_OVERLAP.value,
                    "subject_id": str(subject_id),
                    "as_of": as_of.isoformat(),
                    "candidate_ids": [str(r.id) for r in records],
                    "chosen_id": str(records[0].id),
                },
            )
        return ConfigurationRecordInfo.from_model(records[0])

    def get_open_record(self, subject_id: UUID) -> ConfigurationRecordInfo | None:
        """The record with no end date (pending or current), or None."""
        records = self.session.execute(
            select(ConfigurationRecord)
            .where(
                ConfigurationRecord.subject_id == subject_id,
                ConfigurationRecord.end_date.is_(None),
            )
            .order_by(ConfigurationRecord.effective_date.desc())
        ).scalars().all()

        if not records:
            return None
        if len(records) > 1:
            logger.warning(
                "multiple_open_records",
                extra={
                    "invariant": ConfigurationInvariant.SINGLE_OPEN.value,
                    "subject_id": str(subject_id),
                    "record_ids": [str(r.id) for r in records],
                },
            )
        return ConfigurationRecordInfo.from_model(records[0])

    def get_history(self, subject_id: UUID) -> list[ConfigurationRecordInfo]:
        """All records for the subject, newest effective_date first."""
        records = self.session.execute(
            select(ConfigurationRecord)
            .where(ConfigurationRecord.subject_id == subject_id)
            .order_by(
                ConfigurationRecord.effective_date.desc(),
                ConfigurationRecord.created_at.desc(),
            )
        ).scalars().all()
        return [ConfigurationRecordInfo.from_model(r) for r in records]

    def get_future(
        self, subject_id: UUID, from_date: date
    ) -> list[ConfigurationRecordInfo]:
        """Records starting strictly after ``from_date``, soonest first."""
        records = self.session.execute(
            select(ConfigurationRecord)
            .where(
                ConfigurationRecord.subject_id == subject_id,
                ConfigurationRecord.effective_date > from_date,
            )
            .order_by(ConfigurationRecord.effective_date.asc())
        ).scalars().all()
        return [ConfigurationRecordInfo.from_model(r) for r in records]

    def find_overlapping(
        self,
        subject_id: UUID,
        interval: DateInterval,
        exclude_id: UUID | None = None,
    ) -> list[ConfigurationRecordInfo]:
        """
        Records whose interval intersects ``interval``.

        Two ranges overlap if: start1 <= end2 AND start2 <= end1, with a
        missing end treated as unbounded on either side.
        """
        conditions = [
            ConfigurationRecord.subject_id == subject_id,
            or_(
                ConfigurationRecord.end_date.is_(None),
                ConfigurationRecord.end_date >= interval.start,
            ),
        ]
        if interval.end is not None:
            conditions.append(ConfigurationRecord.effective_date <= interval.end)
        if exclude_id is not None:
            conditions.append(ConfigurationRecord.id != exclude_id)

        records = self.session.execute(
            select(ConfigurationRecord)
            .where(*conditions)
            .order_by(ConfigurationRecord.effective_date.asc())
        ).scalars().all()
        return [ConfigurationRecordInfo.from_model(r) for r in records]

    def has_overlap(
        self,
        subject_id: UUID,
        interval: DateInterval,
        exclude_id: UUID | None = None,
    ) -> bool:
        return bool(self.find_overlapping(subject_id, interval, exclude_id))

    def find_overlaps(
        self, subject_id: UUID
    ) -> list[tuple[ConfigurationRecordInfo, ConfigurationRecordInfo]]:
        """Every pair of the subject's records that overlap.  Empty when healthy."""
        records = sorted(self.get_history(subject_id), key=lambda r: r.effective_date)
        pairs = []
        for i, first in enumerate(records):
            for second in records[i + 1:]:
                if first.interval.overlaps(second.interval):
                    pairs.append((first, second))
        return pairs

    def get_active_on(self, as_of: date) -> list[ConfigurationRecordInfo]:
        """Records in force on ``as_of`` for active employees, by employee name."""
        records = self.session.execute(
            select(ConfigurationRecord)
            .join(Employee, Employee.id == ConfigurationRecord.subject_id)
            .where(Employee.is_active.is_(True), *_covers(as_of))
            .order_by(Employee.name.asc(), ConfigurationRecord.effective_date.desc())
        ).scalars().all()
        return [ConfigurationRecordInfo.from_model(r) for r in records]
