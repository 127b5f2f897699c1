"""
Module: payroll_kernel.models.configuration_record
Responsibility: ORM persistence for versioned compensation configuration.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    NON_OVERLAP -- for one subject_id, [effective_date, end_date] intervals
        are disjoint (null end_date = open ended).  Checked by
        ConfigurationHistoryStore before insert; not a DB constraint.
    SINGLE_OPEN -- at most one open record per subject.
    RECORD_IMMUTABILITY -- terms never change after insert; end_date may be
        set once (db/immutability.py).

Failure modes:
    - HistoryOverlapError raised by the store on a conflicting insert.
    - ImmutabilityViolationError on any UPDATE other than closing.

Audit relevance:
    This table answers "what applied on date D" for payroll disputes.
    Every insert produces CREATE or FINAL_UPDATE audit entries.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString
from payroll_kernel.domain.values import PaymentKind


class ConfigurationRecord(TrackedBase):
    """
    One version of an employee's compensation configuration.

    Guarantees:
        - Only the fields of ``kind`` are populated.
        - end_date is None while the record is pending or current.

    Non-goals:
        - This model does NOT enforce non-overlap; the store does.
    """

    __tablename__ = "configuration_history"

    __table_args__ = (
        Index(
            "idx_config_history_subject_dates",
            "subject_id",
            "effective_date",
            "end_date",
        ),
    )

    subject_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("employees.id"),
        nullable=False,
    )

    kind: Mapped[PaymentKind] = mapped_column(
        String(20),
        nullable=False,
    )

    # PERCENTAGE terms
    driver_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    company_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    service_fee_percent: Mapped[Decimal | None] = mapped_column(nullable=True)

    # FLAT_RATE terms (per load)
    flat_rate_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    # PER_MILE terms
    per_mile_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Inclusive boundaries
    effective_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    end_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    created_by: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        end = self.end_date.isoformat() if self.end_date else "open"
        return (
            f"<ConfigurationRecord {self.kind} for {self.subject_id} "
            f"{self.effective_date.isoformat()}..{end}>"
        )

    @property
    def is_open(self) -> bool:
        return self.end_date is None
