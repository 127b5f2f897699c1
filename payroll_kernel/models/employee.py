"""
Module: payroll_kernel.models.employee
Responsibility: ORM persistence for the employee a configuration applies to.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    CACHE_CONSISTENCY -- payment_kind, flat_rate_amount, per_mile_rate,
        payment_effective_date and payment_notes mirror the latest committed
        configuration record.  Only TransitionCoordinator writes them, in the
        same transaction as the history row.

Audit relevance:
    The base percentages are the fallback configuration for employees
    that were never configured through history.  name is copied onto every
    audit entry so reports stay readable after an employee is renamed.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase
from payroll_kernel.domain.values import KIND_FIELDS, PaymentKind


class Employee(TrackedBase):
    """
    Employee (driver) receiving load-based pay.

    Guarantees:
        - has_base_configuration is True only when payment_kind is set and
          every field that kind needs is present.

    Non-goals:
        - Payroll calculation, contact details, documents.
    """

    __tablename__ = "employees"

    __table_args__ = (
        Index("idx_employee_name", "name"),
        Index("idx_employee_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # Base percentage split
    driver_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    company_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    service_fee_percent: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Current configuration cache
    payment_kind: Mapped[PaymentKind | None] = mapped_column(
        String(20),
        nullable=True,
    )
    flat_rate_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    per_mile_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    payment_effective_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )
    payment_notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Employee {self.name} ({self.payment_kind})>"

    @property
    def has_base_configuration(self) -> bool:
        if self.payment_kind is None:
            return False
        kind = PaymentKind(self.payment_kind)
        return all(
            getattr(self, config_field.attribute) is not None
            for config_field in KIND_FIELDS[kind]
        )
