"""
Module: payroll_kernel.models.audit_entry
Responsibility: ORM persistence for the field-level configuration audit log.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    AUDIT_APPEND_ONLY -- no ORM UPDATE or DELETE (db/immutability.py).  Rows
        leave the table only through AuditLogger's bulk retention purge.

Audit relevance:
    One row per changed field.  session_id ties together every row written
    by one user operation, across employees.  subject_name is denormalized
    on purpose: the log must stay readable after renames.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base, UUIDString
from payroll_kernel.domain.values import AuditAction, ConfigField


class AuditEntry(Base):
    """
    A single audited change to one configuration field.

    Guarantees:
        - action and field hold AuditAction / ConfigField values.
        - old_value is None for CREATE; new_value is None when a kind switch
          drops the field.
    """

    __tablename__ = "audit_log"

    __table_args__ = (
        Index("idx_audit_log_subject", "subject_id"),
        Index("idx_audit_log_session", "session_id"),
        Index("idx_audit_log_timestamp", "timestamp"),
    )

    # No FK: the trail must outlive the employee row
    subject_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    subject_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    action: Mapped[AuditAction] = mapped_column(
        String(20),
        nullable=False,
    )

    field: Mapped[ConfigField] = mapped_column(
        String(30),
        nullable=False,
    )

    old_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    new_value: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Injected clock time, UTC
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    performed_by: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    session_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<AuditEntry {self.action} {self.field} on {self.subject_id}>"
