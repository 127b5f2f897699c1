"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow through configuration
    transitions: ConfigurationCandidate (input), ConfigurationRecordInfo
    (persisted history), EffectiveConfig (resolver output), AuditEntryDraft /
    AuditEntryInfo (audit trail) and the result types returned by
    TransitionCoordinator.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Invariants enforced:
    - Services return DTOs, never ORM entities, so callers cannot mutate
      history through a returned object.
    - Numeric terms are Decimal (strings and ints are converted, floats go
      through str() so 0.55 stays 0.55).
    - AuditEntryDraft only accepts AuditAction / ConfigField members.

Data flow:
    ConfigurationCandidate -> ConfigurationRecord (ORM) -> ConfigurationRecordInfo
                                                       -> EffectiveConfig
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from payroll_kernel.domain.intervals import DateInterval
from payroll_kernel.domain.values import (
    KIND_FIELDS,
    AuditAction,
    ConfigField,
    ConfigSource,
    PaymentKind,
    RecordState,
)

if TYPE_CHECKING:
    from payroll_kernel.models.audit_entry import AuditEntry
    from payroll_kernel.models.configuration_record import ConfigurationRecord
    from payroll_kernel.models.employee import Employee

_TERM_ATTRIBUTES = tuple(f.attribute for f in ConfigField)


def to_decimal(value: Any) -> Decimal | None:
    """Convert a numeric input to Decimal, leaving None alone."""
    if value is None or isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def describe_terms(kind: PaymentKind | None, terms: Any) -> str:
    """Human-readable summary of a configuration's terms."""
    if kind == PaymentKind.PERCENTAGE:
        return (
            f"Percentage: Driver {terms.driver_percent:.2f}%, "
            f"Company {terms.company_percent:.2f}%, "
            f"Service Fee {terms.service_fee_percent:.2f}%"
        )
    if kind == PaymentKind.FLAT_RATE:
        return f"Flat Rate: ${terms.flat_rate_amount:.2f} per load"
    if kind == PaymentKind.PER_MILE:
        return f"Per Mile: ${terms.per_mile_rate:.2f} per mile"
    return "Not configured"


class _Terms:
    """Mixin for DTOs carrying a kind plus the five term attributes."""

    def field_values(self) -> dict[ConfigField, Decimal | None]:
        """The kind-appropriate fields and their values, in ConfigField order."""
        return {f: getattr(self, f.attribute) for f in KIND_FIELDS[self.kind]}

    @property
    def description(self) -> str:
        return describe_terms(self.kind, self)


@dataclass(frozen=True)
class ConfigurationCandidate(_Terms):
    """
    A proposed configuration for one employee.

    Contract:
        Carries exactly the fields a caller wants to commit.  Validation
        (payroll_kernel.domain.validation) decides whether it is acceptable;
        construction only normalizes numeric types.

    Use the kind-specific constructors (``percentage``, ``flat_rate``,
    ``per_mile``) rather than filling fields by hand.
    """

    subject_id: UUID | None
    kind: PaymentKind | None
    effective_date: date | None
    end_date: date | None = None
    driver_percent: Decimal | None = None
    company_percent: Decimal | None = None
    service_fee_percent: Decimal | None = None
    flat_rate_amount: Decimal | None = None
    per_mile_rate: Decimal | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if self.kind is not None:
            object.__setattr__(self, "kind", PaymentKind(self.kind))
        for name in _TERM_ATTRIBUTES:
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    @classmethod
    def percentage(
        cls,
        subject_id: UUID,
        driver: Any,
        company: Any,
        service_fee: Any,
        effective_date: date,
        end_date: date | None = None,
        notes: str | None = None,
    ) -> ConfigurationCandidate:
        return cls(
            subject_id=subject_id,
            kind=PaymentKind.PERCENTAGE,
            effective_date=effective_date,
            end_date=end_date,
            driver_percent=driver,
            company_percent=company,
            service_fee_percent=service_fee,
            notes=notes,
        )

    @classmethod
    def flat_rate(
        cls,
        subject_id: UUID,
        amount: Any,
        effective_date: date,
        end_date: date | None = None,
        notes: str | None = None,
    ) -> ConfigurationCandidate:
        return cls(
            subject_id=subject_id,
            kind=PaymentKind.FLAT_RATE,
            effective_date=effective_date,
            end_date=end_date,
            flat_rate_amount=amount,
            notes=notes,
        )

    @classmethod
    def per_mile(
        cls,
        subject_id: UUID,
        rate: Any,
        effective_date: date,
        end_date: date | None = None,
        notes: str | None = None,
    ) -> ConfigurationCandidate:
        return cls(
            subject_id=subject_id,
            kind=PaymentKind.PER_MILE,
            effective_date=effective_date,
            end_date=end_date,
            per_mile_rate=rate,
            notes=notes,
        )

    def for_subject(self, subject_id: UUID) -> ConfigurationCandidate:
        """Same terms, different employee (multi-employee changes)."""
        return replace(self, subject_id=subject_id)

    @property
    def interval(self) -> DateInterval:
        return DateInterval(self.effective_date, self.end_date)


@dataclass(frozen=True)
class ConfigurationRecordInfo(_Terms):
    """
    Immutable snapshot of one persisted configuration record.

    Guarantees:
        - Returned by every history query; never an ORM object.
        - ``state_on(today)`` derives PENDING / CURRENT / CLOSED.
    """

    id: UUID
    subject_id: UUID
    kind: PaymentKind
    effective_date: date
    end_date: date | None
    driver_percent: Decimal | None
    company_percent: Decimal | None
    service_fee_percent: Decimal | None
    flat_rate_amount: Decimal | None
    per_mile_rate: Decimal | None
    created_by: str
    notes: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None

    @property
    def interval(self) -> DateInterval:
        return DateInterval(self.effective_date, self.end_date)

    @property
    def is_open(self) -> bool:
        return self.end_date is None

    def is_active_on(self, day: date) -> bool:
        return self.interval.contains(day)

    def state_on(self, today: date) -> RecordState:
        if self.end_date is not None:
            return RecordState.CLOSED
        if self.effective_date > today:
            return RecordState.PENDING
        return RecordState.CURRENT

    @classmethod
    def from_model(cls, model: ConfigurationRecord) -> ConfigurationRecordInfo:
        return cls(
            id=model.id,
            subject_id=model.subject_id,
            kind=PaymentKind(model.kind),
            effective_date=model.effective_date,
            end_date=model.end_date,
            driver_percent=model.driver_percent,
            company_percent=model.company_percent,
            service_fee_percent=model.service_fee_percent,
            flat_rate_amount=model.flat_rate_amount,
            per_mile_rate=model.per_mile_rate,
            created_by=model.created_by,
            notes=model.notes,
            created_at=as_utc(model.created_at) if model.created_at else None,
            modified_at=as_utc(model.modified_at) if model.modified_at else None,
        )


@dataclass(frozen=True)
class EffectiveConfig(_Terms):
    """
    The configuration that applies to an employee on a given date.

    ``source`` is HISTORY when a configuration record covers ``as_of`` and
    BASE when the employee's own fields were used.  ``record_id``,
    ``effective_date`` and ``end_date`` are only set for HISTORY.
    """

    subject_id: UUID
    as_of: date
    source: ConfigSource
    kind: PaymentKind
    driver_percent: Decimal | None = None
    company_percent: Decimal | None = None
    service_fee_percent: Decimal | None = None
    flat_rate_amount: Decimal | None = None
    per_mile_rate: Decimal | None = None
    record_id: UUID | None = None
    effective_date: date | None = None
    end_date: date | None = None
    notes: str | None = None

    @property
    def is_from_history(self) -> bool:
        return self.source == ConfigSource.HISTORY

    @classmethod
    def from_record(
        cls, record: ConfigurationRecordInfo, as_of: date
    ) -> EffectiveConfig:
        return cls(
            subject_id=record.subject_id,
            as_of=as_of,
            source=ConfigSource.HISTORY,
            kind=record.kind,
            driver_percent=record.driver_percent,
            company_percent=record.company_percent,
            service_fee_percent=record.service_fee_percent,
            flat_rate_amount=record.flat_rate_amount,
            per_mile_rate=record.per_mile_rate,
            record_id=record.id,
            effective_date=record.effective_date,
            end_date=record.end_date,
            notes=record.notes,
        )


@dataclass(frozen=True)
class AuditEntryDraft:
    """
    An audit entry before it is written.

    Contract:
        ``action`` and ``field`` are coerced to their enums, so a string that
        is not a member raises ValueError here, before anything is stored.
    """

    subject_id: UUID
    subject_name: str
    action: AuditAction
    field: ConfigField
    old_value: Decimal | None
    new_value: Decimal | None
    performed_by: str
    session_id: str
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", AuditAction(self.action))
        object.__setattr__(self, "field", ConfigField(self.field))
        object.__setattr__(self, "old_value", to_decimal(self.old_value))
        object.__setattr__(self, "new_value", to_decimal(self.new_value))


@dataclass(frozen=True)
class AuditEntryInfo:
    """Immutable snapshot of a persisted audit entry."""

    id: UUID
    subject_id: UUID
    subject_name: str
    action: AuditAction
    field: ConfigField
    old_value: Decimal | None
    new_value: Decimal | None
    timestamp: datetime
    performed_by: str
    session_id: str
    notes: str | None = None

    @classmethod
    def from_model(cls, model: AuditEntry) -> AuditEntryInfo:
        return cls(
            id=model.id,
            subject_id=model.subject_id,
            subject_name=model.subject_name,
            action=AuditAction(model.action),
            field=ConfigField(model.field),
            old_value=model.old_value,
            new_value=model.new_value,
            timestamp=as_utc(model.timestamp),
            performed_by=model.performed_by,
            session_id=model.session_id,
            notes=model.notes,
        )


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of a committed configuration transition.

    ``warnings`` are advisory (percent split not summing to 100, unusual
    effective dates); the transition committed regardless.
    ``audit_entries_written`` is 0 when the audit trail could not be
    written; the configuration change itself still stands.
    """

    record: ConfigurationRecordInfo
    session_id: str
    closed_record_ids: tuple[UUID, ...] = ()
    warnings: tuple[str, ...] = ()
    audit_entries_written: int = 0

    @property
    def is_audited(self) -> bool:
        return self.audit_entries_written > 0


@dataclass(frozen=True)
class SubjectFailure:
    """One employee a multi-employee change could not be applied to."""

    subject_id: UUID
    error_code: str
    message: str


@dataclass(frozen=True)
class BulkTransitionReport:
    """Outcome of applying one change to many employees."""

    session_id: str
    results: tuple[TransitionResult, ...] = ()
    failures: tuple[SubjectFailure, ...] = ()

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def all_succeeded(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class EmployeeInfo:
    """Snapshot of an employee, including the current-configuration cache."""

    id: UUID
    name: str
    is_active: bool
    driver_percent: Decimal | None = None
    company_percent: Decimal | None = None
    service_fee_percent: Decimal | None = None
    payment_kind: PaymentKind | None = None
    flat_rate_amount: Decimal | None = None
    per_mile_rate: Decimal | None = None
    payment_effective_date: date | None = None
    payment_notes: str | None = None

    @property
    def payment_description(self) -> str:
        return describe_terms(self.payment_kind, self)

    @classmethod
    def from_model(cls, model: Employee) -> EmployeeInfo:
        return cls(
            id=model.id,
            name=model.name,
            is_active=model.is_active,
            driver_percent=model.driver_percent,
            company_percent=model.company_percent,
            service_fee_percent=model.service_fee_percent,
            payment_kind=PaymentKind(model.payment_kind) if model.payment_kind else None,
            flat_rate_amount=model.flat_rate_amount,
            per_mile_rate=model.per_mile_rate,
            payment_effective_date=model.payment_effective_date,
            payment_notes=model.payment_notes,
        )
