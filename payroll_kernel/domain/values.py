"""
Values -- Closed vocabularies for configuration history.

Responsibility:
    Declares the enums shared by models, domain logic and services:
    payment kinds, audited fields, audit actions, record states and the
    source of a resolved configuration.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The only domain module that
    models/ may import (so column values and domain logic share one
    vocabulary).

Invariants enforced:
    - Audit action and audited field are closed sets.  Free-text values
      are rejected at construction time (``AuditAction("foo")`` raises
      ValueError).
"""

from enum import Enum


class PaymentKind(str, Enum):
    """How an employee is paid for a load."""

    PERCENTAGE = "PERCENTAGE"
    FLAT_RATE = "FLAT_RATE"
    PER_MILE = "PER_MILE"

    @property
    def display_name(self) -> str:
        return _KIND_DISPLAY[self]


_KIND_DISPLAY = {
    PaymentKind.PERCENTAGE: "Percentage",
    PaymentKind.FLAT_RATE: "Flat Rate",
    PaymentKind.PER_MILE: "Per Mile",
}


class ConfigField(str, Enum):
    """Configuration fields tracked by the audit trail.

    ``attribute`` is the attribute name shared by ConfigurationRecord,
    Employee and the domain DTOs.
    """

    DRIVER_PERCENT = "DRIVER_PERCENT"
    COMPANY_PERCENT = "COMPANY_PERCENT"
    SERVICE_FEE_PERCENT = "SERVICE_FEE_PERCENT"
    FLAT_RATE_AMOUNT = "FLAT_RATE_AMOUNT"
    PER_MILE_RATE = "PER_MILE_RATE"

    @property
    def attribute(self) -> str:
        return self.value.lower()


# Fields that carry the terms of each payment kind
KIND_FIELDS: dict[PaymentKind, tuple[ConfigField, ...]] = {
    PaymentKind.PERCENTAGE: (
        ConfigField.DRIVER_PERCENT,
        ConfigField.COMPANY_PERCENT,
        ConfigField.SERVICE_FEE_PERCENT,
    ),
    PaymentKind.FLAT_RATE: (ConfigField.FLAT_RATE_AMOUNT,),
    PaymentKind.PER_MILE: (ConfigField.PER_MILE_RATE,),
}


class AuditAction(str, Enum):
    """What produced an audit entry.

    CREATE       -- first configuration for an employee (old value absent)
    UPDATE       -- single field edit recorded by a caller
    DELETE       -- field cleared by a caller
    BULK_UPDATE  -- edit made as part of a multi-employee change dialog
    FINAL_UPDATE -- committed configuration change; the authoritative entry
    """

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BULK_UPDATE = "BULK_UPDATE"
    FINAL_UPDATE = "FINAL_UPDATE"


class RecordState(str, Enum):
    """Lifecycle state of a configuration record relative to a date.

    PENDING -> CURRENT -> CLOSED.  CLOSED is terminal.
    """

    PENDING = "PENDING"
    CURRENT = "CURRENT"
    CLOSED = "CLOSED"


class ConfigSource(str, Enum):
    """Where a resolved configuration came from."""

    HISTORY = "HISTORY"
    BASE = "BASE"
