"""
Configuration History Invariants Contract.

These invariants are structural law for configuration history. No setting
in payroll_config may switch them off. This module only declares them;
enforcement lives in ConfigurationHistoryStore, TransitionCoordinator,
AuditLogger and the ORM listeners in payroll_kernel.db.immutability.

Invariant values are attached to structured log records (``invariant``
field) whenever a check rejects an operation.
"""

from enum import Enum, unique


@unique
class ConfigurationInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    NON_OVERLAP = "non_overlap"
    """For one employee, the inclusive intervals [effective_date, end_date]
    of configuration records are pairwise disjoint (null end = open)."""

    SINGLE_OPEN = "single_open"
    """At most one configuration record per employee has no end_date.
    Enforced by TransitionCoordinator closing before it inserts."""

    CACHE_CONSISTENCY = "cache_consistency"
    """The employee's current-configuration cache is written only in the
    same transaction that writes the history record it mirrors."""

    AUDIT_APPEND_ONLY = "audit_append_only"
    """Audit entries are never updated and never deleted one at a time.
    Only the age-based retention purge removes them."""

    BATCH_ATOMICITY = "batch_atomicity"
    """A batch of audit entries is persisted entirely or not at all."""

    RECORD_IMMUTABILITY = "record_immutability"
    """A configuration record's terms never change after insert. Only its
    end_date may be set, once, when it is superseded."""


# All invariants as a frozenset for programmatic checks.
ALL_CONFIGURATION_INVARIANTS: frozenset[ConfigurationInvariant] = frozenset(
    ConfigurationInvariant
)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "payroll_config",
    "scripts",
)
