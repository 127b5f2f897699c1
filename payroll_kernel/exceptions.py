"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Configuration history errors must be handled precisely. A payroll clerk who
backdates a change needs to hear "this overlaps the record that started on
2024-03-01", not "ValueError". Every exception here therefore:
  1. Has its own class (catch by type, not by message)
  2. Carries a CODE class attribute (machine-readable, API-safe)
  3. Stores its context as attributes (not just a message string)

Example - RIGHT way:
    try:
        coordinator.apply(candidate, performed_by="jdoe")
    except HistoryOverlapError as e:
        show_conflict(e.existing_record_id, e.overlap_start, e.overlap_end)
    except ConfigurationValidationError as e:
        show_errors([err.message for err in e.errors])

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PayrollKernelError:

    PayrollKernelError (base)
    |
    +-- ConfigurationValidationError
    |
    +-- HistoryError
    |   +-- HistoryOverlapError
    |
    +-- NotFoundError
    |   +-- SubjectNotFoundError
    |   +-- ConfigurationNotFoundError
    |   +-- RecordNotFoundError
    |
    +-- TransitionError
    |   +-- TransitionFailedError
    |
    +-- AuditError
    |   +-- AuditStorageUnavailableError
    |   +-- AuditWriteError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | CONFIGURATION_INVALID       | Candidate fails per-kind validation
----------------|-----------------------------|-----------------------------------------
History         | HISTORY_OVERLAP             | Interval collides with an existing record
----------------|-----------------------------|-----------------------------------------
Not found       | SUBJECT_NOT_FOUND           | Employee id doesn't exist
                | CONFIGURATION_NOT_FOUND     | No history and no base configuration
                | RECORD_NOT_FOUND            | Configuration record id doesn't exist
----------------|-----------------------------|-----------------------------------------
Transition      | TRANSITION_FAILED           | Storage failure, transaction rolled back
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_STORAGE_UNAVAILABLE   | Audit table could not be initialized
                | AUDIT_WRITE_FAILED          | Batch insert failed, nothing persisted
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an audit entry or record terms

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation errors are raised before any write. Nothing to undo.

2. TransitionFailedError means the close/insert/cache update was rolled
   back as a unit. Retrying is safe.

3. AuditError is swallowed (and logged) by TransitionCoordinator once the
   configuration change has committed. Direct callers of
   AuditLogger.log_changes() see it.

4. NotFoundError is the common base for "nothing to return" so that a
   read-only caller can treat unknown employees and unconfigured
   employees the same way.
"""

from datetime import date


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_KERNEL_ERROR"


# Validation


class ConfigurationValidationError(PayrollKernelError):
    """
    Candidate configuration failed validation.

    ``errors`` is a tuple of domain ValidationError DTOs. The message joins
    their texts so the exception is readable in a log line.
    """

    code: str = "CONFIGURATION_INVALID"

    def __init__(self, errors, subject_id=None):
        self.errors = tuple(errors)
        self.subject_id = subject_id
        detail = "; ".join(err.message for err in self.errors) or "invalid"
        super().__init__(f"Invalid configuration: {detail}")


# History


class HistoryError(PayrollKernelError):
    """Base exception for configuration history errors."""

    code: str = "HISTORY_ERROR"


class HistoryOverlapError(HistoryError):
    """New interval overlaps an existing configuration record."""

    code: str = "HISTORY_OVERLAP"

    def __init__(
        self,
        subject_id: str,
        existing_record_id: str,
        overlap_start: date,
        overlap_end: date | None,
    ):
        self.subject_id = subject_id
        self.existing_record_id = existing_record_id
        self.overlap_start = overlap_start
        self.overlap_end = overlap_end
        end = overlap_end.isoformat() if overlap_end else "open"
        super().__init__(
            f"Configuration for {subject_id} overlaps record "
            f"{existing_record_id} ({overlap_start.isoformat()} to {end})"
        )


# Lookups


class NotFoundError(PayrollKernelError):
    """Base exception for lookups that found nothing."""

    code: str = "NOT_FOUND"


class SubjectNotFoundError(NotFoundError):
    """Employee with given ID was not found."""

    code: str = "SUBJECT_NOT_FOUND"

    def __init__(self, subject_id: str):
        self.subject_id = subject_id
        super().__init__(f"Employee not found: {subject_id}")


class ConfigurationNotFoundError(NotFoundError):
    """Neither history nor a base configuration covers the date."""

    code: str = "CONFIGURATION_NOT_FOUND"

    def __init__(self, subject_id: str, as_of: date):
        self.subject_id = subject_id
        self.as_of = as_of
        super().__init__(
            f"No configuration for {subject_id} on {as_of.isoformat()}"
        )


class RecordNotFoundError(NotFoundError):
    """Configuration record with given ID was not found."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Configuration record not found: {record_id}")


# Transitions


class TransitionError(PayrollKernelError):
    """Base exception for configuration transition errors."""

    code: str = "TRANSITION_ERROR"


class TransitionFailedError(TransitionError):
    """Storage failed mid-transition. All of its writes were rolled back."""

    code: str = "TRANSITION_FAILED"

    def __init__(self, subject_id: str, reason: str):
        self.subject_id = subject_id
        self.reason = reason
        super().__init__(
            f"Configuration transition for {subject_id} rolled back: {reason}"
        )


# Audit


class AuditError(PayrollKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditStorageUnavailableError(AuditError):
    """Audit storage could not be initialized."""

    code: str = "AUDIT_STORAGE_UNAVAILABLE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Audit storage unavailable: {reason}")


class AuditWriteError(AuditError):
    """A batch of audit entries could not be written. None were persisted."""

    code: str = "AUDIT_WRITE_FAILED"

    def __init__(self, entry_count: int, reason: str):
        self.entry_count = entry_count
        self.reason = reason
        super().__init__(
            f"Failed to write {entry_count} audit entries: {reason}"
        )


# Immutability


class ImmutabilityError(PayrollKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Audit entries are immutable from creation. Configuration records are
    immutable apart from closing their end_date once.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
