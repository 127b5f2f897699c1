"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A payroll dispute is settled by asking "what split was this driver on when
that load was settled, and who set it?".  The answer is only trustworthy if
neither the history nor the audit trail can be rewritten after the fact.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

Bulk statements (``session.execute(delete(...))``) do not fire mapper
events.  AuditLogger.purge_older_than() relies on that: age-based purge is
the one sanctioned way audit rows disappear.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | When Immutable          | Allowed change
---------------------|-------------------------|-------------------------------
AuditEntry           | ALWAYS (from creation)  | none
ConfigurationRecord  | ALWAYS (from creation)  | end_date None -> date, once;
                     |                         | modified_at (audit metadata)

===============================================================================
USAGE
===============================================================================

Called once at startup, after models are imported:

    from payroll_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.invariants import ConfigurationInvariant
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Columns a superseding transition may touch on an existing record
_RECORD_MUTABLE_FIELDS = frozenset({"end_date", "modified_at"})


def _block(entity_type, entity_id, operation, invariant, reason):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": invariant.value,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_audit_entry_immutability(mapper, connection, target):
    """Prevent any updates to AuditEntry records."""
    _block(
        "AuditEntry",
        str(target.id),
        "UPDATE",
        ConfigurationInvariant.AUDIT_APPEND_ONLY,
        "Audit entries are immutable and cannot be modified",
    )


def _check_audit_entry_delete(mapper, connection, target):
    """Prevent ORM deletion of AuditEntry records."""
    _block(
        "AuditEntry",
        str(target.id),
        "DELETE",
        ConfigurationInvariant.AUDIT_APPEND_ONLY,
        "Audit entries can only be removed by the retention purge",
    )


def _check_configuration_record_immutability(mapper, connection, target):
    """
    Allow a configuration record to be closed once; block everything else.

    Closing means end_date goes from None to a date.  Re-closing a closed
    record, reopening it, or editing its terms is rejected.
    """
    state = inspect(target)
    changed = {
        attr.key for attr in state.attrs if attr.history.has_changes()
    }

    illegal = changed - _RECORD_MUTABLE_FIELDS
    if illegal:
        _block(
            "ConfigurationRecord",
            str(target.id),
            "UPDATE",
            ConfigurationInvariant.RECORD_IMMUTABILITY,
            f"Configuration terms are immutable (attempted: {sorted(illegal)})",
        )

    if "end_date" in changed:
        history = state.attrs.end_date.history
        was_closed = bool(history.deleted) and history.deleted[0] is not None
        if was_closed or target.end_date is None:
            _block(
                "ConfigurationRecord",
                str(target.id),
                "UPDATE",
                ConfigurationInvariant.RECORD_IMMUTABILITY,
                "A configuration record can only be closed once",
            )


def _check_configuration_record_delete(mapper, connection, target):
    """Prevent deletion of configuration history."""
    _block(
        "ConfigurationRecord",
        str(target.id),
        "DELETE",
        ConfigurationInvariant.RECORD_IMMUTABILITY,
        "Configuration history cannot be deleted",
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Registering twice is harmless.
    """
    from payroll_kernel.models.audit_entry import AuditEntry
    from payroll_kernel.models.configuration_record import ConfigurationRecord

    listeners = (
        (AuditEntry, "before_update", _check_audit_entry_immutability),
        (AuditEntry, "before_delete", _check_audit_entry_delete),
        (ConfigurationRecord, "before_update", _check_configuration_record_immutability),
        (ConfigurationRecord, "before_delete", _check_configuration_record_delete),
    )
    for target, event_name, listener_fn in listeners:
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from payroll_kernel.models.audit_entry import AuditEntry
    from payroll_kernel.models.configuration_record import ConfigurationRecord

    _safe_remove_listener(AuditEntry, "before_update", _check_audit_entry_immutability)
    _safe_remove_listener(AuditEntry, "before_delete", _check_audit_entry_delete)
    _safe_remove_listener(
        ConfigurationRecord, "before_update", _check_configuration_record_immutability
    )
    _safe_remove_listener(
        ConfigurationRecord, "before_delete", _check_configuration_record_delete
    )
