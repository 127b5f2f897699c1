"""
AuditLogger -- append-only, field-level configuration audit trail.

Responsibility:
    Writes AuditEntry rows (one per changed field), answers the audit
    queries used by reports and review screens, and purges entries past
    their retention period.

Architecture position:
    Kernel > Services -- imperative shell.  Unlike the flush-only services
    it owns its transaction boundary when ``auto_commit=True``: a batch is
    committed or rolled back as a unit.  With ``auto_commit=False`` a batch
    runs in a savepoint of the caller's transaction.  TransitionCoordinator
    calls it after the configuration change has been written.

Invariants enforced:
    BATCH_ATOMICITY -- log_changes() persists every entry of a batch or none.
        A failed batch never leaves the caller's transaction unusable.
    AUDIT_APPEND_ONLY -- entries are never updated; rows leave the table
        only through purge_older_than(), a bulk DELETE that bypasses the
        ORM immutability listeners.

Storage initialization:
    initialize_audit_storage(engine) creates the audit_log table if it is
    missing, on a connection of its own, and remembers the outcome per
    engine.  payroll_config.bridges.init_kernel() calls it at startup; an
    AuditLogger on an engine nobody initialized runs it once itself.
    Constructing an AuditLogger never touches the caller's transaction.

Failure modes:
    - AuditWriteError: a batch failed; nothing from it was persisted.
    - Storage initialization failure is NOT raised.  It is logged as
      ``audit_storage_unavailable`` and every logger on that engine
      degrades: writes are skipped, queries return [] and purges return 0.
      ``is_available`` reports it; ``ensure_available()`` raises
      AuditStorageUnavailableError instead.

Audit relevance:
    This IS the audit trail.  session_id groups every entry of one user
    operation; performed_by names the actor; timestamps come from the
    injected clock.
"""

from datetime import datetime, timedelta
from typing import Iterable
from uuid import UUID, uuid4
from weakref import WeakKeyDictionary

from sqlalchemy import delete, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.dtos import AuditEntryDraft, AuditEntryInfo, as_utc
from payroll_kernel.exceptions import AuditStorageUnavailableError, AuditWriteError
from payroll_kernel.invariants import ConfigurationInvariant
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_entry import AuditEntry

logger = get_logger("services.audit_logger")

# Engine -> reason storage is unusable, or None once the table is in place
_storage_status: "WeakKeyDictionary[Engine, str | None]" = WeakKeyDictionary()


def new_session_id() -> str:
    """Identifier grouping the audit entries of one user operation."""
    return str(uuid4())


def _create_audit_table(connection: Connection) -> None:
    AuditEntry.__table__.create(bind=connection, checkfirst=True)


def initialize_audit_storage(engine: Engine) -> bool:
    """
    Make sure the audit_log table exists on ``engine``.

    Runs in its own transaction on a fresh connection and records the
    outcome for every AuditLogger later built on the same engine.  Never
    raises.

    Returns:
        True when audit storage is usable.
    """
    try:
        with engine.begin() as connection:
            _create_audit_table(connection)
    except SQLAlchemyError as exc:
        _storage_status[engine] = str(exc)
        logger.warning(
            "audit_storage_unavailable",
            extra={"reason": str(exc), "dialect": engine.dialect.name},
        )
        return False

    _storage_status[engine] = None
    logger.debug("audit_storage_ready", extra={"dialect": engine.dialect.name})
    return True


class AuditLogger:
    """
    Field-level audit trail over the audit_log table.

    Contract:
        With ``auto_commit=True`` (the default) every write method commits
        on success and rolls back on failure.  With ``auto_commit=False``
        the caller owns the transaction and each batch is a savepoint
        within it.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

        engine = session.get_bind().engine
        if engine not in _storage_status:
            initialize_audit_storage(engine)
        self._unavailable_reason = _storage_status[engine]
        self._available = self._unavailable_reason is None

    @property
    def is_available(self) -> bool:
        return self._available

    def ensure_available(self) -> None:
        """
        For callers that must not silently degrade (operator scripts).

        Raises:
            AuditStorageUnavailableError: storage failed to initialize.
        """
        if not self._available:
            raise AuditStorageUnavailableError(self._unavailable_reason or "unknown")

    # =========================================================================
    # Writes
    # =========================================================================

    def log_change(self, entry: AuditEntryDraft) -> AuditEntryInfo | None:
        """Append a single entry.  Returns None when storage is unavailable."""
        written = self.log_changes([entry])
        return written[0] if written else None

    def log_changes(self, entries: Iterable[AuditEntryDraft]) -> list[AuditEntryInfo]:
        """
        Append a batch of entries atomically.

        Raises:
            AuditWriteError: the batch failed and nothing was persisted.
        """
        entries = list(entries)
        if not entries:
            return []
        if not self._available:
            logger.debug("audit_write_skipped", extra={"entry_count": len(entries)})
            return []

        timestamp = as_utc(self._clock.now())
        try:
            if self._auto_commit:
                written = self._insert(entries, timestamp)
                self._session.commit()
            else:
                # Only the savepoint is rolled back if the batch fails
                with self._session.begin_nested():
                    written = self._insert(entries, timestamp)
        except Exception as exc:
            if self._auto_commit:
                self._session.rollback()
            logger.error(
                "audit_write_failed",
                extra={
                    "invariant": ConfigurationInvariant.BATCH_ATOMICITY.value,
                    "entry_count": len(entries),
                },
                exc_info=True,
            )
            raise AuditWriteError(len(entries), str(exc)) from exc

        logger.info(
            "audit_batch_written",
            extra={
                "entry_count": len(written),
                "session_ids": sorted({e.session_id for e in entries}),
            },
        )
        return written

    def _insert(
        self, entries: list[AuditEntryDraft], timestamp: datetime
    ) -> list[AuditEntryInfo]:
        models = [
            AuditEntry(
                subject_id=entry.subject_id,
                subject_name=entry.subject_name,
                action=entry.action.value,
                field=entry.field.value,
                old_value=entry.old_value,
                new_value=entry.new_value,
                timestamp=timestamp,
                performed_by=entry.performed_by,
                session_id=entry.session_id,
                notes=entry.notes,
            )
            for entry in entries
        ]
        self._session.add_all(models)
        self._session.flush()
        return [AuditEntryInfo.from_model(m) for m in models]

    # =========================================================================
    # Queries (timestamp descending)
    # =========================================================================

    def _query(self, *conditions, limit: int | None = None) -> list[AuditEntryInfo]:
        if not self._available:
            return []
        stmt = (
            select(AuditEntry)
            .where(*conditions)
            .order_by(AuditEntry.timestamp.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        models = self._session.execute(stmt).scalars().all()
        return [AuditEntryInfo.from_model(m) for m in models]

    def get_logs_for_subject(self, subject_id: UUID) -> list[AuditEntryInfo]:
        return self._query(AuditEntry.subject_id == subject_id)

    def get_logs_for_session(self, session_id: str) -> list[AuditEntryInfo]:
        return self._query(AuditEntry.session_id == session_id)

    def get_logs_by_date_range(
        self, start: datetime, end: datetime
    ) -> list[AuditEntryInfo]:
        """Entries with start <= timestamp <= end (both inclusive)."""
        return self._query(
            AuditEntry.timestamp >= as_utc(start),
            AuditEntry.timestamp <= as_utc(end),
        )

    def get_recent_logs(self, limit: int = 100) -> list[AuditEntryInfo]:
        return self._query(limit=limit)

    # =========================================================================
    # Retention
    # =========================================================================

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete entries with timestamp strictly before ``cutoff``.  Returns the count."""
        if not self._available:
            return 0

        cutoff = as_utc(cutoff)
        try:
            result = self._session.execute(
                delete(AuditEntry)
                .where(AuditEntry.timestamp < cutoff)
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount
            if self._auto_commit:
                self._session.commit()
        except SQLAlchemyError:
            if self._auto_commit:
                self._session.rollback()
            logger.error(
                "audit_purge_failed",
                extra={"cutoff": cutoff.isoformat()},
                exc_info=True,
            )
            raise

        logger.info(
            "audit_purged",
            extra={"cutoff": cutoff.isoformat(), "deleted": deleted},
        )
        return deleted

    def purge_expired(self, retention_days: int) -> int:
        """Purge entries older than ``retention_days`` before the clock's now."""
        if retention_days < 0:
            raise ValueError("retention_days cannot be negative")
        return self.purge_older_than(self._clock.now() - timedelta(days=retention_days))
