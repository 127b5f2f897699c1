"""
Module: payroll_kernel.selectors.effective_config_resolver
Responsibility: Answer "what configuration applies to this employee on this
    date", falling back to the employee's base configuration when history
    has nothing for the date.
Architecture position: Kernel > Selectors.  The read-side facade used by
    payroll calculation, reports and table redraws.  Never goes through
    TransitionCoordinator and never writes.

Invariants enforced:
    - Pure read: safe to call concurrently and repeatedly.
    - At most one configuration per (employee, date); ambiguity in history
      is resolved by HistorySelector (latest effective_date wins, logged).

Failure modes:
    - SubjectNotFoundError: no history covers the date and the employee
      does not exist.
    - ConfigurationNotFoundError: the employee exists but has neither a
      covering record nor a complete base configuration.
    Both are NotFoundError, so callers that only care about "nothing to
    show" can catch the base class.
"""

from datetime import date
from uuid import UUID

from payroll_kernel.domain.dtos import EffectiveConfig
from payroll_kernel.domain.values import KIND_FIELDS, ConfigSource, PaymentKind
from payroll_kernel.exceptions import (
    ConfigurationNotFoundError,
    NotFoundError,
    SubjectNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.configuration_record import ConfigurationRecord
from payroll_kernel.models.employee import Employee
from payroll_kernel.selectors.base import BaseSelector
from payroll_kernel.selectors.history_selector import HistorySelector

logger = get_logger("selectors.effective_config")


class EffectiveConfigResolver(BaseSelector[ConfigurationRecord]):
    """Point-in-time configuration lookup with base fallback."""

    def __init__(self, session):
        super().__init__(session)
        self._history = HistorySelector(session)

    def resolve(self, subject_id: UUID, as_of: date) -> EffectiveConfig:
        record = self._history.get_effective(subject_id, as_of)
        if record is not None:
            return EffectiveConfig.from_record(record, as_of)

        employee = self.session.get(Employee, subject_id)
        if employee is None:
            raise SubjectNotFoundError(str(subject_id))
        if not employee.has_base_configuration:
            raise ConfigurationNotFoundError(str(subject_id), as_of)

        logger.debug(
            "base_configuration_used",
            extra={"subject_id": str(subject_id), "as_of": as_of.isoformat()},
        )
        return self._from_employee(employee, as_of)

    def resolve_many(
        self, subject_ids: list[UUID], as_of: date
    ) -> dict[UUID, EffectiveConfig]:
        """Resolve several employees; those with nothing to show are left out."""
        resolved: dict[UUID, EffectiveConfig] = {}
        for subject_id in subject_ids:
            try:
                resolved[subject_id] = self.resolve(subject_id, as_of)
            except NotFoundError:
                continue
        return resolved

    @staticmethod
    def _from_employee(employee: Employee, as_of: date) -> EffectiveConfig:
        kind = PaymentKind(employee.payment_kind)
        terms = {
            config_field.attribute: getattr(employee, config_field.attribute)
            for config_field in KIND_FIELDS[kind]
        }
        return EffectiveConfig(
            subject_id=employee.id,
            as_of=as_of,
            source=ConfigSource.BASE,
            kind=kind,
            notes=employee.payment_notes,
            **terms,
        )
