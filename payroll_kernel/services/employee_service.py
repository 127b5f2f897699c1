"""
EmployeeService -- employees and their current-configuration cache.

Responsibility:
    Registers employees with their base configuration, locks an employee
    row for the duration of a configuration transition, and mirrors a
    committed configuration onto the employee's cache fields.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.
    Called by TransitionCoordinator (lock + mirror) and by operators /
    importers that create employees.

Invariants enforced:
    CACHE_CONSISTENCY -- mirror_configuration() is only called by
        TransitionCoordinator inside the transaction that inserted the
        record being mirrored.

Failure modes:
    - SubjectNotFoundError from lock_for_transition() for unknown ids.
"""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select

from payroll_kernel.domain.dtos import (
    ConfigurationRecordInfo,
    EmployeeInfo,
    to_decimal,
)
from payroll_kernel.domain.values import PaymentKind
from payroll_kernel.exceptions import SubjectNotFoundError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.employee import Employee
from payroll_kernel.services.base import BaseService

logger = get_logger("services.employee")


class EmployeeService(BaseService[Employee]):
    """Employee registration and cache maintenance."""

    def register(
        self,
        name: str,
        *,
        driver_percent: Any = None,
        company_percent: Any = None,
        service_fee_percent: Any = None,
        payment_kind: PaymentKind | None = None,
        flat_rate_amount: Any = None,
        per_mile_rate: Any = None,
        payment_effective_date: date | None = None,
        is_active: bool = True,
    ) -> EmployeeInfo:
        """
        Create an employee.

        When ``payment_kind`` is omitted and a full percentage split is
        given, the employee is paid by PERCENTAGE, which makes the split
        its base configuration.
        """
        percents = (driver_percent, company_percent, service_fee_percent)
        if payment_kind is None and all(p is not None for p in percents):
            payment_kind = PaymentKind.PERCENTAGE

        employee = Employee(
            name=name,
            is_active=is_active,
            driver_percent=to_decimal(driver_percent),
            company_percent=to_decimal(company_percent),
            service_fee_percent=to_decimal(service_fee_percent),
            payment_kind=PaymentKind(payment_kind).value if payment_kind else None,
            flat_rate_amount=to_decimal(flat_rate_amount),
            per_mile_rate=to_decimal(per_mile_rate),
            payment_effective_date=payment_effective_date,
        )
        self.session.add(employee)
        self.session.flush()

        logger.info(
            "employee_registered",
            extra={
                "subject_id": str(employee.id),
                "payment_kind": employee.payment_kind,
            },
        )
        return EmployeeInfo.from_model(employee)

    def get(self, subject_id: UUID) -> EmployeeInfo | None:
        employee = self.session.get(Employee, subject_id)
        if employee is None:
            return None
        return EmployeeInfo.from_model(employee)

    def list_active(self) -> list[EmployeeInfo]:
        employees = self.session.execute(
            select(Employee)
            .where(Employee.is_active.is_(True))
            .order_by(Employee.name.asc())
        ).scalars().all()
        return [EmployeeInfo.from_model(e) for e in employees]

    def deactivate(self, subject_id: UUID) -> EmployeeInfo:
        employee = self._get_for_update(subject_id)
        employee.is_active = False
        self.session.flush()
        logger.info("employee_deactivated", extra={"subject_id": str(subject_id)})
        return EmployeeInfo.from_model(employee)

    def lock_for_transition(self, subject_id: UUID) -> Employee:
        """
        Lock the employee row until the caller's transaction ends.

        Two transitions for the same employee serialize here.

        Raises:
            SubjectNotFoundError: unknown subject_id.
        """
        return self._get_for_update(subject_id)

    def mirror_configuration(
        self, employee: Employee, record: ConfigurationRecordInfo
    ) -> None:
        """Copy a just-inserted record's terms onto the employee's cache fields."""
        employee.payment_kind = record.kind.value
        employee.payment_effective_date = record.effective_date
        employee.payment_notes = record.notes
        if record.kind == PaymentKind.PERCENTAGE:
            employee.driver_percent = record.driver_percent
            employee.company_percent = record.company_percent
            employee.service_fee_percent = record.service_fee_percent
        elif record.kind == PaymentKind.FLAT_RATE:
            employee.flat_rate_amount = record.flat_rate_amount
        else:
            employee.per_mile_rate = record.per_mile_rate
        self.session.flush()

        logger.debug(
            "employee_cache_updated",
            extra={
                "subject_id": str(employee.id),
                "payment_kind": record.kind.value,
                "record_id": str(record.id),
            },
        )

    def _get_for_update(self, subject_id: UUID) -> Employee:
        employee = self.session.execute(
            select(Employee)
            .where(Employee.id == subject_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if employee is None:
            raise SubjectNotFoundError(str(subject_id))
        return employee
