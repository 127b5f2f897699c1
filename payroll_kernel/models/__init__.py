"""ORM models for the payroll kernel."""

from payroll_kernel.models.audit_entry import AuditEntry
from payroll_kernel.models.configuration_record import ConfigurationRecord
from payroll_kernel.models.employee import Employee

__all__ = [
    "AuditEntry",
    "ConfigurationRecord",
    "Employee",
]
