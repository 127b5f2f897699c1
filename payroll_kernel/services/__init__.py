"""Kernel services: history store, transitions, audit trail, employees."""

from payroll_kernel.services.audit_logger import AuditLogger
from payroll_kernel.services.employee_service import EmployeeService
from payroll_kernel.services.history_store import ConfigurationHistoryStore
from payroll_kernel.services.transition_coordinator import (
    SYSTEM_ACTOR,
    TransitionCoordinator,
)

__all__ = [
    "AuditLogger",
    "ConfigurationHistoryStore",
    "EmployeeService",
    "SYSTEM_ACTOR",
    "TransitionCoordinator",
]
