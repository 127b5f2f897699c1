"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Provides the common constructor and session-handling contract for
    flush-only services.  Concrete services receive a SQLAlchemy
    ``Session`` from their caller and use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    ConfigurationHistoryStore and EmployeeService extend this class.
    TransitionCoordinator and AuditLogger do NOT: they own their
    transaction boundaries.

Failure modes:
    - If a subclass commits, TransitionCoordinator can no longer roll back
      close + insert + cache update as one unit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from payroll_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for flush-only kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``; the caller controls transaction boundaries.
    """

    def __init__(self, session: Session):
        self.session = session
