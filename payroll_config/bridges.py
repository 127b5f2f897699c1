"""
Config -> Kernel Bridges.

Functions that convert settings into kernel inputs.  They live here
because the kernel must NEVER import payroll_config.

Usage:
    settings = get_settings()
    limits = build_validation_limits(settings)
    coordinator = TransitionCoordinator(session, limits=limits)
"""

from __future__ import annotations

import logging

from payroll_config.schema import PayrollSettings
from payroll_kernel.db.engine import init_engine_from_url
from payroll_kernel.domain.validation import ValidationLimits
from payroll_kernel.logging_config import configure_logging
from payroll_kernel.services.audit_logger import initialize_audit_storage


def build_validation_limits(settings: PayrollSettings) -> ValidationLimits:
    v = settings.validation
    return ValidationLimits(
        max_flat_rate=v.max_flat_rate,
        max_per_mile_rate=v.max_per_mile_rate,
        percent_sum_tolerance=v.percent_sum_tolerance,
        past_warning_days=v.past_warning_days,
        future_warning_days=v.future_warning_days,
    )


def init_kernel(settings: PayrollSettings):
    """
    Configure kernel logging and the module-level engine from settings.

    With the audit trail enabled, audit storage is initialized here, once,
    so that building services later never runs DDL.
    """
    configure_logging(level=logging.getLevelName(settings.logging.level))
    db = settings.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        busy_timeout_seconds=db.busy_timeout_seconds,
    )
    if settings.audit.enabled:
        initialize_audit_storage(engine)
    return engine
