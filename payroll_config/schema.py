"""
Settings schema (``payroll_config.schema``).

Frozen dataclasses for every settings section.  Instances are built by
``payroll_config.loader`` and are never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    busy_timeout_seconds: int = 30


@dataclass(frozen=True)
class AuditSettings:
    enabled: bool = True
    retention_days: int = 2555

    def __post_init__(self) -> None:
        if self.retention_days < 0:
            raise ValueError(
                f"audit.retention_days must be >= 0, got {self.retention_days}"
            )


@dataclass(frozen=True)
class ValidationSettings:
    max_flat_rate: Decimal = Decimal("10000")
    max_per_mile_rate: Decimal = Decimal("10")
    percent_sum_tolerance: Decimal = Decimal("0.01")
    past_warning_days: int = 30
    future_warning_days: int = 90

    def __post_init__(self) -> None:
        if self.max_flat_rate <= 0 or self.max_per_mile_rate <= 0:
            raise ValueError("validation maximums must be positive")
        if self.percent_sum_tolerance < 0:
            raise ValueError("validation.percent_sum_tolerance must be >= 0")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level not in _LOG_LEVELS:
            raise ValueError(
                f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {self.level!r}"
            )


@dataclass(frozen=True)
class PayrollSettings:
    """Complete runtime settings."""

    database: DatabaseSettings
    audit: AuditSettings
    validation: ValidationSettings
    logging: LoggingSettings
