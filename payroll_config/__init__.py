"""
payroll_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_settings()``.  Layers, lowest precedence first:

        1. payroll_config/defaults.yaml (packaged)
        2. the YAML file passed as ``path``, else $PAYROLL_CONFIG_FILE
        3. environment overrides:
               PAYROLL_DATABASE_URL           -> database.url
               PAYROLL_LOG_LEVEL              -> logging.level
               PAYROLL_AUDIT_RETENTION_DAYS   -> audit.retention_days

Architecture position:
    Configuration -- sits above ``payroll_kernel``.  The kernel MUST NEVER
    import from ``payroll_config``; ``payroll_config.bridges`` translates
    settings into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from payroll_config.loader import load_settings
from payroll_config.schema import PayrollSettings

_logger = logging.getLogger("payroll_kernel.config")

__all__ = ["get_settings", "PayrollSettings"]


def _apply_env_overrides(settings: PayrollSettings, environ) -> PayrollSettings:
    url = environ.get("PAYROLL_DATABASE_URL")
    if url:
        settings = replace(settings, database=replace(settings.database, url=url))
    level = environ.get("PAYROLL_LOG_LEVEL")
    if level:
        settings = replace(
            settings, logging=replace(settings.logging, level=level.upper())
        )
    days = environ.get("PAYROLL_AUDIT_RETENTION_DAYS")
    if days:
        try:
            retention = int(days)
        except ValueError:
            raise ValueError(
                f"PAYROLL_AUDIT_RETENTION_DAYS must be an integer, got {days!r}"
            ) from None
        settings = replace(
            settings, audit=replace(settings.audit, retention_days=retention)
        )
    return settings


def get_settings(path: Path | str | None = None, environ=None) -> PayrollSettings:
    """The ONLY public settings entrypoint.

    Args:
        path: Override YAML file.  Defaults to $PAYROLL_CONFIG_FILE when set.
        environ: Mapping to read overrides from.  Defaults to os.environ.
    """
    environ = os.environ if environ is None else environ
    if path is None and environ.get("PAYROLL_CONFIG_FILE"):
        path = environ["PAYROLL_CONFIG_FILE"]

    settings = load_settings(Path(path) if path is not None else None)
    settings = _apply_env_overrides(settings, environ)

    _logger.info(
        "settings_loaded",
        extra={
            "source": str(path) if path is not None else "defaults",
            "database_dialect": settings.database.url.split(":", 1)[0],
            "audit_retention_days": settings.audit.retention_days,
        },
    )
    return settings
