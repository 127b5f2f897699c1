"""
Settings Loader (``payroll_config.loader``).

Responsibility
--------------
Loads YAML settings files, layers them (packaged defaults, then an
optional override file) and parses the merged mapping into
``payroll_config.schema`` dataclasses.  Runtime code should call
``payroll_config.get_settings()`` instead of this module.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a bad value  -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import (
    AuditSettings,
    DatabaseSettings,
    LoggingSettings,
    PayrollSettings,
    ValidationSettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS = {
    "database": DatabaseSettings,
    "audit": AuditSettings,
    "validation": ValidationSettings,
    "logging": LoggingSettings,
}

_DECIMAL_KEYS = frozenset({"max_flat_rate", "max_per_mile_rate", "percent_sum_tolerance"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge_layers(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: override keys replace base keys within a section."""
    merged = {name: dict(values or {}) for name, values in base.items()}
    for name, values in override.items():
        if name not in _SECTIONS:
            raise ValueError(f"Unknown settings section: {name!r}")
        merged.setdefault(name, {}).update(values or {})
    return merged


def _to_decimal(key: str, value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{key} must be a number, got {value!r}") from None


def parse_settings(data: dict[str, Any]) -> PayrollSettings:
    """Build PayrollSettings from a merged mapping."""
    sections = {}
    for name, cls in _SECTIONS.items():
        values = dict(data.get(name) or {})
        known = cls.__dataclass_fields__
        unknown = set(values) - set(known)
        if unknown:
            raise ValueError(f"Unknown keys in {name!r}: {sorted(unknown)}")
        for key in _DECIMAL_KEYS & set(values):
            values[key] = _to_decimal(f"{name}.{key}", values[key])
        sections[name] = cls(**values)
    return PayrollSettings(**sections)


def load_settings(path: Path | None = None) -> PayrollSettings:
    """Defaults, overlaid with ``path`` when given."""
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = merge_layers(data, load_yaml_file(path))
    return parse_settings(data)
