"""
Field diffs between two configurations.

A transition from one payment kind to another reports the old kind's
fields going to None and the new kind's fields appearing, so the audit
trail shows the full switch.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping

from payroll_kernel.domain.values import ConfigField


@dataclass(frozen=True)
class FieldChange:
    field: ConfigField
    old_value: Decimal | None
    new_value: Decimal | None


def diff_fields(
    before: Mapping[ConfigField, Decimal | None] | None,
    after: Mapping[ConfigField, Decimal | None],
) -> list[FieldChange]:
    """Changed fields in ConfigField order.  ``before=None`` means creation."""
    before = before or {}
    changes = []
    for config_field in ConfigField:
        old = before.get(config_field)
        new = after.get(config_field)
        if old is None and new is None:
            continue
        if old != new:
            changes.append(FieldChange(config_field, old, new))
    return changes
