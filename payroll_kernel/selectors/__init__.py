"""Read-only query selectors."""

from payroll_kernel.selectors.effective_config_resolver import EffectiveConfigResolver
from payroll_kernel.selectors.history_selector import HistorySelector

__all__ = [
    "EffectiveConfigResolver",
    "HistorySelector",
]
