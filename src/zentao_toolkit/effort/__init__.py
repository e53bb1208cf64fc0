"""Per-user effort aggregation over a calendar month."""

from zentao_toolkit.effort.aggregation import (
    EffortAggregator,
    EffortReport,
    EffortRow,
    MonthWindow,
    format_hours,
    to_days,
)
from zentao_toolkit.effort.service import run_monthly_effort

__all__ = [
    "EffortAggregator",
    "EffortReport",
    "EffortRow",
    "MonthWindow",
    "format_hours",
    "run_monthly_effort",
    "to_days",
]
