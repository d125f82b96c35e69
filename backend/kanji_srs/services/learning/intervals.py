"""
Interval Table

Fixed, ordered lookup table of review intervals (in abstract time-units)
indexed by the number of consecutive correct answers. The last entry is
the longest interval an item is scheduled at before it becomes eligible
for retirement.

Usage:
    from kanji_srs.services.learning.intervals import IntervalTable

    table = IntervalTable.default()
    table.value_at(3)    # 4
    table.value_at(99)   # 365 (clamped)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from kanji_srs.config.settings import DEFAULT_INTERVAL_TABLE, Settings, get_settings


@dataclass(frozen=True)
class IntervalTable:
    """Immutable interval lookup table."""

    values: tuple[int, ...]

    def __post_init__(self) -> None:
        values = tuple(self.values)
        if not values:
            raise ValueError("Interval table must not be empty")
        if any(v <= 0 for v in values):
            raise ValueError(f"Interval table entries must be positive: {values}")
        if any(b < a for a, b in zip(values, values[1:])):
            raise ValueError(f"Interval table must be non-decreasing: {values}")
        object.__setattr__(self, "values", values)

    @classmethod
    def default(cls) -> IntervalTable:
        return cls(DEFAULT_INTERVAL_TABLE)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> IntervalTable:
        settings = settings or get_settings()
        return cls(settings.SRS_INTERVAL_TABLE)

    def __len__(self) -> int:
        return len(self.values)

    def value_at(self, index: int) -> int:
        """Return the interval at ``index``, clamped into the table bounds."""
        return self.values[max(0, min(index, self.max_index()))]

    def max_index(self) -> int:
        return len(self.values) - 1

    def max_value(self) -> int:
        return self.values[-1]

    def min_value(self) -> int:
        return self.values[0]
