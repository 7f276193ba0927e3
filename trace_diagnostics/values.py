"""Metric output records consumed by the reporting layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Unit(str, Enum):
    NORMALIZED_PERCENTAGE_SMALLER_IS_BETTER = "normalizedPercentage_smallerIsBetter"
    NORMALIZED_PERCENTAGE_BIGGER_IS_BETTER = "normalizedPercentage_biggerIsBetter"
    TIME_DURATION_IN_MS_SMALLER_IS_BETTER = "timeDurationInMs_smallerIsBetter"
    TIME_DURATION_IN_MS_BIGGER_IS_BETTER = "timeDurationInMs_biggerIsBetter"
    UNITLESS = "unitless"
    COUNT = "count"


@dataclass
class NumericValue:
    """A named scalar with grouping keys and diagnostic value lists."""

    name: str
    unit: Unit
    value: float
    description: str = ""
    canonical_url: str | None = None
    grouping_keys: dict = field(default_factory=dict)
    diagnostics: dict[str, list["NumericValue"]] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "canonicalUrl": self.canonical_url,
            "name": self.name,
            "unit": self.unit.value,
            "value": self.value,
            "description": self.description,
            "groupingKeys": dict(self.grouping_keys),
            "diagnostics": {
                key: [item.as_dict() for item in values]
                for key, values in self.diagnostics.items()
            }
        }


class ValueList:
    """Accumulator a metric appends its values to."""

    def __init__(self):
        self.values: list[NumericValue] = []

    def add_value(self, value: NumericValue) -> None:
        self.values.append(value)

    def __iter__(self):
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)
