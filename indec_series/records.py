"""Immutable records passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

NATIONAL_REGION = "Nacional"


@dataclass(frozen=True)
class PeriodMapping:
    """Column of a sheet resolved to a calendar period."""

    column_index: int
    year: int
    sub_period: int
    period_label: str
    canonical_date: str
    frequency: str = "M"

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (self.year, self.sub_period)


@dataclass(frozen=True)
class EntityAnchor:
    """Row of a sheet resolved to a region, component or demographic segment."""

    row_index: int
    canonical_name: str
    code: str
    category: str
    region: Optional[str] = None
    labels: Mapping[str, str] = field(default_factory=dict)
    raw_label: str = ""


@dataclass(frozen=True)
class CanonicalRecord:
    """One (entity, period) observation.

    ``(date, entity_code, region, category_type)`` is the natural key. Extra
    numeric measures of the same observation live in ``fields`` and string
    dimensions (age group, gender, ...) in ``labels``.
    """

    date: str
    period_label: str
    entity_code: str
    entity_name: str
    category_type: str
    value: Optional[float] = None
    region: str = NATIONAL_REGION
    source_file: str = ""
    fields: Mapping[str, Optional[float]] = field(default_factory=dict)
    labels: Mapping[str, Optional[str]] = field(default_factory=dict)

    @property
    def natural_key(self) -> Tuple[str, str, str, str]:
        return (self.date, self.entity_code, self.region, self.category_type)

    def get(self, name: str) -> Optional[float]:
        if name == "value":
            return self.value
        return self.fields.get(name)

    def evolve(self, **changes: Any) -> "CanonicalRecord":
        return replace(self, **changes)

    def as_dict(self) -> Dict[str, Any]:
        data = {
            "date": self.date,
            "period_label": self.period_label,
            "entity_code": self.entity_code,
            "entity_name": self.entity_name,
            "category_type": self.category_type,
            "value": self.value,
            "region": self.region,
            "source_file": self.source_file,
        }
        data.update(self.labels)
        data.update(self.fields)
        return data


@dataclass(frozen=True)
class TimeSeriesPoint:
    date: str
    value: float
    original_value: float
    is_seasonally_adjusted: bool
    cycle_trend_value: Optional[float] = None
