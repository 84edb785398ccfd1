"""Merge records that describe the same observation from several sources."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

from indec_series.records import CanonicalRecord

TOTAL_ENTITY = "TOTAL"
TOTAL_REGION = "Total 31 aglomerados"
NATIONAL_CATEGORY = "national"


@dataclass(frozen=True)
class AggregateSentinel:
    """Identity of the whole-country, no-breakdown record of an indicator."""

    entity_code: str = TOTAL_ENTITY
    region: str = TOTAL_REGION
    category_type: str = NATIONAL_CATEGORY

    def matches(self, record: CanonicalRecord) -> bool:
        return (
            record.entity_code == self.entity_code
            and record.region == self.region
            and record.category_type == self.category_type
        )


def _last_non_null(current, incoming):
    return incoming if incoming is not None else current


def merge_records(first: CanonicalRecord, others: Sequence[CanonicalRecord]) -> CanonicalRecord:
    """Fold ``others`` into ``first``; a non-null value is never replaced by null."""
    value = first.value
    fields: Dict[str, Optional[float]] = dict(first.fields)
    labels: Dict[str, Optional[str]] = dict(first.labels)
    source_file = first.source_file

    for record in others:
        value = _last_non_null(value, record.value)
        for name, field_value in record.fields.items():
            fields[name] = _last_non_null(fields.get(name), field_value)
        for name, label in record.labels.items():
            labels[name] = _last_non_null(labels.get(name), label)
        if record.source_file:
            source_file = record.source_file

    return first.evolve(value=value, fields=fields, labels=labels, source_file=source_file)


def _merge_groups(records: Sequence[CanonicalRecord], key_of, selects) -> List[CanonicalRecord]:
    groups: Dict[Hashable, List[CanonicalRecord]] = {}
    order: List[Tuple[bool, object]] = []
    for record in records:
        if not selects(record):
            order.append((False, record))
            continue
        key = key_of(record)
        if key not in groups:
            groups[key] = []
            order.append((True, key))
        groups[key].append(record)

    merged = []
    for grouped, item in order:
        if not grouped:
            merged.append(item)
            continue
        members = groups[item]
        merged.append(merge_records(members[0], members[1:]) if len(members) > 1 else members[0])
    return merged


def combine(
    records: Sequence[CanonicalRecord],
    sentinel: Optional[AggregateSentinel] = None,
) -> List[CanonicalRecord]:
    """Merge aggregate records per (date, period_label); pass the rest through.

    Records keep the position of their first occurrence.
    """
    sentinel = sentinel or AggregateSentinel()
    return _merge_groups(
        records,
        key_of=lambda record: (record.date, record.period_label),
        selects=sentinel.matches,
    )


def deduplicate(records: Sequence[CanonicalRecord]) -> List[CanonicalRecord]:
    """Merge records sharing a natural key with the same last-non-null rule."""
    return _merge_groups(
        records,
        key_of=lambda record: record.natural_key,
        selects=lambda record: True,
    )
