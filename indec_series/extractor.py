"""Record extraction from located sheet grids."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from indec_series.cells import EmptyCell, Grid, TextCell
from indec_series.errors import MalformedCellError
from indec_series.matching import NamePattern, match_name
from indec_series.records import NATIONAL_REGION, CanonicalRecord, EntityAnchor, PeriodMapping

DEFAULT_VALUE_OFFSETS = {"value": 0}


@dataclass(frozen=True)
class SectionSpec:
    """One block of a hierarchical sheet (e.g. the IPC "Categorías" block).

    Rows below the current cursor are scanned for ``items`` within
    ``lookahead`` rows. When ``header`` is set the block starts after the first
    row matching it (searched within ``header_lookahead`` rows); rows matching
    ``stop`` end the block early. With ``as_fields`` every item becomes a field
    of a single owner record instead of an entity of its own.
    """

    name: str
    category_type: str
    items: Tuple[NamePattern, ...]
    lookahead: int = 15
    code_prefix: str = ""
    header: Tuple[NamePattern, ...] = ()
    header_lookahead: int = 15
    stop: Tuple[NamePattern, ...] = ()
    required: bool = False
    as_fields: bool = False
    field_prefix: str = ""


class RecordExtractor:
    """Emit canonical records from the cells a layout points at."""

    def __init__(self, label_column: int = 0, source_file: str = ""):
        self.label_column = label_column
        self.source_file = source_file
        self.malformed: List[MalformedCellError] = []

    @property
    def malformed_cells(self) -> int:
        return len(self.malformed)

    def value(self, grid: Grid, row: int, col: int) -> Optional[float]:
        cell = grid.cell(row, col)
        if isinstance(cell, EmptyCell):
            return None
        value = grid.number(row, col)
        if value is None:
            self.malformed.append(MalformedCellError((row, col), cell))
        return value

    def log_summary(self, sheet_name: str):
        if self.malformed:
            logger.debug(
                "Hoja '{}': {} celdas no numericas omitidas", sheet_name, len(self.malformed)
            )

    def extract(
        self,
        grid: Grid,
        period_mappings: Sequence[PeriodMapping],
        entity_anchors: Sequence[EntityAnchor],
        value_row_offsets: Optional[Mapping[str, int]] = None,
        region: str = NATIONAL_REGION,
        category_type: Optional[str] = None,
    ) -> List[CanonicalRecord]:
        """One record per (anchor, field, period) cell holding a number.

        ``value_row_offsets`` maps a field name to the row offset of its values
        relative to the anchor row; ``"value"`` feeds ``CanonicalRecord.value``.
        """
        offsets = dict(value_row_offsets or DEFAULT_VALUE_OFFSETS)
        records = []
        for anchor in entity_anchors:
            record_region = anchor.region or (anchor.canonical_name if anchor.category == "region" else region)
            for period in period_mappings:
                for field_name, offset in offsets.items():
                    value = self.value(grid, anchor.row_index + offset, period.column_index)
                    if value is None:
                        continue
                    records.append(
                        CanonicalRecord(
                            date=period.canonical_date,
                            period_label=period.period_label,
                            entity_code=anchor.code,
                            entity_name=anchor.canonical_name,
                            category_type=category_type or anchor.category,
                            value=value if field_name == "value" else None,
                            region=record_region,
                            source_file=self.source_file,
                            fields={} if field_name == "value" else {field_name: value},
                            labels=dict(anchor.labels),
                        )
                    )
        self.log_summary(grid.name)
        return records

    def _label(self, grid: Grid, row: int) -> str:
        cell = grid.cell(row, self.label_column)
        return cell.text if isinstance(cell, TextCell) else ""

    def _find_row(self, grid: Grid, patterns: Sequence[NamePattern], start: int, end: int) -> Optional[int]:
        for row in range(start, end):
            if match_name(self._label(grid, row), patterns) is not None:
                return row
        return None

    def _period_values(self, grid: Grid, row: int, periods: Sequence[PeriodMapping]) -> List[Tuple[PeriodMapping, float]]:
        values = []
        for period in periods:
            value = self.value(grid, row, period.column_index)
            if value is not None:
                values.append((period, value))
        return values

    def extract_sections(
        self,
        grid: Grid,
        period_mappings: Sequence[PeriodMapping],
        anchor: EntityAnchor,
        sections: Sequence[SectionSpec],
        end_row: Optional[int] = None,
        region: Optional[str] = None,
        owner: Optional[EntityAnchor] = None,
    ) -> List[CanonicalRecord]:
        """Walk the hierarchical blocks below ``anchor`` and emit their rows."""
        limit = grid.n_rows if end_row is None else min(end_row, grid.n_rows)
        record_region = region or anchor.region or (
            anchor.canonical_name if anchor.category == "region" else NATIONAL_REGION
        )
        owner = owner or anchor
        cursor = anchor.row_index + 1
        records: List[CanonicalRecord] = []

        for section in sections:
            start = cursor
            if section.header:
                header_row = self._find_row(
                    grid, section.header, cursor, min(cursor + section.header_lookahead, limit)
                )
                if header_row is None:
                    logger.debug(
                        "Hoja '{}', {}: seccion '{}' no encontrada",
                        grid.name, anchor.canonical_name, section.name,
                    )
                    if section.required:
                        break
                    continue
                start = header_row + 1

            window_end = min(start + section.lookahead, limit)
            last_row = None
            for row in range(start, window_end):
                label = self._label(grid, row)
                if not label:
                    continue
                item = match_name(label, section.items)
                if item is None:
                    if section.stop and match_name(label, section.stop) is not None:
                        break
                    continue
                last_row = row
                for period, value in self._period_values(grid, row, period_mappings):
                    records.append(self._section_record(section, item, owner, period, value, record_region))

            if last_row is None:
                logger.debug(
                    "Hoja '{}', {}: sin filas para la seccion '{}'",
                    grid.name, anchor.canonical_name, section.name,
                )
                if section.required:
                    break
                continue
            cursor = last_row + 1

        self.log_summary(grid.name)
        return records

    def _section_record(
        self,
        section: SectionSpec,
        item: NamePattern,
        owner: EntityAnchor,
        period: PeriodMapping,
        value: float,
        region: str,
    ) -> CanonicalRecord:
        if section.as_fields:
            return CanonicalRecord(
                date=period.canonical_date,
                period_label=period.period_label,
                entity_code=owner.code,
                entity_name=owner.canonical_name,
                category_type=section.category_type,
                region=region,
                source_file=self.source_file,
                fields={f"{section.field_prefix}{item.code}": value},
                labels=dict(owner.labels),
            )
        code = item.code if item.code.startswith(section.code_prefix) else f"{section.code_prefix}{item.code}"
        return CanonicalRecord(
            date=period.canonical_date,
            period_label=period.period_label,
            entity_code=code,
            entity_name=item.name,
            category_type=section.category_type,
            value=value,
            region=region,
            source_file=self.source_file,
        )

