"""Structural discovery over INDEC sheet grids.

The locator turns a grid into two mappings: columns to calendar periods and
rows to named entities (regions, components, segments). Publications move
their blocks around between releases, so nothing here relies on fixed
offsets: entities are found by fuzzy name matching down the label column and
periods by parsing header tokens.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from loguru import logger

from indec_series.cells import EmptyCell, Grid, TextCell
from indec_series.dates import (
    SUB_PERIODS_PER_YEAR,
    parse_period_token,
    parse_sub_period,
    parse_year_marker,
    period_label,
    period_start,
    shift_months,
    today_utc,
)
from indec_series.errors import DuplicatePeriodWarning, StructureNotFoundError
from indec_series.matching import NamePattern, match_name
from indec_series.records import EntityAnchor, PeriodMapping

SUB_PERIOD_ROW_DISTANCE = 3


class SheetLayout(NamedTuple):
    periods: List[PeriodMapping]
    anchors: List[EntityAnchor]


class StructureLocator:
    """Find period columns and entity rows in a sheet."""

    def __init__(
        self,
        label_column: int = 0,
        header_scan_rows: int = 20,
        diagnostic_rows: int = 10,
        today: Optional[date] = None,
        require_data: bool = True,
    ):
        self.label_column = label_column
        self.header_scan_rows = header_scan_rows
        self.diagnostic_rows = diagnostic_rows
        self.today = today
        self.require_data = require_data
        self.warnings: List[DuplicatePeriodWarning] = []

    def not_found(self, grid: Grid, reason: str) -> StructureNotFoundError:
        return StructureNotFoundError(grid.name, reason, grid.head(self.diagnostic_rows))

    def locate(
        self,
        grid: Grid,
        expected_entities: Sequence[NamePattern],
        header_row: Optional[int] = None,
        header_at_first_entity: bool = False,
    ) -> SheetLayout:
        """Periods and entity anchors of ``grid``; raises StructureNotFoundError.

        With ``header_at_first_entity`` the period header is read from the first
        entity row (or the row below it) before scanning the top of the sheet.
        """
        anchors = self.locate_entities(grid, expected_entities)
        if not anchors:
            raise self.not_found(grid, "no se encontraron entidades esperadas")

        if header_at_first_entity and header_row is None:
            header_row = anchors[0].row_index
        periods = self.locate_periods(grid, header_row=header_row, fallback_row=anchors[0].row_index)
        if not periods:
            raise self.not_found(grid, "no se encontraron columnas de periodo")

        logger.debug(
            "Hoja '{}': {} periodos, {} entidades", grid.name, len(periods), len(anchors)
        )
        return SheetLayout(periods, anchors)

    # Entities --------------------------------------------------------------

    def _has_adjacent_data(self, grid: Grid, row: int) -> bool:
        data_col = self.label_column + 1
        if not isinstance(grid.cell(row, data_col), EmptyCell):
            return True
        # Block headers whose values start on the row below
        below_label = grid.cell(row + 1, self.label_column)
        below_data = grid.cell(row + 1, data_col)
        return not isinstance(below_data, EmptyCell) and not isinstance(below_label, EmptyCell)

    def locate_entities(
        self,
        grid: Grid,
        expected_entities: Sequence[NamePattern],
        start_row: int = 0,
        end_row: Optional[int] = None,
    ) -> List[EntityAnchor]:
        end = grid.n_rows if end_row is None else min(end_row, grid.n_rows)
        anchors = []
        for row in range(max(start_row, 0), end):
            label_cell = grid.cell(row, self.label_column)
            if not isinstance(label_cell, TextCell):
                continue
            pattern = match_name(label_cell.text, expected_entities)
            if pattern is None:
                continue
            if self.require_data and not self._has_adjacent_data(grid, row):
                logger.debug("Fila {} '{}' sin datos adyacentes, se ignora", row, label_cell.text)
                continue
            anchors.append(
                EntityAnchor(
                    row_index=row,
                    canonical_name=pattern.name,
                    code=pattern.code,
                    category=pattern.category,
                    raw_label=label_cell.text,
                )
            )
        return anchors

    # Periods ---------------------------------------------------------------

    def locate_periods(
        self,
        grid: Grid,
        header_row: Optional[int] = None,
        fallback_row: Optional[int] = None,
    ) -> List[PeriodMapping]:
        two_level = self.find_two_level_header(grid)
        if two_level is not None:
            mappings = self._map_two_level(grid, *two_level)
        else:
            mappings = self._map_single_row(grid, header_row, fallback_row)
        return self.deduplicate_periods(grid.name, mappings)

    def find_two_level_header(self, grid: Grid) -> Optional[Tuple[int, int]]:
        """Rows holding year markers and, shortly below, sub-period labels."""
        limit = min(self.header_scan_rows, grid.n_rows)
        for row in range(limit):
            markers = self._year_markers(grid, row)
            if not markers:
                continue
            for sub_row in range(row + 1, min(row + 1 + SUB_PERIOD_ROW_DISTANCE, grid.n_rows)):
                if self._sub_periods(grid, sub_row):
                    return row, sub_row
        return None

    def _year_markers(self, grid: Grid, row: int) -> List[Tuple[int, int]]:
        markers = []
        for col in grid.populated_columns(row, self.label_column + 1):
            year = parse_year_marker(grid.cell(row, col))
            if year is not None:
                markers.append((col, year))
        return markers

    def _sub_periods(self, grid: Grid, row: int) -> List[Tuple[int, int, str]]:
        subs = []
        for col in grid.populated_columns(row, self.label_column + 1):
            parsed = parse_sub_period(grid.cell(row, col))
            if parsed is not None:
                subs.append((col, parsed[0], parsed[1]))
        return subs

    def _map_two_level(self, grid: Grid, year_row: int, sub_row: int) -> List[PeriodMapping]:
        markers = self._year_markers(grid, year_row)
        subs = self._sub_periods(grid, sub_row)

        groups: Dict[int, List[Tuple[int, int, str]]] = {}
        for col, number, frequency in subs:
            preceding = [m for m in markers if m[0] <= col]
            if not preceding:
                raise self.not_found(
                    grid, f"subperiodo en columna {col} sin marcador de año previo"
                )
            groups.setdefault(preceding[-1][0], []).append((col, number, frequency))

        years = dict(markers)
        mappings = []
        for marker_col in sorted(groups):
            members = groups[marker_col]
            frequency = members[0][2]
            per_year = SUB_PERIODS_PER_YEAR[frequency]
            offset = members[0][1] - 1
            for count, (col, number, member_frequency) in enumerate(members, start=1):
                if member_frequency != frequency:
                    raise self.not_found(grid, f"frecuencias mezcladas bajo el marcador de columna {marker_col}")
                position = offset + count - 1
                expected = position % per_year + 1
                if number != expected:
                    raise self.not_found(
                        grid,
                        f"secuencia irregular de subperiodos en columna {col}: "
                        f"se esperaba {expected}, se encontro {number}",
                    )
                year = years[marker_col] + position // per_year
                mappings.append(self._mapping(col, year, number, frequency))
        return mappings

    def _row_tokens(self, grid: Grid, row: int) -> List[PeriodMapping]:
        mappings = []
        for col in grid.populated_columns(row, self.label_column + 1):
            token = parse_period_token(grid.cell(row, col))
            if token is not None:
                mappings.append(self._mapping(col, token.year, token.sub_period, token.frequency))
        return mappings

    def find_header_row(self, grid: Grid) -> Optional[int]:
        """First row within the scan range holding period tokens (two or more preferred)."""
        first_single = None
        for row in range(min(self.header_scan_rows, grid.n_rows)):
            found = len(self._row_tokens(grid, row))
            if found >= 2:
                return row
            if found == 1 and first_single is None:
                first_single = row
        return first_single

    def _map_single_row(
        self,
        grid: Grid,
        header_row: Optional[int],
        fallback_row: Optional[int],
    ) -> List[PeriodMapping]:
        row = header_row if header_row is not None else self.find_header_row(grid)
        if row is None:
            row = fallback_row
        if row is None:
            return []

        mappings = self._row_tokens(grid, row)
        if mappings:
            return mappings

        mappings = self._row_tokens(grid, row + 1)
        if mappings:
            logger.debug("Hoja '{}': periodos tomados de la fila {}", grid.name, row + 1)
            return mappings

        if header_row is not None:
            scanned = self.find_header_row(grid)
            if scanned is not None and scanned not in (row, row + 1):
                logger.debug("Hoja '{}': periodos tomados de la fila {}", grid.name, scanned)
                return self._row_tokens(grid, scanned)

        return self._synthesize_monthly(grid, row)

    def _synthesize_monthly(self, grid: Grid, row: int) -> List[PeriodMapping]:
        columns = grid.populated_columns(row, self.label_column + 1)
        if not columns:
            return []
        today = self.today or today_utc()
        logger.warning(
            "Hoja '{}': sin encabezado de periodos, se infieren {} meses hacia atras desde {}",
            grid.name,
            len(columns),
            today.strftime("%Y-%m"),
        )
        mappings = []
        for index, col in enumerate(columns):
            year, month = shift_months(today.year, today.month, index - (len(columns) - 1))
            mappings.append(self._mapping(col, year, month, "M"))
        return mappings

    @staticmethod
    def _mapping(col: int, year: int, sub_period: int, frequency: str) -> PeriodMapping:
        return PeriodMapping(
            column_index=col,
            year=year,
            sub_period=sub_period,
            period_label=period_label(year, sub_period, frequency),
            canonical_date=period_start(year, sub_period, frequency),
            frequency=frequency,
        )

    def deduplicate_periods(self, sheet_name: str, mappings: Sequence[PeriodMapping]) -> List[PeriodMapping]:
        """Keep the first column of every period label."""
        kept: Dict[str, PeriodMapping] = {}
        result = []
        for mapping in mappings:
            first = kept.get(mapping.period_label)
            if first is not None:
                warning = DuplicatePeriodWarning(
                    sheet_name, mapping.period_label, first.column_index, mapping.column_index
                )
                self.warnings.append(warning)
                logger.warning("{}", warning)
                continue
            kept[mapping.period_label] = mapping
            result.append(mapping)
        return result


def describe_layout(layout: SheetLayout) -> str:
    """One-line summary of a located sheet, for logs."""
    periods = layout.periods
    span = f"{periods[0].period_label} .. {periods[-1].period_label}" if periods else "-"
    names = ", ".join(anchor.canonical_name for anchor in layout.anchors[:5])
    return f"{len(periods)} periodos ({span}); entidades: {names}"
