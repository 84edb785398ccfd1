"""Monthly economic activity estimator (EMAE)."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from loguru import logger

from indec_series.catalog import EMAE_COLUMNS
from indec_series.cells import Grid, TextCell, coerce_number, to_cell
from indec_series.combiner import deduplicate
from indec_series.config_loader import get_seasonal_config
from indec_series.dates import extract_date, month_from_name, parse_year_marker, period_label, period_start
from indec_series.errors import StructureNotFoundError
from indec_series.extractor import RecordExtractor
from indec_series.fetchers.base import FetchOutput, IndicatorFetcher
from indec_series.matching import match_name
from indec_series.records import CanonicalRecord
from indec_series.seasonal import RATIO_TO_MOVING_AVERAGE, adjust, hodrick_prescott
from indec_series.sources import fixed_candidate_urls

DEFAULT_URLS = ("https://www.indec.gob.ar/ftp/cuadros/economia/sh_emae_mensual_base2004.xls",)
DEFAULT_COLUMNS = {
    "original_value": 2,
    "seasonally_adjusted_value": 4,
    "cycle_trend_value": 6,
}
MIN_YEAR = 1990
MAX_YEAR = 2100
ADJUSTED_FIELDS = ("seasonally_adjusted_value", "cycle_trend_value")
HISTORY_REQUIRED_COLUMNS = ("date", "original_value")


class EMAEFetcher(IndicatorFetcher):
    """Original, seasonally adjusted and trend-cycle EMAE series."""

    indicator = "emae"
    table_name = "emae"
    conflict_key = ("date",)
    supports_history = True

    def candidate_urls(self, today: date) -> List[str]:
        return fixed_candidate_urls(self.settings.get("urls") or DEFAULT_URLS)

    def column_roles(self, grid: Grid) -> Dict[str, int]:
        """Column of each series, from header labels or the usual layout."""
        roles: Dict[str, int] = {}
        scan = int(self.settings.get("header_scan_rows", 10))
        for row in range(min(scan, grid.n_rows)):
            for col in grid.populated_columns(row, 2):
                cell = grid.cell(row, col)
                if not isinstance(cell, TextCell):
                    continue
                pattern = match_name(cell.text, EMAE_COLUMNS)
                if pattern is not None and pattern.code not in roles:
                    roles[pattern.code] = col
        for name, col in DEFAULT_COLUMNS.items():
            roles.setdefault(name, col)
        return roles

    def parse(self, workbook: Dict[str, Grid], source_file: str = "") -> FetchOutput:
        grid = self.select_sheet(workbook, source_file)
        roles = self.column_roles(grid)
        extractor = RecordExtractor(source_file=source_file)

        records: List[CanonicalRecord] = []
        current_year: Optional[int] = None
        for row in range(grid.n_rows):
            year = parse_year_marker(grid.cell(row, 0))
            if year is not None and MIN_YEAR <= year <= MAX_YEAR:
                current_year = year
            month = month_from_name(grid.text(row, 1))
            if current_year is None or month is None:
                continue
            original = extractor.value(grid, row, roles["original_value"])
            if original is None:
                continue
            records.append(
                CanonicalRecord(
                    date=period_start(current_year, month, "M"),
                    period_label=period_label(current_year, month, "M"),
                    entity_code="EMAE",
                    entity_name="EMAE",
                    category_type="GENERAL",
                    value=original,
                    source_file=source_file,
                    fields={name: extractor.value(grid, row, roles[name]) for name in ADJUSTED_FIELDS},
                    labels={"adjustment_source": "indec"},
                )
            )

        if not records:
            raise StructureNotFoundError(grid.name, "no se encontraron filas año/mes con valores", grid.head(10))
        return self._complete(records, [])

    def parse_history(self, frame: pd.DataFrame, source_file: str = "") -> FetchOutput:
        """Historical rows from a CSV export.

        Requires ``date`` and ``original_value`` columns; the adjusted and
        trend columns are optional and computed locally when absent.
        """
        source = source_file or "csv"
        missing = [column for column in HISTORY_REQUIRED_COLUMNS if column not in frame.columns]
        if missing:
            raise StructureNotFoundError(source, f"columnas faltantes en el CSV: {', '.join(missing)}")

        records: List[CanonicalRecord] = []
        skipped = 0
        for raw in frame.to_dict(orient="records"):
            iso = extract_date(raw.get("date"))
            original = coerce_number(to_cell(raw.get("original_value")))
            if iso is None or original is None:
                skipped += 1
                continue
            year, month = int(iso[:4]), int(iso[5:7])
            records.append(
                CanonicalRecord(
                    date=iso,
                    period_label=period_label(year, month, "M"),
                    entity_code="EMAE",
                    entity_name="EMAE",
                    category_type="GENERAL",
                    value=original,
                    source_file=source_file,
                    fields={name: coerce_number(to_cell(raw.get(name))) for name in ADJUSTED_FIELDS},
                    labels={"adjustment_source": "indec"},
                )
            )

        if not records:
            raise StructureNotFoundError(source, "el CSV no tiene filas con fecha y valor original")
        warnings = []
        if skipped:
            logger.warning("[emae] {} filas del CSV sin fecha o valor original", skipped)
            warnings.append(f"{skipped} filas CSV sin fecha o valor original omitidas")
        return self._complete(records, warnings)

    def _complete(self, records: Sequence[CanonicalRecord], warnings: List[str]) -> FetchOutput:
        records = sorted(deduplicate(records), key=lambda record: record.date)
        if self.settings.get("compute_missing_adjustments", True):
            records, filled = self.fill_missing_adjustments(records)
            if filled:
                warnings.append(f"{filled} periodos con desestacionalizacion calculada localmente")
        logger.info("[emae] {} periodos ({} .. {})", len(records), records[0].date, records[-1].date)
        return FetchOutput(records=records, warnings=warnings)

    def fill_missing_adjustments(self, records: Sequence[CanonicalRecord]):
        """Complete absent adjusted/trend values with the local seasonal engine."""
        missing = [r for r in records if any(r.fields.get(name) is None for name in ADJUSTED_FIELDS)]
        if not missing:
            return list(records), 0

        seasonal_cfg = get_seasonal_config(self.config)
        observations = [(record.date, record.value) for record in records]
        adjusted = adjust(
            observations,
            method=str(seasonal_cfg.get("method", RATIO_TO_MOVING_AVERAGE)),
            window_size=int(seasonal_cfg.get("window_size", 12)),
            lam=float(seasonal_cfg.get("hp_lambda", 1600)),
            iterations=int(seasonal_cfg.get("hp_iterations", 100)),
        )
        trend = hodrick_prescott(
            [record.value for record in records],
            lam=float(seasonal_cfg.get("hp_lambda", 1600)),
            iterations=int(seasonal_cfg.get("hp_iterations", 100)),
        )

        filled = 0
        completed = []
        for record, point, trend_value in zip(records, adjusted, trend):
            fields = dict(record.fields)
            computed = {"seasonally_adjusted_value": point.value, "cycle_trend_value": trend_value}
            changed = False
            for name, value in computed.items():
                if fields.get(name) is None:
                    fields[name] = value
                    changed = True
            if changed:
                filled += 1
                completed.append(record.evolve(fields=fields, labels={"adjustment_source": "computed"}))
            else:
                completed.append(record)
        return completed, filled

    def to_rows(self, records: Sequence[CanonicalRecord]) -> List[Dict[str, Any]]:
        return [
            {
                "date": record.date,
                "original_value": record.value,
                "seasonally_adjusted_value": record.fields.get("seasonally_adjusted_value"),
                "cycle_trend_value": record.fields.get("cycle_trend_value"),
                "adjustment_source": record.labels.get("adjustment_source"),
                "source_file": record.source_file,
            }
            for record in records
        ]
