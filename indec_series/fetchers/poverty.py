"""Poverty and indigence incidence from the semi-annual EPH poverty report."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from indec_series.catalog import (
    INDIGENCE_SECTION_HEADER,
    POVERTY_GAP_SEVERITY,
    POVERTY_SECTION_HEADER,
    POVERTY_UNITS,
)
from indec_series.cells import Grid
from indec_series.combiner import TOTAL_ENTITY, TOTAL_REGION, combine, deduplicate
from indec_series.errors import StructureNotFoundError
from indec_series.extractor import RecordExtractor, SectionSpec
from indec_series.fetchers.base import FetchOutput, IndicatorFetcher
from indec_series.locator import StructureLocator
from indec_series.matching import normalize_text
from indec_series.records import CanonicalRecord, EntityAnchor, PeriodMapping
from indec_series.sources import find_sheet, poverty_candidate_urls

DEFAULT_URL_TEMPLATE = "http://www.indec.gob.ar/ftp/cuadros/sociedad/cuadros_informe_pobreza_{mm}_{yy}.xls"
FIELDS = (
    "poverty_rate_persons",
    "poverty_rate_households",
    "indigence_rate_persons",
    "indigence_rate_households",
    "poverty_gap",
    "poverty_severity",
    "indigence_gap",
    "indigence_severity",
)

# (sheet, kind) of each table read from the report
NATIONAL_SHEET = "Cuadro 1"
GAP_SHEETS = (("Cuadro 2.1", "indigence"), ("Cuadro 2.2", "poverty"))
REGIONAL_SHEETS = (("Cuadro 4.3", "poverty"), ("Cuadro 4.4", "indigence"))


class PovertyFetcher(IndicatorFetcher):
    """National and regional poverty/indigence rates, gaps and severities."""

    indicator = "poverty"
    table_name = "poverty"
    conflict_key = ("date", "region", "data_type")

    def candidate_urls(self, today: date) -> List[str]:
        return poverty_candidate_urls(
            str(self.settings.get("url_template") or DEFAULT_URL_TEMPLATE),
            today,
            int(self.settings.get("lookback_publications", 8)),
        )

    @staticmethod
    def national_owner(row_index: int) -> EntityAnchor:
        return EntityAnchor(
            row_index=row_index,
            canonical_name=TOTAL_REGION,
            code=TOTAL_ENTITY,
            category="national",
            region=TOTAL_REGION,
        )

    def _header(self, locator: StructureLocator, grid: Grid) -> Tuple[int, List[PeriodMapping]]:
        header_row = locator.find_header_row(grid)
        if header_row is None:
            raise locator.not_found(grid, "no se encontro la fila de semestres")
        periods = locator.locate_periods(grid, header_row=header_row)
        if not periods:
            raise locator.not_found(grid, "no se encontraron columnas de periodo")
        return header_row, periods

    def parse_national(self, grid: Grid, locator: StructureLocator, extractor: RecordExtractor) -> List[CanonicalRecord]:
        """Cuadro 1: households and persons below the poverty and indigence lines."""
        header_row, periods = self._header(locator, grid)
        owner = self.national_owner(header_row)
        sections = (
            SectionSpec(
                "pobreza", "national", POVERTY_UNITS, lookahead=6,
                header=POVERTY_SECTION_HEADER, stop=INDIGENCE_SECTION_HEADER,
                as_fields=True, field_prefix="poverty_rate_",
            ),
            SectionSpec(
                "indigencia", "national", POVERTY_UNITS, lookahead=6,
                header=INDIGENCE_SECTION_HEADER, as_fields=True, field_prefix="indigence_rate_",
            ),
        )
        return extractor.extract_sections(grid, periods, owner, sections)

    def parse_gap(self, grid: Grid, kind: str, locator: StructureLocator, extractor: RecordExtractor) -> List[CanonicalRecord]:
        """Cuadros 2.x: gap and severity of poverty or indigence."""
        header_row, periods = self._header(locator, grid)
        owner = self.national_owner(header_row)
        section = SectionSpec(
            kind, "national", POVERTY_GAP_SEVERITY, lookahead=10,
            as_fields=True, field_prefix=f"{kind}_",
        )
        return extractor.extract_sections(grid, periods, owner, (section,))

    @staticmethod
    def _unit_column(grid: Grid, row: int, start: int, end: int, needle: str, default: int) -> int:
        for col in range(max(start, 1), end + 1):
            if needle in normalize_text(grid.text(row, col)):
                return col
        return default

    def parse_regional(self, grid: Grid, kind: str, locator: StructureLocator, extractor: RecordExtractor) -> List[CanonicalRecord]:
        """Cuadros 4.x: households and persons per region, two columns per semester."""
        header_row, periods = self._header(locator, grid)
        label_row = header_row + 1
        anchors: List[EntityAnchor] = []
        seen = set()
        for anchor in locator.locate_entities(grid, self.catalog.poverty_regions, start_row=label_row + 1):
            if anchor.code in seen:
                continue
            seen.add(anchor.code)
            anchors.append(anchor)
        if not anchors:
            raise locator.not_found(grid, "no se encontraron regiones")

        records = []
        for period in periods:
            col = period.column_index
            columns = {
                "households": self._unit_column(grid, label_row, col - 1, col + 3, "hogar", col),
                "persons": self._unit_column(grid, label_row, col + 1, col + 4, "persona", col + 2),
            }
            for anchor in anchors:
                fields: Dict[str, Optional[float]] = {}
                for unit, unit_col in columns.items():
                    value = extractor.value(grid, anchor.row_index, unit_col)
                    if value is not None:
                        fields[f"{kind}_rate_{unit}"] = value
                if not fields:
                    continue
                records.append(
                    CanonicalRecord(
                        date=period.canonical_date,
                        period_label=period.period_label,
                        entity_code=TOTAL_ENTITY,
                        entity_name=anchor.canonical_name,
                        category_type="regional",
                        region=anchor.canonical_name,
                        source_file=extractor.source_file,
                        fields=fields,
                    )
                )
        return records

    def parse(self, workbook: Dict[str, Grid], source_file: str = "") -> FetchOutput:
        if not workbook:
            raise StructureNotFoundError(source_file or self.indicator, "la planilla no tiene hojas")
        extractor = RecordExtractor(source_file=source_file)
        locator = self.locator()
        tables = [(NATIONAL_SHEET, lambda grid: self.parse_national(grid, locator, extractor))]
        tables += [
            (sheet, lambda grid, kind=kind: self.parse_gap(grid, kind, locator, extractor))
            for sheet, kind in GAP_SHEETS
        ]
        tables += [
            (sheet, lambda grid, kind=kind: self.parse_regional(grid, kind, locator, extractor))
            for sheet, kind in REGIONAL_SHEETS
        ]

        records: List[CanonicalRecord] = []
        warnings: List[str] = []
        parsed_tables = 0
        for sheet_name, parser in tables:
            grid = find_sheet(workbook, (sheet_name,))
            if grid is None:
                warnings.append(f"Hoja '{sheet_name}' ausente")
                logger.warning("[poverty] Hoja '{}' ausente en {}", sheet_name, source_file)
                continue
            try:
                table_records = parser(grid)
            except StructureNotFoundError as exc:
                warnings.append(f"Hoja '{sheet_name}': {exc.reason}")
                logger.warning("[poverty] {}", exc)
                continue
            logger.info("[poverty] Hoja '{}': {} registros", grid.name, len(table_records))
            records.extend(table_records)
            parsed_tables += 1

        if parsed_tables == 0:
            raise StructureNotFoundError(source_file or self.indicator, "ningun cuadro de pobreza reconocido")

        warnings.extend(self.warning_messages(locator))
        if extractor.malformed_cells:
            warnings.append(f"{extractor.malformed_cells} celdas no numericas omitidas")
        return FetchOutput(
            records=deduplicate(combine(records)),
            warnings=warnings,
            partial=parsed_tables < len(tables),
        )

    def to_rows(self, records: Sequence[CanonicalRecord]) -> List[Dict[str, Any]]:
        rows = []
        for record in records:
            row = {
                "date": record.date,
                "period_label": record.period_label,
                "region": record.region,
                "data_type": record.category_type,
                "source_file": record.source_file,
            }
            for name in FIELDS:
                row[name] = record.fields.get(name)
            rows.append(row)
        return rows
