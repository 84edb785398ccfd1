"""Labor market rates from the household survey (EPH) tables."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from indec_series.catalog import LABOR_AGE_GROUPS, LABOR_GENDERS
from indec_series.cells import Grid
from indec_series.combiner import combine, deduplicate
from indec_series.extractor import RecordExtractor
from indec_series.fetchers.base import FetchOutput, IndicatorFetcher
from indec_series.locator import describe_layout
from indec_series.matching import generate_code, match_name
from indec_series.records import CanonicalRecord, EntityAnchor
from indec_series.sources import quarterly_candidate_urls

DEFAULT_URL_TEMPLATES = (
    "https://www.indec.gob.ar/ftp/cuadros/menusuperior/eph/cuadros_tasas_indicadores_eph_{qq}_{yy}.xls",
    "https://www.indec.gob.ar/ftp/cuadros/sociedad/eph/cuadros_tasas_indicadores_eph_{qq}_{yy}.xls",
    "https://www.indec.gob.ar/ftp/cuadros/menusuperior/eph/EPH_usu_{q}T{yyyy}.xlsx",
)
TOTAL = "Total"
TOTAL_SEGMENT = "TOTAL"
NATIONAL_REGION_CODE = "TOTAL_31"
MAX_BLOCK_ROWS = 15
FIELDS = (
    "activity_rate",
    "employment_rate",
    "unemployment_rate",
    "total_population",
    "economically_active_population",
    "employed_population",
    "unemployed_population",
    "inactive_population",
)


def parse_segment(label: str) -> Tuple[str, str]:
    """``(age_group, gender)`` named in a block label, ``Total`` when absent."""
    age = match_name(label, LABOR_AGE_GROUPS)
    gender = match_name(label, LABOR_GENDERS)
    return (age.name if age else TOTAL, gender.name if gender else TOTAL)


def segment_code(age_group: str, gender: str) -> str:
    parts = [part for part in (gender, age_group) if part != TOTAL]
    if not parts:
        return TOTAL_SEGMENT
    return generate_code(" ".join(parts))


class LaborMarketFetcher(IndicatorFetcher):
    """Activity, employment and unemployment by region and demographic segment."""

    indicator = "labor_market"
    table_name = "labor_market"
    conflict_key = ("date", "region", "age_group", "gender")
    default_sheet_names = ("Cuadro 1", "Tasas")

    def candidate_urls(self, today: date) -> List[str]:
        return quarterly_candidate_urls(
            self.settings.get("url_templates") or DEFAULT_URL_TEMPLATES,
            today,
            int(self.settings.get("lookback_quarters", 4)),
        )

    def segment_anchor(self, anchor: EntityAnchor) -> Tuple[EntityAnchor, str]:
        """Re-key a region anchor by its demographic segment; returns the category."""
        age_group, gender = parse_segment(anchor.raw_label)
        code = segment_code(age_group, gender)
        if code != TOTAL_SEGMENT:
            category = "demographic_segment"
        elif anchor.code == NATIONAL_REGION_CODE:
            category = "national"
        else:
            category = "regional"
        segment = EntityAnchor(
            row_index=anchor.row_index,
            canonical_name=f"{anchor.canonical_name} {gender} {age_group}".strip(),
            code=code,
            category=category,
            region=anchor.canonical_name,
            labels={"age_group": age_group, "gender": gender},
            raw_label=anchor.raw_label,
        )
        return segment, category

    def indicator_offsets(self, grid: Grid, anchor: EntityAnchor, end_row: int) -> Dict[str, int]:
        """Row offset (from the anchor) of every indicator row in the block."""
        offsets: Dict[str, int] = {}
        for row in range(anchor.row_index + 1, end_row):
            pattern = match_name(grid.text(row, 0), self.catalog.labor_indicators)
            if pattern is not None and pattern.code not in offsets:
                offsets[pattern.code] = row - anchor.row_index
        if not offsets:
            offsets[str(self.settings.get("default_field", "unemployment_rate"))] = 0
        return offsets

    def parse(self, workbook: Dict[str, Grid], source_file: str = "") -> FetchOutput:
        grid = self.select_sheet(workbook, source_file)
        locator = self.locator()
        layout = locator.locate(grid, self.catalog.labor_regions)
        logger.info("[labor_market] Hoja '{}': {}", grid.name, describe_layout(layout))

        extractor = RecordExtractor(source_file=source_file)
        anchors = layout.anchors
        records: List[CanonicalRecord] = []
        for index, anchor in enumerate(anchors):
            next_row: Optional[int] = anchors[index + 1].row_index if index + 1 < len(anchors) else None
            end_row = min(
                next_row if next_row is not None else grid.n_rows,
                anchor.row_index + 1 + MAX_BLOCK_ROWS,
            )
            segment, category = self.segment_anchor(anchor)
            offsets = self.indicator_offsets(grid, anchor, end_row)
            records.extend(
                extractor.extract(
                    grid,
                    layout.periods,
                    [segment],
                    value_row_offsets=offsets,
                    category_type=category,
                )
            )

        records = deduplicate(combine(records))
        warnings = self.warning_messages(locator)
        if extractor.malformed_cells:
            warnings.append(f"{extractor.malformed_cells} celdas no numericas omitidas")
        return FetchOutput(records=records, warnings=warnings)

    def to_rows(self, records: Sequence[CanonicalRecord]) -> List[Dict[str, Any]]:
        rows = []
        for record in records:
            row = {
                "date": record.date,
                "period_label": record.period_label,
                "region": record.region,
                "age_group": record.labels.get("age_group") or TOTAL,
                "gender": record.labels.get("gender") or TOTAL,
                "data_type": record.category_type,
                "source_file": record.source_file,
            }
            for name in FIELDS:
                row[name] = record.fields.get(name)
            rows.append(row)
        return rows
