"""Consumer price index (IPC) by region and component."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Sequence, Tuple

from loguru import logger

from indec_series.catalog import IPC_BYS_HEADER, IPC_CATEGORIAS_HEADER, IPC_GENERAL
from indec_series.cells import Grid
from indec_series.combiner import deduplicate
from indec_series.extractor import RecordExtractor, SectionSpec
from indec_series.fetchers.base import FetchOutput, IndicatorFetcher
from indec_series.locator import describe_layout
from indec_series.records import CanonicalRecord
from indec_series.sources import monthly_candidate_urls

DEFAULT_URL_TEMPLATE = "https://www.indec.gob.ar/ftp/cuadros/economia/sh_ipc_{mm}_{yy}.xls"


class IPCFetcher(IndicatorFetcher):
    """Index levels from the national coverage sheet of ``sh_ipc_MM_YY.xls``."""

    indicator = "ipc"
    table_name = "ipc"
    conflict_key = ("date", "component_code", "region")
    default_sheet_names = ("Índices IPC Cobertura Nacional", "indices")

    def candidate_urls(self, today: date) -> List[str]:
        return monthly_candidate_urls(
            str(self.settings.get("url_template") or DEFAULT_URL_TEMPLATE),
            today,
            int(self.settings.get("lookback_months", 4)),
        )

    def sections(self) -> Tuple[SectionSpec, ...]:
        catalog = self.catalog
        return (
            SectionSpec("nivel general", "GENERAL", IPC_GENERAL, lookahead=10, required=True),
            SectionSpec(
                "rubros",
                "RUBRO",
                catalog.ipc_rubros,
                lookahead=15,
                code_prefix="RUBRO_",
                stop=IPC_CATEGORIAS_HEADER,
            ),
            SectionSpec(
                "categorias",
                "CATEGORIA",
                catalog.ipc_categorias,
                lookahead=7,
                code_prefix="CAT_",
                header=IPC_CATEGORIAS_HEADER,
                header_lookahead=15,
                stop=IPC_BYS_HEADER,
            ),
            SectionSpec(
                "bienes y servicios",
                "BYS",
                catalog.ipc_bys,
                lookahead=3,
                header=IPC_BYS_HEADER,
                header_lookahead=10,
            ),
        )

    def parse(self, workbook: Dict[str, Grid], source_file: str = "") -> FetchOutput:
        grid = self.select_sheet(workbook, source_file)
        locator = self.locator()
        layout = locator.locate(grid, self.catalog.ipc_regions, header_at_first_entity=True)
        logger.info("[ipc] Hoja '{}': {}", grid.name, describe_layout(layout))

        extractor = RecordExtractor(source_file=source_file)
        sections = self.sections()
        records: List[CanonicalRecord] = []
        anchors = layout.anchors
        for index, anchor in enumerate(anchors):
            end_row = anchors[index + 1].row_index if index + 1 < len(anchors) else None
            region_records = extractor.extract_sections(grid, layout.periods, anchor, sections, end_row=end_row)
            if not region_records:
                logger.warning("[ipc] Region {} sin componentes reconocidos", anchor.canonical_name)
            records.extend(region_records)

        warnings = self.warning_messages(locator)
        if extractor.malformed_cells:
            warnings.append(f"{extractor.malformed_cells} celdas no numericas omitidas")
        return FetchOutput(records=deduplicate(records), warnings=warnings)

    def to_rows(self, records: Sequence[CanonicalRecord]) -> List[Dict[str, Any]]:
        return [
            {
                "date": record.date,
                "component": record.entity_name,
                "component_code": record.entity_code,
                "component_type": record.category_type,
                "region": record.region,
                "index_value": record.value,
                "source_file": record.source_file,
            }
            for record in records
            if record.value is not None
        ]
