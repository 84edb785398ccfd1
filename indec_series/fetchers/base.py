"""Common interface of the per-indicator fetchers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from indec_series.catalog import Catalog
from indec_series.cells import Grid
from indec_series.config_loader import get_indicator_config
from indec_series.errors import StructureNotFoundError
from indec_series.locator import StructureLocator
from indec_series.records import CanonicalRecord
from indec_series.sources import find_sheet


@dataclass
class FetchOutput:
    """Records parsed from one downloaded workbook."""

    records: List[CanonicalRecord]
    warnings: List[str] = field(default_factory=list)
    partial: bool = False


class IndicatorFetcher:
    """Base fetcher: candidate URLs, workbook parsing and row mapping."""

    indicator = ""
    table_name = ""
    conflict_key: Tuple[str, ...] = ()
    default_sheet_names: Tuple[str, ...] = ()
    supports_history = False

    def __init__(self, config: Dict[str, Any], catalog: Optional[Catalog] = None, today: Optional[date] = None):
        self.config = config
        self.settings = get_indicator_config(config, self.indicator)
        self.catalog = catalog or Catalog.from_config(config)
        self.today = today

    def candidate_urls(self, today: date) -> List[str]:
        raise NotImplementedError

    def parse(self, workbook: Dict[str, Grid], source_file: str = "") -> FetchOutput:
        raise NotImplementedError

    def parse_history(self, frame, source_file: str = "") -> FetchOutput:
        """Records from a historical CSV export; only where ``supports_history``."""
        raise NotImplementedError

    def to_rows(self, records: Sequence[CanonicalRecord]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def locator(self) -> StructureLocator:
        return StructureLocator(
            header_scan_rows=int(self.settings.get("header_scan_rows", 20)),
            today=self.today,
        )

    def select_sheet(self, workbook: Dict[str, Grid], source_file: str = "") -> Grid:
        """Configured sheet (by name) or the first one of the workbook."""
        if not workbook:
            raise StructureNotFoundError(source_file or self.indicator, "la planilla no tiene hojas")
        names = self.settings.get("sheet_names") or self.default_sheet_names
        grid = find_sheet(workbook, names) if names else None
        if grid is None:
            grid = next(iter(workbook.values()))
        return grid

    @staticmethod
    def warning_messages(locator: StructureLocator) -> List[str]:
        return [str(warning) for warning in locator.warnings]
