"""Candidate URLs, downloads and workbook parsing for INDEC publications."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import urlsplit

import pandas as pd
import requests
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from indec_series.cells import Grid
from indec_series.config_loader import get_download_config, get_storage_config
from indec_series.dates import shift_months
from indec_series.errors import SourceUnavailableError, StructureNotFoundError, TransientFetchError
from indec_series.matching import normalize_text

DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)
TRANSIENT_EXCEPTIONS = (requests.ConnectionError, requests.Timeout)

# Poverty reports come out in March (second semester of the previous year)
# and September (first semester of the current year).
POVERTY_PUBLICATION_MONTHS = (3, 9)


def _format(template: str, year: int, month: Optional[int] = None, quarter: Optional[int] = None) -> str:
    return template.format(
        yyyy=f"{year:04d}",
        yy=f"{year % 100:02d}",
        mm=f"{month or 0:02d}",
        q=quarter or "",
        qq=f"{quarter or 0:02d}",
    )


def monthly_candidate_urls(template: str, today: date, lookback: int = 4) -> List[str]:
    """Current month first, then ``lookback - 1`` earlier months."""
    urls = []
    for delta in range(max(lookback, 1)):
        year, month = shift_months(today.year, today.month, -delta)
        urls.append(_format(template, year, month=month))
    return urls


def quarterly_candidate_urls(templates: Sequence[str], today: date, lookback: int = 4) -> List[str]:
    """Every template for the current quarter, then for earlier quarters."""
    urls = []
    index = today.year * 4 + (today.month - 1) // 3
    for delta in range(max(lookback, 1)):
        year, quarter = divmod(index - delta, 4)
        for template in templates:
            url = _format(template, year, quarter=quarter + 1)
            if url not in urls:
                urls.append(url)
    return urls


def poverty_candidate_urls(template: str, today: date, lookback: int = 8) -> List[str]:
    """Latest semi-annual report not after ``today``, then ``lookback`` earlier ones."""
    publications = []
    year = today.year
    months = [m for m in POVERTY_PUBLICATION_MONTHS if m <= today.month]
    while len(publications) < lookback + 1:
        if not months:
            year -= 1
            months = list(POVERTY_PUBLICATION_MONTHS)
        publications.append((year, months.pop()))
    return [_format(template, y, month=m) for y, m in publications]


def fixed_candidate_urls(urls: Sequence[str]) -> List[str]:
    return [str(url) for url in urls if url]


@dataclass
class DownloadResult:
    url: str
    content: bytes
    attempts: List[TransientFetchError] = field(default_factory=list)
    raw_path: Optional[str] = None

    @property
    def filename(self) -> str:
        return Path(urlsplit(self.url).path).name or self.url


class Downloader:
    """Fetch the first available document among ordered candidate URLs."""

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        retry_attempts: int = 2,
        user_agent: str = DEFAULT_USER_AGENT,
        retry_wait_seconds: float = 1.0,
        raw_dir: Optional[str] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = max(int(retry_attempts), 1)
        self.user_agent = user_agent
        self.retry_wait_seconds = retry_wait_seconds
        self.raw_dir = raw_dir

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Downloader":
        download_cfg = get_download_config(config)
        storage_cfg = get_storage_config(config)
        return cls(
            timeout_seconds=float(download_cfg.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            retry_attempts=int(download_cfg.get("retry_attempts", 2)),
            user_agent=str(download_cfg.get("user_agent") or DEFAULT_USER_AGENT),
            retry_wait_seconds=float(download_cfg.get("retry_wait_seconds", 1.0)),
            raw_dir=storage_cfg.get("raw_dir") if download_cfg.get("persist_raw", False) else None,
        )

    def _get(self, url: str) -> bytes:
        @retry(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, min=0, max=10),
            retry=retry_if_exception_type(TRANSIENT_EXCEPTIONS),
            reraise=True,
        )
        def _request() -> bytes:
            response = requests.get(
                url,
                timeout=self.timeout_seconds,
                headers={"User-Agent": self.user_agent},
            )
            response.raise_for_status()
            return response.content

        return _request()

    def fetch(self, url: str) -> bytes:
        """Download one URL; any failure becomes a TransientFetchError."""
        try:
            content = self._get(url)
        except requests.RequestException as exc:
            raise TransientFetchError(url, str(exc)) from exc
        if not content:
            raise TransientFetchError(url, "respuesta vacia")
        if content.lstrip()[:15].lower().startswith((b"<!doctype html", b"<html")):
            raise TransientFetchError(url, "se recibio HTML en lugar de una planilla")
        return content

    def fetch_first(self, indicator: str, urls: Sequence[str]) -> DownloadResult:
        attempts: List[TransientFetchError] = []
        for url in urls:
            try:
                content = self.fetch(url)
            except TransientFetchError as exc:
                logger.warning("[{}] Descarga fallida {}: {}", indicator, url, exc.reason)
                attempts.append(exc)
                continue
            logger.info("[{}] Descargado {} ({} bytes)", indicator, url, len(content))
            result = DownloadResult(url=url, content=content, attempts=attempts)
            if self.raw_dir:
                result.raw_path = self._persist_raw_blob(result, indicator)
            return result
        raise SourceUnavailableError(indicator, attempts)

    def _persist_raw_blob(self, result: DownloadResult, indicator: str) -> str:
        now = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        out_dir = Path(self.raw_dir) / indicator
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / f"{now}_{result.filename}"
        path.write_bytes(result.content)
        return str(path)


def download_first_available(
    indicator: str,
    urls: Sequence[str],
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    retry_attempts: int = 2,
    user_agent: str = DEFAULT_USER_AGENT,
) -> DownloadResult:
    """Try ``urls`` in order; raises SourceUnavailableError when all fail."""
    downloader = Downloader(
        timeout_seconds=timeout_seconds,
        retry_attempts=retry_attempts,
        user_agent=user_agent,
    )
    return downloader.fetch_first(indicator, urls)


def read_workbook(blob: bytes, source_name: str = "workbook") -> Dict[str, Grid]:
    """Parse an .xls/.xlsx binary into grids keyed by sheet name."""
    try:
        xls = pd.ExcelFile(io.BytesIO(blob))
        sheets = {}
        for sheet_name in xls.sheet_names:
            frame = pd.read_excel(xls, sheet_name=sheet_name, header=None)
            sheets[str(sheet_name)] = Grid.from_dataframe(str(sheet_name), frame)
    except Exception as exc:
        raise StructureNotFoundError(source_name, f"no se pudo leer la planilla: {exc}") from exc
    return sheets


def read_csv_history(path: Union[str, Path], sep: str = ",", source_name: Optional[str] = None) -> pd.DataFrame:
    """Historical series exported as CSV, as text columns with normalized names.

    Values stay as text so ``1.234,5``-style numbers go through the same
    coercion as spreadsheet cells.
    """
    name = source_name or str(path)
    try:
        frame = pd.read_csv(path, sep=sep, dtype=str, keep_default_na=False)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise StructureNotFoundError(name, f"no se pudo leer el CSV: {exc}") from exc
    frame.columns = [normalize_text(column).replace(" ", "_") for column in frame.columns]
    logger.info("CSV {}: {} filas, columnas {}", name, len(frame), ", ".join(frame.columns))
    return frame


def find_sheet(workbook: Dict[str, Grid], candidates: Sequence[str]) -> Optional[Grid]:
    """Sheet whose normalized name equals, then contains, a candidate."""
    normalized = {normalize_text(name): name for name in workbook}
    for candidate in candidates:
        needle = normalize_text(candidate)
        if needle in normalized:
            return workbook[normalized[needle]]
    for candidate in candidates:
        needle = normalize_text(candidate)
        for key, original in normalized.items():
            if needle and needle in key:
                return workbook[original]
    return None
