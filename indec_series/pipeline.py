"""Run boundary: download, locate, extract, combine and upsert one indicator."""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from indec_series.config_loader import load_config
from indec_series.dates import today_utc
from indec_series.errors import SourceUnavailableError, StructureNotFoundError
from indec_series.fetchers import FETCHERS, IndicatorFetcher
from indec_series.models import IngestionRun, get_engine, get_session_factory, init_db, now_utc
from indec_series.sources import Downloader, read_csv_history, read_workbook
from indec_series.store import TabularStore

INDICATORS = tuple(FETCHERS)
HISTORY_INDICATORS = tuple(name for name, fetcher in FETCHERS.items() if fetcher.supports_history)


@dataclass
class IndicatorRunResult:
    """Outcome of a single indicator ingestion."""

    indicator: str
    status: str
    source_url: Optional[str] = None
    raw_snapshot_path: Optional[str] = None
    fetched_records: int = 0
    upserted_rows: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("started_at", "finished_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


def build_fetcher(indicator: str, config: Dict[str, Any], today: Optional[date] = None) -> IndicatorFetcher:
    fetcher_cls = FETCHERS.get(indicator)
    if fetcher_cls is None:
        raise ValueError(f"Indicador desconocido: {indicator}. Opciones: {', '.join(INDICATORS)}")
    return fetcher_cls(config, today=today)


def _record_run(store: TabularStore, result: IndicatorRunResult):
    run = IngestionRun(
        run_uuid=str(uuid.uuid4()),
        indicator=result.indicator,
        status=result.status,
        source_url=result.source_url,
        raw_snapshot_path=result.raw_snapshot_path,
        fetched_records=result.fetched_records,
        upserted_rows=result.upserted_rows,
        warnings_json=json.dumps(result.warnings, ensure_ascii=False),
        error_message=result.error,
        started_at=result.started_at,
        completed_at=result.finished_at,
    )
    store.session.add(run)
    store.session.commit()


def _store_output(fetcher: IndicatorFetcher, output, store: TabularStore, result: IndicatorRunResult):
    result.warnings.extend(output.warnings)
    result.fetched_records = len(output.records)
    rows = fetcher.to_rows(output.records)
    result.upserted_rows = store.upsert(fetcher.table_name, rows, fetcher.conflict_key)
    result.status = "partial" if output.partial or result.warnings else "success"


def _finish_run(store: TabularStore, result: IndicatorRunResult):
    _record_run(store, result)
    logger.info(
        "[{}] {}: {} registros, {} filas upsert, {} advertencias",
        result.indicator,
        result.status,
        result.fetched_records,
        result.upserted_rows,
        len(result.warnings),
    )


def run_indicator(
    indicator: str,
    config: Dict[str, Any],
    store: TabularStore,
    today: Optional[date] = None,
    fetcher: Optional[IndicatorFetcher] = None,
) -> IndicatorRunResult:
    """Ingest one indicator end to end and record the run.

    Unavailable sources and unrecognisable sheets end as ``error`` results;
    anything else propagates.
    """
    today = today or today_utc()
    fetcher = fetcher or build_fetcher(indicator, config, today=today)
    result = IndicatorRunResult(indicator=indicator, status="running", started_at=now_utc())
    logger.info("[{}] Inicio de ingesta (fecha de referencia {})", indicator, today.isoformat())

    try:
        urls = fetcher.candidate_urls(today)
        download = Downloader.from_config(config).fetch_first(indicator, urls)
        result.source_url = download.url
        result.raw_snapshot_path = download.raw_path
        result.warnings.extend(str(attempt) for attempt in download.attempts)

        workbook = read_workbook(download.content, source_name=download.filename)
        output = fetcher.parse(workbook, source_file=download.url)
        _store_output(fetcher, output, store, result)
    except (SourceUnavailableError, StructureNotFoundError) as exc:
        store.session.rollback()
        result.status = "error"
        result.error = str(exc)
        logger.error("[{}] Ingesta fallida: {}", indicator, exc)
    finally:
        result.finished_at = now_utc()

    _finish_run(store, result)
    return result


def import_history(
    indicator: str,
    path: str,
    config: Dict[str, Any],
    store: TabularStore,
    fetcher: Optional[IndicatorFetcher] = None,
) -> IndicatorRunResult:
    """Backfill one indicator from a historical CSV export and record the run."""
    fetcher = fetcher or build_fetcher(indicator, config)
    if not fetcher.supports_history:
        raise ValueError(
            f"Indicador no soportado para importacion: {indicator}. Opciones: {', '.join(HISTORY_INDICATORS)}"
        )
    result = IndicatorRunResult(indicator=indicator, status="running", source_url=str(path), started_at=now_utc())
    logger.info("[{}] Importacion historica desde {}", indicator, path)

    try:
        frame = read_csv_history(path)
        output = fetcher.parse_history(frame, source_file=str(path))
        _store_output(fetcher, output, store, result)
    except StructureNotFoundError as exc:
        store.session.rollback()
        result.status = "error"
        result.error = str(exc)
        logger.error("[{}] Importacion fallida: {}", indicator, exc)
    finally:
        result.finished_at = now_utc()

    _finish_run(store, result)
    return result


def _overall_status(results: Sequence[IndicatorRunResult]) -> str:
    statuses = {result.status for result in results}
    if statuses == {"success"}:
        return "completed"
    if statuses == {"error"}:
        return "failed"
    return "partial"


def run_sync(
    config_path: Optional[str] = None,
    indicators: Optional[Sequence[str]] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """CLI helper: ingest every requested indicator independently."""
    config = load_config(config_path)
    selected = list(indicators or INDICATORS)
    for indicator in selected:
        if indicator not in FETCHERS:
            raise ValueError(f"Indicador desconocido: {indicator}. Opciones: {', '.join(INDICATORS)}")

    engine = get_engine(config)
    init_db(engine)
    session_factory = get_session_factory(engine)
    session = session_factory()
    try:
        store = TabularStore(session)
        results = [run_indicator(indicator, config, store, today=today) for indicator in selected]
        return {
            "status": _overall_status(results),
            "indicators": [result.as_dict() for result in results],
            "fetched_records": sum(result.fetched_records for result in results),
            "upserted_rows": sum(result.upserted_rows for result in results),
        }
    finally:
        session.close()


def run_import(config_path: Optional[str], indicator: str, path: str) -> Dict[str, Any]:
    """CLI helper: historical CSV backfill of one indicator."""
    config = load_config(config_path)
    engine = get_engine(config)
    init_db(engine)
    session = get_session_factory(engine)()
    try:
        return import_history(indicator, path, config, TabularStore(session)).as_dict()
    finally:
        session.close()
