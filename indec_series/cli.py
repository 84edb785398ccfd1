"""Command-line interface for INDEC series ingestion."""

import json
import sys
import re
from datetime import date
from pathlib import Path
from typing import Optional, Tuple

import click
from loguru import logger

from indec_series.config_loader import load_config, ensure_directories, get_seasonal_config
from indec_series.fetchers import FETCHERS
from indec_series.pipeline import HISTORY_INDICATORS, run_import, run_sync
from indec_series.seasonal import METHODS

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class DateParamType(click.ParamType):
    """Click param type to validate dates in YYYY-MM-DD format."""

    name = "date"

    def convert(self, value, param, ctx):
        if value is None or isinstance(value, date):
            return value

        if not DATE_PATTERN.match(value):
            self.fail("Formato inválido. Usá YYYY-MM-DD (ejemplo válido: 2024-05-15).", param, ctx)
        try:
            return date.fromisoformat(value)
        except ValueError:
            self.fail(f"Fecha inexistente: {value}", param, ctx)


DATE_TYPE = DateParamType()


def setup_logging(config: dict):
    """Setup logging configuration."""
    log_config = config.get("logging", {})
    level = log_config.get("level", "INFO")
    log_file = log_config.get("file", "data/logs/indec.log")

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}",
    )
    logger.add(
        log_file,
        level=level,
        rotation=log_config.get("rotation", "1 week"),
        retention=log_config.get("retention", "1 month"),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}",
    )


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """INDEC series - ingestion of EMAE, IPC, labor market and poverty spreadsheets."""
    ctx.ensure_object(dict)

    try:
        cfg = load_config(config)
        ctx.obj["config"] = cfg
        ctx.obj["config_path"] = config

        ensure_directories(cfg)
        setup_logging(cfg)

        if verbose:
            logger.level("DEBUG")

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command("init-db")
@click.pass_context
def init_db_command(ctx):
    """Create the database tables."""
    config = ctx.obj["config"]

    try:
        from indec_series.models import get_engine, init_db

        engine = get_engine(config)
        init_db(engine)

        click.echo("[OK] Directories created")
        click.echo("[OK] Database initialized")
        click.echo("\nNext step:")
        click.echo("  Run: python -m indec_series.cli sync")

    except Exception as e:
        logger.exception("Initialization failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--indicator", "-i",
    "indicators",
    type=click.Choice(sorted(FETCHERS), case_sensitive=False),
    multiple=True,
    help="Indicator to ingest (repeatable). Default: all",
)
@click.option("--date", "reference_date", type=DATE_TYPE, default=None, help="Reference date for candidate URLs (YYYY-MM-DD)")
@click.pass_context
def sync(ctx, indicators: Tuple[str, ...], reference_date: Optional[date]):
    """Download, parse and upsert the latest INDEC publications."""
    try:
        result = run_sync(
            config_path=ctx.obj.get("config_path"),
            indicators=[indicator.lower() for indicator in indicators] or None,
            today=reference_date,
        )

        click.echo(f"\n{'='*70}")
        click.echo("INDEC SYNC")
        click.echo("=" * 70)
        click.echo(f"{'Indicator':<14} {'Status':<10} {'Records':<9} {'Upserted':<9} Source")
        click.echo("-" * 70)
        for item in result["indicators"]:
            click.echo(
                f"{item['indicator']:<14} {item['status']:<10} {item['fetched_records']:<9} "
                f"{item['upserted_rows']:<9} {item['source_url'] or '-'}"
            )
            for warning in item["warnings"]:
                click.echo(f"    ! {warning}")
            if item["error"]:
                click.echo(f"    x {item['error'].splitlines()[0]}")
        click.echo("-" * 70)
        click.echo(f"Status: {result['status']}")
        click.echo("=" * 70)

        if result["status"] == "failed":
            sys.exit(2)

    except Exception as e:
        logger.exception("Sync failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command("import-csv")
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--indicator", "-i",
    type=click.Choice(HISTORY_INDICATORS, case_sensitive=False),
    default="emae",
    show_default=True,
    help="Indicator the CSV belongs to",
)
@click.pass_context
def import_csv(ctx, csv_path: str, indicator: str):
    """Backfill historical values from a CSV export (date, original_value, ...)."""
    try:
        result = run_import(config_path=ctx.obj.get("config_path"), indicator=indicator.lower(), path=csv_path)

        click.echo(f"\n{'='*70}")
        click.echo(f"HISTORICAL IMPORT: {result['indicator']}")
        click.echo("=" * 70)
        click.echo(f"File:     {csv_path}")
        click.echo(f"Status:   {result['status']}")
        click.echo(f"Records:  {result['fetched_records']}")
        click.echo(f"Upserted: {result['upserted_rows']}")
        for warning in result["warnings"]:
            click.echo(f"    ! {warning}")
        if result["error"]:
            click.echo(f"    x {result['error'].splitlines()[0]}")
        click.echo("=" * 70)

        if result["status"] == "error":
            sys.exit(2)

    except Exception as e:
        logger.exception("Import failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--method", "-m", type=click.Choice(METHODS), default=None, help="Adjustment method (default from config)")
@click.option("--window", "-w", "window_size", type=int, default=None, help="Moving-average window")
@click.option("--limit", "-n", default=24, help="Show the last N points")
@click.pass_context
def adjust(ctx, method: Optional[str], window_size: Optional[int], limit: int):
    """Seasonally adjust the stored EMAE original series."""
    config = ctx.obj["config"]
    seasonal_cfg = get_seasonal_config(config)

    try:
        from indec_series.models import EMAERecord, get_engine, get_session_factory, init_db
        from indec_series.seasonal import adjust as adjust_series

        engine = get_engine(config)
        init_db(engine)
        session = get_session_factory(engine)()
        try:
            rows = session.query(EMAERecord.date, EMAERecord.original_value).order_by(EMAERecord.date).all()
        finally:
            session.close()

        if not rows:
            click.echo("No EMAE rows stored. Run: python -m indec_series.cli sync -i emae")
            return

        points = adjust_series(
            [(row.date, row.original_value) for row in rows],
            method=method or str(seasonal_cfg.get("method", "moving-average")),
            window_size=window_size or int(seasonal_cfg.get("window_size", 12)),
            lam=float(seasonal_cfg.get("hp_lambda", 1600)),
            iterations=int(seasonal_cfg.get("hp_iterations", 100)),
        )

        click.echo(f"\n{'='*60}")
        click.echo(f"EMAE ADJUSTED ({method or seasonal_cfg.get('method', 'moving-average')})")
        click.echo("=" * 60)
        click.echo(f"{'Date':<12} {'Original':>12} {'Adjusted':>12} {'Trend':>12}")
        click.echo("-" * 60)
        for point in points[-limit:]:
            trend = "-" if point.cycle_trend_value is None else f"{point.cycle_trend_value:.1f}"
            click.echo(f"{point.date:<12} {point.original_value:>12.1f} {point.value:>12.1f} {trend:>12}")
        click.echo("=" * 60)

    except Exception as e:
        logger.exception("Adjustment failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("table", type=click.Choice(["emae", "ipc", "labor_market", "poverty"]))
@click.option("--region", "-r", default=None, help="Region filter")
@click.option("--limit", "-n", default=20, help="Rows to show")
@click.pass_context
def show(ctx, table: str, region: Optional[str], limit: int):
    """Show the latest stored rows of a table."""
    config = ctx.obj["config"]

    try:
        from indec_series.models import get_engine, get_session_factory, init_db
        from indec_series.repositories import SeriesRepository

        engine = get_engine(config)
        init_db(engine)
        session = get_session_factory(engine)()
        try:
            repo = SeriesRepository(session)
            readers = {
                "emae": lambda: repo.get_emae(page=1, page_size=limit, order="desc"),
                "ipc": lambda: repo.get_ipc(region=region, page=1, page_size=limit, order="desc"),
                "labor_market": lambda: repo.get_labor_market(region=region, page=1, page_size=limit, order="desc"),
                "poverty": lambda: repo.get_poverty(region=region, page=1, page_size=limit, order="desc"),
            }
            rows, pagination = readers[table]()
        finally:
            session.close()

        if not rows:
            click.echo(f"No rows stored in {table}")
            return

        columns = [key for key in rows[0] if key not in {"id", "source_file", "created_at", "updated_at"}]
        click.echo(f"\n{'='*70}")
        click.echo(f"{table.upper()} ({len(rows)} of {pagination.total})")
        click.echo("=" * 70)
        click.echo(" | ".join(columns))
        click.echo("-" * 70)
        for row in rows:
            click.echo(" | ".join("-" if row[key] is None else str(row[key]) for key in columns))
        click.echo("=" * 70)

    except Exception as e:
        logger.exception("Show failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--limit", "-n", default=20, help="Runs to show")
@click.pass_context
def status(ctx, limit: int):
    """Show the most recent ingestion runs."""
    config = ctx.obj["config"]

    try:
        from indec_series.models import IngestionRun, get_engine, get_session_factory, init_db

        engine = get_engine(config)
        init_db(engine)
        session = get_session_factory(engine)()
        try:
            runs = session.query(IngestionRun).order_by(IngestionRun.started_at.desc()).limit(limit).all()
        finally:
            session.close()

        if not runs:
            click.echo("No ingestion runs recorded")
            return

        click.echo(f"\n{'='*80}")
        click.echo("RECENT INGESTION RUNS")
        click.echo("=" * 80)
        click.echo(f"{'Date':<20} {'Indicator':<14} {'Status':<10} {'Records':<9} {'Upserted':<9}")
        click.echo("-" * 80)
        for run in runs:
            date_str = run.started_at.strftime("%Y-%m-%d %H:%M") if run.started_at else "N/A"
            click.echo(
                f"{date_str:<20} {run.indicator:<14} {run.status:<10} "
                f"{run.fetched_records:<9} {run.upserted_rows:<9}"
            )
            if run.error_message:
                click.echo(f"    x {run.error_message.splitlines()[0]}")
            for warning in json.loads(run.warnings_json or "[]"):
                click.echo(f"    ! {warning}")

    except Exception as e:
        logger.exception("Status check failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
