#!/usr/bin/env python3
"""Validate stored series and ingestion runs for scheduled operations."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from sqlalchemy import func

# Allow execution via `python scripts/check_db_state.py` from repo root.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from indec_series.config_loader import load_config
from indec_series.models import TABLE_MODELS, IngestionRun, get_engine, get_session_factory, init_db


def _to_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _age_hours(dt: datetime | None) -> float | None:
    if dt is None:
        return None
    return round(max(0.0, (datetime.now(timezone.utc) - dt).total_seconds()) / 3600.0, 3)


def _compute_state(config_path: Optional[str], backend: Optional[str], ensure_schema: bool) -> Dict[str, object]:
    config = load_config(config_path)
    engine = get_engine(config, backend=backend)
    if ensure_schema:
        init_db(engine)
    session = get_session_factory(engine)()
    try:
        counts = {
            table: int(session.query(func.count(model.id)).scalar() or 0)
            for table, model in TABLE_MODELS.items()
        }
        latest_dates = {
            table: session.query(func.max(model.date)).scalar()
            for table, model in TABLE_MODELS.items()
        }
        runs_count = int(session.query(func.count(IngestionRun.id)).scalar() or 0)

        latest_success = _to_utc(
            session.query(func.max(IngestionRun.completed_at))
            .filter(IngestionRun.status.in_(("success", "partial")))
            .scalar()
        )
        return {
            "row_counts": counts,
            "latest_period": latest_dates,
            "ingestion_runs_count": runs_count,
            "latest_success_at": latest_success.isoformat() if latest_success is not None else None,
            "latest_success_age_hours": _age_hours(latest_success),
            "is_empty": runs_count == 0 and not any(counts.values()),
        }
    finally:
        session.close()
        engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Check stored INDEC series and ingestion runs.")
    parser.add_argument("--config", default=None, help="Optional config path")
    parser.add_argument(
        "--backend",
        default=None,
        choices=["sqlite", "postgresql"],
        help="Override backend for this check",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Ensure schema exists before counting rows",
    )
    parser.add_argument(
        "--require-has-data",
        action="append",
        default=[],
        choices=sorted(TABLE_MODELS),
        metavar="TABLE",
        help="Fail if TABLE has no rows (repeatable)",
    )
    parser.add_argument(
        "--require-fresh-max-age-hours",
        type=int,
        default=None,
        help="Fail if the latest successful or partial run is older than this number of hours.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="as_json",
        help="Print state as JSON",
    )
    args = parser.parse_args()

    state = _compute_state(
        config_path=args.config,
        backend=args.backend,
        ensure_schema=args.init_db,
    )

    if args.as_json:
        print(json.dumps(state, ensure_ascii=False, indent=2))
    else:
        for table, count in state["row_counts"].items():
            latest = state["latest_period"].get(table) or "N/D"
            print(f"{table}={count} (ultimo periodo {latest})")
        print(f"ingestion_runs={state['ingestion_runs_count']}")
        print(f"latest_success_at={state['latest_success_at'] or 'N/D'}")
        print(f"latest_success_age_hours={state.get('latest_success_age_hours', 'N/D')}")

    for table in args.require_has_data:
        if int(state["row_counts"].get(table) or 0) <= 0:
            print(f"ERROR: No rows found in {table}.", file=sys.stderr)
            return 1

    if args.require_fresh_max_age_hours is not None:
        max_age_hours = max(0, int(args.require_fresh_max_age_hours))
        latest_age = state.get("latest_success_age_hours")
        if latest_age is None:
            print("ERROR: Freshness gate failed: no successful ingestion run recorded.", file=sys.stderr)
            return 1
        if float(latest_age) > float(max_age_hours):
            print(
                "ERROR: Freshness gate failed: "
                f"latest_success_age_hours={latest_age} > require_fresh_max_age_hours={max_age_hours}.",
                file=sys.stderr,
            )
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
