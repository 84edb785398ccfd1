"""Lightweight HTTP API exposing the ingested INDEC series."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from sqlalchemy.orm import Session

from indec_series.config_loader import load_config
from indec_series.models import get_engine, get_session_factory
from indec_series.repositories import SeriesRepository

app = FastAPI(title="INDEC Series API", version="1.0.0")

PERIOD_PATTERN = re.compile(r"^\d{4}-\d{2}(-\d{2})?$")


def _load_api_config():
    try:
        return load_config()
    except FileNotFoundError:
        fallback = Path(__file__).resolve().parents[1] / "config.yaml"
        return load_config(str(fallback))


_config = _load_api_config()
_engine = get_engine(_config)
_SessionFactory = get_session_factory(_engine)


def get_session():
    session = _SessionFactory()
    try:
        yield session
    finally:
        session.close()


def _validate_period(period: Optional[str], label: str) -> None:
    if period and not PERIOD_PATTERN.match(period):
        raise HTTPException(
            status_code=400, detail=f"El parametro '{label}' debe tener formato YYYY-MM o YYYY-MM-DD."
        )


def _validate_period_range(from_period: Optional[str], to_period: Optional[str]) -> None:
    _validate_period(from_period, "from")
    _validate_period(to_period, "to")
    if from_period and to_period and from_period > to_period:
        raise HTTPException(status_code=400, detail="El parametro 'from' no puede ser mayor a 'to'.")


@app.get("/emae")
def get_emae(
    from_period: Optional[str] = Query(default=None, alias="from"),
    to_period: Optional[str] = Query(default=None, alias="to"),
    order: str = Query(default="asc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=100, ge=1, le=500),
    session: Session = Depends(get_session),
):
    _validate_period_range(from_period, to_period)
    repository = SeriesRepository(session)
    rows, pagination = repository.get_emae(
        start_period=from_period,
        end_period=to_period,
        page=page,
        page_size=page_size,
        order=order,
    )
    return {"items": rows, "pagination": pagination.as_dict()}


@app.get("/ipc")
def get_ipc(
    region: Optional[str] = Query(default="Nacional"),
    component: Optional[str] = Query(default=None, description="component_code, e.g. GENERAL or RUBRO_ALIMENTOS"),
    component_type: Optional[str] = Query(default=None, pattern="^(GENERAL|RUBRO|CATEGORIA|BYS)$"),
    from_period: Optional[str] = Query(default=None, alias="from"),
    to_period: Optional[str] = Query(default=None, alias="to"),
    order: str = Query(default="asc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=100, ge=1, le=500),
    session: Session = Depends(get_session),
):
    _validate_period_range(from_period, to_period)
    repository = SeriesRepository(session)
    rows, pagination = repository.get_ipc(
        region=region,
        component_code=component,
        component_type=component_type,
        start_period=from_period,
        end_period=to_period,
        page=page,
        page_size=page_size,
        order=order,
    )
    return {"items": rows, "pagination": pagination.as_dict(), "meta": {"region": region}}


@app.get("/labor-market")
def get_labor_market(
    region: Optional[str] = Query(default=None),
    age_group: Optional[str] = Query(default=None),
    gender: Optional[str] = Query(default=None),
    data_type: Optional[str] = Query(default=None, pattern="^(national|regional|demographic_segment)$"),
    from_period: Optional[str] = Query(default=None, alias="from"),
    to_period: Optional[str] = Query(default=None, alias="to"),
    order: str = Query(default="asc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=100, ge=1, le=500),
    session: Session = Depends(get_session),
):
    _validate_period_range(from_period, to_period)
    repository = SeriesRepository(session)
    rows, pagination = repository.get_labor_market(
        region=region,
        age_group=age_group,
        gender=gender,
        data_type=data_type,
        start_period=from_period,
        end_period=to_period,
        page=page,
        page_size=page_size,
        order=order,
    )
    return {"items": rows, "pagination": pagination.as_dict()}


@app.get("/poverty")
def get_poverty(
    region: Optional[str] = Query(default=None),
    data_type: Optional[str] = Query(default=None, pattern="^(national|regional)$"),
    from_period: Optional[str] = Query(default=None, alias="from"),
    to_period: Optional[str] = Query(default=None, alias="to"),
    order: str = Query(default="asc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=100, ge=1, le=500),
    session: Session = Depends(get_session),
):
    _validate_period_range(from_period, to_period)
    repository = SeriesRepository(session)
    rows, pagination = repository.get_poverty(
        region=region,
        data_type=data_type,
        start_period=from_period,
        end_period=to_period,
        page=page,
        page_size=page_size,
        order=order,
    )
    return {"items": rows, "pagination": pagination.as_dict()}


@app.get("/runs/latest")
def get_runs_latest(
    indicator: Optional[str] = Query(default=None, pattern="^(emae|ipc|labor_market|poverty)$"),
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    repository = SeriesRepository(session)
    runs = repository.get_latest_runs(indicator=indicator, limit=limit)
    for run in runs:
        run["warnings"] = json.loads(run.pop("warnings_json") or "[]")
    return {"items": runs}
