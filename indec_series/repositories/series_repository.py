"""Repository layer for reusable series queries."""

from __future__ import annotations

from dataclasses import dataclass
from math import ceil
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from sqlalchemy.orm import Session

from indec_series.dates import shift_months
from indec_series.models import EMAERecord, IngestionRun, IPCRecord, LaborMarketRecord, PovertyRecord


@dataclass
class Pagination:
    """Pagination metadata."""

    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return ceil(self.total / self.page_size)

    def as_dict(self) -> Dict[str, int]:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total": self.total,
            "total_pages": self.total_pages,
        }


def _period_bound(period: Optional[str]) -> Optional[str]:
    """``YYYY-MM`` bounds compare as the first day of the month."""
    if period and len(period) == 7:
        return f"{period}-01"
    return period


def _lag_date(iso_date: str, months: int) -> str:
    year, month = shift_months(int(iso_date[:4]), int(iso_date[5:7]), -months)
    return f"{year:04d}-{month:02d}-01"


def add_changes(
    frame: pd.DataFrame,
    value_col: str,
    group_cols: Sequence[str],
    lags: Dict[str, int],
    relative: bool = True,
) -> pd.DataFrame:
    """Add one change column per ``{name: months}`` lag, matched by calendar date.

    Relative changes are percentages; otherwise differences in points (rates).
    """
    if frame.empty:
        for name in lags:
            frame[name] = pd.Series(dtype=float)
        return frame

    keys = list(group_cols) + ["date"]
    base = frame[keys + [value_col]].rename(columns={value_col: "_previous"})
    for name, months in lags.items():
        frame["_lag_date"] = frame["date"].map(lambda d, m=months: _lag_date(d, m))
        merged = frame.merge(
            base.rename(columns={"date": "_lag_date"}),
            on=list(group_cols) + ["_lag_date"],
            how="left",
        )
        current = pd.to_numeric(merged[value_col], errors="coerce")
        previous = pd.to_numeric(merged["_previous"], errors="coerce")
        if relative:
            change = (current / previous - 1.0) * 100.0
        else:
            change = current - previous
        frame[name] = change.round(2).to_numpy()
    return frame.drop(columns=["_lag_date"])


def _records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    clean = frame.astype(object).where(frame.notna(), None)
    return clean.to_dict(orient="records")


class SeriesRepository:
    """Reusable SQLAlchemy queries used by the API and the CLI."""

    def __init__(self, session: Session):
        self.session = session

    def get_emae(
        self,
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
        page: int = 1,
        page_size: int = 100,
        order: str = "asc",
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        frame = self._frame(EMAERecord)
        frame = add_changes(frame, "original_value", [], {"mom_change": 1, "yoy_change": 12})
        return self._paginate_frame(frame, start_period, end_period, page, page_size, order, ["date"])

    def get_ipc(
        self,
        region: Optional[str] = None,
        component_code: Optional[str] = None,
        component_type: Optional[str] = None,
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
        page: int = 1,
        page_size: int = 100,
        order: str = "asc",
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        filters = []
        if region:
            filters.append(IPCRecord.region == region)
        if component_code:
            filters.append(IPCRecord.component_code == component_code)
        if component_type:
            filters.append(IPCRecord.component_type == component_type)
        frame = self._frame(IPCRecord, filters)
        frame = add_changes(
            frame, "index_value", ["component_code", "region"], {"mom_change": 1, "yoy_change": 12}
        )
        return self._paginate_frame(
            frame, start_period, end_period, page, page_size, order, ["date", "region", "component_code"]
        )

    def get_labor_market(
        self,
        region: Optional[str] = None,
        age_group: Optional[str] = None,
        gender: Optional[str] = None,
        data_type: Optional[str] = None,
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
        page: int = 1,
        page_size: int = 100,
        order: str = "asc",
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        filters = []
        if region:
            filters.append(LaborMarketRecord.region == region)
        if age_group:
            filters.append(LaborMarketRecord.age_group == age_group)
        if gender:
            filters.append(LaborMarketRecord.gender == gender)
        if data_type:
            filters.append(LaborMarketRecord.data_type == data_type)
        frame = self._frame(LaborMarketRecord, filters)
        # Unemployment changes in percentage points, quarter over quarter and year over year
        frame = add_changes(
            frame,
            "unemployment_rate",
            ["region", "age_group", "gender"],
            {"qoq_change": 3, "yoy_change": 12},
            relative=False,
        )
        return self._paginate_frame(
            frame, start_period, end_period, page, page_size, order, ["date", "region", "age_group", "gender"]
        )

    def get_poverty(
        self,
        region: Optional[str] = None,
        data_type: Optional[str] = None,
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
        page: int = 1,
        page_size: int = 100,
        order: str = "asc",
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        filters = []
        if region:
            filters.append(PovertyRecord.region == region)
        if data_type:
            filters.append(PovertyRecord.data_type == data_type)
        frame = self._frame(PovertyRecord, filters)
        frame = add_changes(
            frame,
            "poverty_rate_persons",
            ["region", "data_type"],
            {"semester_change": 6, "yoy_change": 12},
            relative=False,
        )
        return self._paginate_frame(
            frame, start_period, end_period, page, page_size, order, ["date", "region"]
        )

    def get_latest_runs(self, indicator: Optional[str] = None, limit: int = 10) -> List[Dict[str, Any]]:
        query = self.session.query(
            IngestionRun.run_uuid,
            IngestionRun.indicator,
            IngestionRun.status,
            IngestionRun.source_url,
            IngestionRun.fetched_records,
            IngestionRun.upserted_rows,
            IngestionRun.warnings_json,
            IngestionRun.error_message,
            IngestionRun.started_at,
            IngestionRun.completed_at,
        )
        if indicator:
            query = query.filter(IngestionRun.indicator == indicator)
        rows = query.order_by(IngestionRun.started_at.desc(), IngestionRun.id.desc()).limit(limit).all()
        return [dict(row._mapping) for row in rows]

    def _frame(self, model, filters: Sequence[Any] = ()) -> pd.DataFrame:
        columns = [column for column in model.__table__.columns if column.name not in {"id", "created_at"}]
        query = self.session.query(*columns)
        for condition in filters:
            query = query.filter(condition)
        rows = query.order_by(model.date.asc()).all()
        return pd.DataFrame([dict(row._mapping) for row in rows], columns=[column.name for column in columns])

    def _paginate_frame(
        self,
        frame: pd.DataFrame,
        start_period: Optional[str],
        end_period: Optional[str],
        page: int,
        page_size: int,
        order: str,
        sort_cols: List[str],
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        start = _period_bound(start_period)
        end = _period_bound(end_period)
        if start:
            frame = frame[frame["date"] >= start]
        if end:
            frame = frame[frame["date"] <= end]
        frame = frame.sort_values(sort_cols, ascending=order != "desc", kind="stable")

        total = len(frame)
        offset = (page - 1) * page_size
        page_frame = frame.iloc[offset:offset + page_size]
        return _records(page_frame), Pagination(page=page, page_size=page_size, total=total)
