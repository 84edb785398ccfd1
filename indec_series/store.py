"""Idempotent upsert of canonical rows into the SQL store."""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Sequence, Union

from loguru import logger
from sqlalchemy.orm import Session

from indec_series.models import TABLE_MODELS, now_utc


def _clean(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


class TabularStore:
    """``upsert(table_name, records, conflict_key)`` over SQLAlchemy models."""

    def __init__(self, session: Session):
        self.session = session

    def _model(self, table_name: str):
        model = TABLE_MODELS.get(table_name)
        if model is None:
            raise ValueError(f"Tabla desconocida: {table_name}")
        return model

    def upsert(
        self,
        table_name: str,
        records: Iterable[Dict[str, Any]],
        conflict_key: Union[str, Sequence[str]],
    ) -> int:
        """Insert or update every record by its natural key; returns rows written."""
        model = self._model(table_name)
        keys: List[str] = [conflict_key] if isinstance(conflict_key, str) else list(conflict_key)
        columns = set(model.__table__.columns.keys())
        unknown_keys = [key for key in keys if key not in columns]
        if unknown_keys:
            raise ValueError(f"Clave de conflicto invalida para {table_name}: {unknown_keys}")

        upserted = 0
        for record in records:
            payload = {k: _clean(v) for k, v in record.items() if k in columns and k != "id"}
            missing = [key for key in keys if payload.get(key) in (None, "")]
            if missing:
                raise ValueError(f"Registro sin clave {missing} para {table_name}: {record}")

            existing = (
                self.session.query(model)
                .filter_by(**{key: payload[key] for key in keys})
                .first()
            )
            if existing:
                for key, value in payload.items():
                    setattr(existing, key, value)
                existing.updated_at = now_utc()
            else:
                self.session.add(model(**payload))
            upserted += 1

        self.session.commit()
        logger.debug("{}: {} filas upsert", table_name, upserted)
        return upserted
