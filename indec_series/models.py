"""Database models for ingested INDEC series."""

from datetime import datetime, timezone
import os
from typing import Optional

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


def now_utc():
    return datetime.now(timezone.utc)


Base = declarative_base()


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key support for SQLite (no-op for other backends)."""
    pool = getattr(connection_record, "pool", None)
    engine = getattr(pool, "engine", None) if pool else None
    if engine is not None and engine.dialect.name == "sqlite":
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class EMAERecord(Base):
    """Monthly economic activity estimator (EMAE), general level."""

    __tablename__ = "emae"
    __table_args__ = (UniqueConstraint("date", name="uq_emae_date"),)

    id = Column(Integer, primary_key=True)
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-01
    original_value = Column(Float, nullable=True)
    seasonally_adjusted_value = Column(Float, nullable=True)
    cycle_trend_value = Column(Float, nullable=True)
    adjustment_source = Column(String(32), nullable=True)  # indec | computed
    source_file = Column(Text, nullable=True)

    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self):
        return f"<EMAERecord(date='{self.date}', original={self.original_value})>"


class IPCRecord(Base):
    """Consumer price index by component and region."""

    __tablename__ = "ipc"
    __table_args__ = (
        UniqueConstraint("date", "component_code", "region", name="uq_ipc_date_component_region"),
    )

    id = Column(Integer, primary_key=True)
    date = Column(String(10), nullable=False, index=True)
    component = Column(String(128), nullable=False)
    component_code = Column(String(64), nullable=False, index=True)  # GENERAL | RUBRO_* | CAT_* | BYS_*
    component_type = Column(String(16), nullable=False, index=True)  # GENERAL | RUBRO | CATEGORIA | BYS
    region = Column(String(32), nullable=False, index=True)
    index_value = Column(Float, nullable=True)
    source_file = Column(Text, nullable=True)

    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self):
        return (
            f"<IPCRecord(date='{self.date}', component='{self.component_code}', "
            f"region='{self.region}', index={self.index_value})>"
        )


class LaborMarketRecord(Base):
    """Household survey (EPH) rates and populations by region and segment."""

    __tablename__ = "labor_market"
    __table_args__ = (
        UniqueConstraint("date", "region", "age_group", "gender", name="uq_labor_date_region_segment"),
    )

    id = Column(Integer, primary_key=True)
    date = Column(String(10), nullable=False, index=True)  # quarter start
    period_label = Column(String(16), nullable=True)  # T1 2024
    region = Column(String(64), nullable=False, index=True)
    age_group = Column(String(16), nullable=False, default="Total")
    gender = Column(String(16), nullable=False, default="Total")
    data_type = Column(String(32), nullable=False)  # national | regional | demographic_segment

    activity_rate = Column(Float, nullable=True)
    employment_rate = Column(Float, nullable=True)
    unemployment_rate = Column(Float, nullable=True)
    total_population = Column(Float, nullable=True)
    economically_active_population = Column(Float, nullable=True)
    employed_population = Column(Float, nullable=True)
    unemployed_population = Column(Float, nullable=True)
    inactive_population = Column(Float, nullable=True)

    source_file = Column(Text, nullable=True)
    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self):
        return (
            f"<LaborMarketRecord(date='{self.date}', region='{self.region}', "
            f"unemployment={self.unemployment_rate})>"
        )


class PovertyRecord(Base):
    """Poverty and indigence incidence per semester and region."""

    __tablename__ = "poverty"
    __table_args__ = (
        UniqueConstraint("date", "region", "data_type", name="uq_poverty_date_region_type"),
    )

    id = Column(Integer, primary_key=True)
    date = Column(String(10), nullable=False, index=True)  # semester start
    period_label = Column(String(16), nullable=True)  # S1 2024
    region = Column(String(64), nullable=False, index=True)
    data_type = Column(String(32), nullable=False)  # national | regional

    poverty_rate_persons = Column(Float, nullable=True)
    poverty_rate_households = Column(Float, nullable=True)
    indigence_rate_persons = Column(Float, nullable=True)
    indigence_rate_households = Column(Float, nullable=True)
    poverty_gap = Column(Float, nullable=True)
    poverty_severity = Column(Float, nullable=True)
    indigence_gap = Column(Float, nullable=True)
    indigence_severity = Column(Float, nullable=True)

    source_file = Column(Text, nullable=True)
    created_at = Column(DateTime, default=now_utc)
    updated_at = Column(DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self):
        return (
            f"<PovertyRecord(date='{self.date}', region='{self.region}', "
            f"poverty={self.poverty_rate_persons})>"
        )


class IngestionRun(Base):
    """Audit trail for each indicator ingestion run."""

    __tablename__ = "ingestion_runs"

    id = Column(Integer, primary_key=True)
    run_uuid = Column(String(36), unique=True, nullable=False, index=True)
    indicator = Column(String(32), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="running", index=True)  # success | partial | error

    source_url = Column(Text, nullable=True)
    raw_snapshot_path = Column(Text, nullable=True)
    fetched_records = Column(Integer, nullable=False, default=0)
    upserted_rows = Column(Integer, nullable=False, default=0)
    warnings_json = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, default=now_utc)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<IngestionRun(indicator='{self.indicator}', status='{self.status}')>"


TABLE_MODELS = {
    model.__tablename__: model
    for model in (EMAERecord, IPCRecord, LaborMarketRecord, PovertyRecord)
}


# Database initialization functions

def get_engine(config: dict, backend: Optional[str] = None):
    """Create database engine based on configuration."""
    backend = backend or config.get("storage", {}).get("default_backend", "sqlite")

    if backend == "sqlite":
        db_path = config.get("storage", {}).get("sqlite", {}).get("database_path", "data/indec.db")
        return create_engine(f"sqlite:///{db_path}")
    elif backend == "postgresql":
        pg_config = config.get("storage", {}).get("postgresql", {})
        db_url = str(pg_config.get("url") or os.getenv("DB_URL") or "").strip()
        if db_url:
            return create_engine(db_url)
        host = pg_config.get("host", "localhost")
        port = pg_config.get("port", "5432")
        database = pg_config.get("database", "indec_series")
        user = pg_config.get("user", "indec")
        password = pg_config.get("password", "")

        return create_engine(
            f"postgresql://{user}:{password}@{host}:{port}/{database}"
        )
    else:
        raise ValueError(f"Unsupported database backend: {backend}")


def init_db(engine):
    """Initialize database tables."""
    Base.metadata.create_all(engine)
    _ensure_runtime_indexes(engine)


def get_session_factory(engine):
    """Get session factory for database operations."""
    return sessionmaker(bind=engine)


def _ensure_runtime_indexes(engine):
    """Create lookup indexes if they do not exist."""
    with engine.begin() as conn:
        conn.execute(
            text("CREATE INDEX IF NOT EXISTS ix_ipc_region_component_date ON ipc (region, component_code, date)")
        )
        conn.execute(
            text("CREATE INDEX IF NOT EXISTS ix_labor_market_region_date ON labor_market (region, date)")
        )
        conn.execute(
            text("CREATE INDEX IF NOT EXISTS ix_ingestion_runs_indicator_started ON ingestion_runs (indicator, started_at)")
        )
