"""Database setup utilities for the Fleet Deliveries web app."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    create_engine,
    func,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

metadata = MetaData()

billings = Table(
    "billings",
    metadata,
    Column("id", Integer, primary_key=True),
    # Informational label only; duplicates are possible.
    Column("billing_number", String(32), nullable=False),
    Column("total_weight", Numeric(14, 5), nullable=False),
    Column("price_per_ton", Numeric(14, 2), nullable=False),
    # weight (5 places) x price (2 places) is exact at 7 places.
    Column("total_amount", Numeric(24, 7), nullable=False),
    Column("status", String(16), nullable=False, default="pending"),
    Column("notes", Text, nullable=False, default=""),
    Column(
        "created_at", DateTime(timezone=True), server_default=func.now(), nullable=False
    ),
)

deliveries = Table(
    "deliveries",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("plate_number", String(20), nullable=False),
    Column("driver_names", String(255), nullable=False),
    Column("loading_date", Date, nullable=False),
    Column("unloading_date", Date, nullable=False),
    Column("weight_loaded", Numeric(10, 2), nullable=False),
    Column("bond_number", String(120), nullable=False),
    Column("owner", String(255), nullable=False),
    Column("truck_type", String(32), nullable=False, default="Semi-Truck"),
    Column(
        "billing_id",
        ForeignKey("billings.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column(
        "created_at", DateTime(timezone=True), server_default=func.now(), nullable=False
    ),
)

delivery_expenses = Table(
    "delivery_expenses",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "delivery_id",
        ForeignKey("deliveries.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("road_costs", Numeric(14, 2), nullable=False, default=0),
    Column("diesel_liters", Numeric(10, 2), nullable=False, default=0),
    Column("diesel_price_unit", Numeric(10, 2), nullable=True),
    Column("toll_costs", Numeric(14, 2), nullable=False, default=0),
    Column("extra_costs", Numeric(14, 2), nullable=False, default=0),
    Column("extra_description", Text, nullable=False, default=""),
)


def create_db_engine(database_url: str) -> Engine:
    """Return a SQLAlchemy engine for the provided URL."""

    return create_engine(database_url, future=True)


def init_schema(engine: Engine) -> None:
    """Create database tables if they do not exist."""

    metadata.create_all(engine)


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Context manager that yields a SQLAlchemy :class:`Session`."""

    with Session(engine, future=True) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
