"""Database access layer for the Fleet Deliveries web app.

:class:`DeliveriesRepository` is the record store: every read and write the
application performs goes through it. SQLAlchemy failures are translated into
:class:`~fleet_deliveries_web.errors.StoreError` subclasses so callers only
deal with the application's own error taxonomy. ``NoResultFound`` is passed
through unchanged for the routes to turn into a 404.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from functools import wraps
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from sqlalchemy.orm import Session

from packages.fleet_common import (
    Billing,
    DeliveryRecord,
    ExpenseRecord,
    normalize_expense,
)

from .database import billings, deliveries, delivery_expenses, session_scope
from .errors import translate_store_error

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "plate_number",
    "driver_names",
    "loading_date",
    "unloading_date",
    "weight_loaded",
    "bond_number",
    "owner",
    "truck_type",
)

T = TypeVar("T")


def _store_call(func: Callable[..., T]) -> Callable[..., T]:
    """Translate SQLAlchemy errors raised by ``func`` into store errors."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except NoResultFound:
            raise
        except SQLAlchemyError as exc:
            logger.error("Record store call %s failed: %s", func.__name__, exc)
            raise translate_store_error(exc) from exc

    return wrapper


def _editable_payload(data: Any) -> Dict[str, Any]:
    return {name: getattr(data, name) for name in EDITABLE_FIELDS}


class DeliveriesRepository:
    """Provides the record store operations for deliveries, expenses and billings."""

    def __init__(self, engine: Engine):
        self._engine = engine

    @_store_call
    def list_deliveries(self) -> List[DeliveryRecord]:
        """Return every delivery with its expense joined, newest first."""

        with session_scope(self._engine) as session:
            rows = session.execute(
                select(deliveries).order_by(
                    deliveries.c.created_at.desc(), deliveries.c.id.desc()
                )
            ).all()
            expenses = self._expenses_by_delivery(session)
        return [
            self._row_to_delivery(row, expenses.get(row._mapping["id"], []))
            for row in rows
        ]

    @_store_call
    def get_delivery(self, delivery_id: int) -> DeliveryRecord:
        """Fetch a single delivery including its expense."""

        with session_scope(self._engine) as session:
            return self._load_delivery(session, delivery_id)

    @_store_call
    def create_delivery(self, data: Any) -> DeliveryRecord:
        """Insert a delivery from validated form data and return the stored record."""

        with session_scope(self._engine) as session:
            result = session.execute(
                insert(deliveries)
                .values(**_editable_payload(data))
                .returning(deliveries.c.id)
            )
            delivery_id = result.scalar_one()
            created = self._load_delivery(session, delivery_id)
        logger.info("Created delivery %s (bond %s)", created.id, created.bond_number)
        return created

    @_store_call
    def update_delivery(self, delivery_id: int, data: Any) -> DeliveryRecord:
        """Replace the editable fields of a delivery. The write is unconditional."""

        with session_scope(self._engine) as session:
            result = session.execute(
                update(deliveries)
                .where(deliveries.c.id == delivery_id)
                .values(**_editable_payload(data))
            )
            if result.rowcount == 0:
                raise NoResultFound(f"Delivery {delivery_id} not found")
            updated = self._load_delivery(session, delivery_id)
        logger.info("Updated delivery %s", delivery_id)
        return updated

    @_store_call
    def delete_delivery(self, delivery_id: int) -> None:
        """Remove a delivery and its expense row permanently."""

        with session_scope(self._engine) as session:
            session.execute(
                delete(delivery_expenses).where(
                    delivery_expenses.c.delivery_id == delivery_id
                )
            )
            result = session.execute(
                delete(deliveries).where(deliveries.c.id == delivery_id)
            )
            if result.rowcount == 0:
                raise NoResultFound(f"Delivery {delivery_id} not found")
        logger.info("Deleted delivery %s", delivery_id)

    @_store_call
    def upsert_expense(self, expense: ExpenseRecord) -> ExpenseRecord:
        """Create or replace the expense row belonging to ``expense.delivery_id``."""

        payload = {
            "road_costs": expense.road_costs,
            "diesel_liters": expense.diesel_liters,
            "diesel_price_unit": expense.diesel_price_unit,
            "toll_costs": expense.toll_costs,
            "extra_costs": expense.extra_costs,
            "extra_description": expense.extra_description,
        }
        with session_scope(self._engine) as session:
            exists = session.execute(
                select(deliveries.c.id).where(deliveries.c.id == expense.delivery_id)
            ).one_or_none()
            if exists is None:
                raise NoResultFound(f"Delivery {expense.delivery_id} not found")
            existing_id = session.execute(
                select(delivery_expenses.c.id).where(
                    delivery_expenses.c.delivery_id == expense.delivery_id
                )
            ).scalar_one_or_none()
            if existing_id is None:
                result = session.execute(
                    insert(delivery_expenses)
                    .values(delivery_id=expense.delivery_id, **payload)
                    .returning(delivery_expenses.c.id)
                )
                expense_id = result.scalar_one()
            else:
                session.execute(
                    update(delivery_expenses)
                    .where(delivery_expenses.c.id == existing_id)
                    .values(**payload)
                )
                expense_id = existing_id
        return replace(expense, id=expense_id)

    @_store_call
    def create_billing(
        self, billing: Billing, delivery_ids: Sequence[int]
    ) -> Billing:
        """Persist ``billing`` and stamp ``delivery_ids`` with it in one transaction.

        Either the billing row exists and every delivery points at it, or the
        transaction is rolled back and nothing changes.
        """

        with session_scope(self._engine) as session:
            result = session.execute(
                insert(billings)
                .values(
                    billing_number=billing.billing_number,
                    total_weight=billing.total_weight,
                    price_per_ton=billing.price_per_ton,
                    total_amount=billing.total_amount,
                    status="pending",
                    notes=billing.notes,
                )
                .returning(billings.c.id)
            )
            billing_id = result.scalar_one()
            self._stamp_deliveries(session, delivery_ids, billing_id)
            row = session.execute(
                select(billings).where(billings.c.id == billing_id)
            ).one()
        logger.info(
            "Created billing %s (%s) for %d deliveries",
            billing_id,
            billing.billing_number,
            len(delivery_ids),
        )
        return self._row_to_billing(row)

    @_store_call
    def list_billings(self) -> List[Billing]:
        """Return all billings, newest first."""

        with session_scope(self._engine) as session:
            rows = session.execute(
                select(billings).order_by(
                    billings.c.created_at.desc(), billings.c.id.desc()
                )
            ).all()
        return [self._row_to_billing(row) for row in rows]

    @_store_call
    def update_deliveries_billing_link(
        self, delivery_ids: Iterable[int], billing_id: Optional[int]
    ) -> None:
        """Point each delivery in ``delivery_ids`` at ``billing_id``."""

        with session_scope(self._engine) as session:
            self._stamp_deliveries(session, list(delivery_ids), billing_id)

    @staticmethod
    def _stamp_deliveries(
        session: Session, delivery_ids: Sequence[int], billing_id: Optional[int]
    ) -> None:
        if not delivery_ids:
            return
        session.execute(
            update(deliveries)
            .where(deliveries.c.id.in_(list(delivery_ids)))
            .values(billing_id=billing_id)
        )

    def _load_delivery(self, session: Session, delivery_id: int) -> DeliveryRecord:
        row = session.execute(
            select(deliveries).where(deliveries.c.id == delivery_id)
        ).one_or_none()
        if row is None:
            raise NoResultFound(f"Delivery {delivery_id} not found")
        expenses = self._expenses_by_delivery(session, delivery_id)
        return self._row_to_delivery(row, expenses.get(delivery_id, []))

    @staticmethod
    def _expenses_by_delivery(
        session: Session, delivery_id: Optional[int] = None
    ) -> Dict[int, List[Dict[str, Any]]]:
        """Return expense rows keyed by delivery, shaped like a one-to-many join."""

        query = select(delivery_expenses)
        if delivery_id is not None:
            query = query.where(delivery_expenses.c.delivery_id == delivery_id)
        grouped: Dict[int, List[Dict[str, Any]]] = {}
        for row in session.execute(query).all():
            values = dict(row._mapping)
            grouped.setdefault(values["delivery_id"], []).append(values)
        return grouped

    @staticmethod
    def _row_to_delivery(row, expense_rows: Any) -> DeliveryRecord:
        """Convert a SQLAlchemy row and its joined expenses to a :class:`DeliveryRecord`."""

        values = row._mapping
        return DeliveryRecord(
            id=values["id"],
            plate_number=values["plate_number"],
            driver_names=values["driver_names"],
            loading_date=values["loading_date"],
            unloading_date=values["unloading_date"],
            weight_loaded=values["weight_loaded"],
            bond_number=values["bond_number"],
            owner=values["owner"],
            truck_type=values["truck_type"],
            billing_id=values["billing_id"],
            created_at=values["created_at"],
            expense=normalize_expense(expense_rows),
        )

    @staticmethod
    def _row_to_billing(row) -> Billing:
        """Convert a SQLAlchemy row to a :class:`Billing`."""

        values = row._mapping
        return Billing(
            id=values["id"],
            billing_number=values["billing_number"],
            total_weight=values["total_weight"],
            price_per_ton=values["price_per_ton"],
            total_amount=values["total_amount"],
            status=values["status"],
            notes=values["notes"],
            created_at=values["created_at"],
        )
