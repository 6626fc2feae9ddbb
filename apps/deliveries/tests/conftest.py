"""Test fixtures for the Fleet Deliveries app."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))

from fleet_deliveries_web import AppConfig, create_app
from fleet_deliveries_web.forms import DeliveryFormData
from fleet_deliveries_web.repositories import DeliveriesRepository


@pytest.fixture()
def app(tmp_path: Path):
    """Return a Flask app configured for testing."""

    db_path = tmp_path / "test.db"
    config = AppConfig(
        database_url=f"sqlite:///{db_path}",
        secret_key="testing",
    )
    application = create_app(config)
    application.config.update(TESTING=True)
    yield application


@pytest.fixture()
def client(app):
    """Return a Flask test client."""

    return app.test_client()


@pytest.fixture()
def repo(app) -> DeliveriesRepository:
    return DeliveriesRepository(app.config["DB_ENGINE"])


def _form_data(**overrides) -> DeliveryFormData:
    values = dict(
        plate_number="AB-123-CD",
        driver_names="Jean Mba",
        loading_date=date(2024, 5, 2),
        unloading_date=date(2024, 5, 3),
        weight_loaded=Decimal("1000"),
        bond_number="BN-001",
        owner="Transco",
        truck_type="Semi-Truck",
    )
    values.update(overrides)
    return DeliveryFormData(**values)


@pytest.fixture()
def make_form_data():
    """Return a factory for valid delivery fields; keywords override defaults."""

    return _form_data
