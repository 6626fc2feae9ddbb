"""Configuration helpers for the Fleet Deliveries web application."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppConfig:
    """Settings loaded from environment variables."""

    database_url: str
    secret_key: str
    log_level: str = "INFO"
    default_rate: Optional[Decimal] = None


def _parse_default_rate(raw: str) -> Optional[Decimal]:
    if not raw.strip():
        return None
    try:
        return Decimal(raw.strip())
    except InvalidOperation:
        logger.warning("Ignoring FLEET_DEFAULT_RATE=%r: not a number.", raw)
        return None


def load_config() -> AppConfig:
    """Create an :class:`AppConfig` instance from environment variables.

    ``FLEET_DATABASE`` defaults to a SQLite file under ``instance/``.
    ``FLEET_DEFAULT_RATE`` pre-fills the price per ton on the billing form.
    Values from a ``.env`` file in the working directory are loaded first;
    variables already set in the environment win.
    """

    load_dotenv(find_dotenv(usecwd=True))
    default_db = Path("instance/deliveries.db")
    database = os.getenv("FLEET_DATABASE")
    if not database:
        default_db.parent.mkdir(parents=True, exist_ok=True)
        database = "sqlite:///" + str(default_db)
    secret_key = os.getenv("FLEET_SECRET_KEY", "development")
    log_level = os.getenv("FLEET_LOG_LEVEL", "INFO").upper()
    return AppConfig(
        database_url=database,
        secret_key=secret_key,
        log_level=log_level,
        default_rate=_parse_default_rate(os.getenv("FLEET_DEFAULT_RATE", "")),
    )
