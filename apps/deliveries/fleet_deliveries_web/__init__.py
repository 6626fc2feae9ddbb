"""Fleet Deliveries Flask application factory."""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
import sys
from typing import Any, Optional

from flask import Flask, current_app, g


def _discover_project_root() -> Path:
    """Return the repository root by walking up the filesystem.

    The shared :mod:`packages.fleet_common` domain lives at the monorepo
    root, which is not on ``sys.path`` when the app runs from its own
    directory. This helper searches parent directories for project markers
    so imports work both from a checkout and from an installed container.

    Returns:
        Path: Directory containing ``pyproject.toml`` or ``README.md``. Falls
        back to the package directory when no markers are present.
    """

    current = Path(__file__).resolve().parent
    selected = current
    for candidate in [current] + list(current.parents):
        if any((candidate / marker).exists() for marker in ("pyproject.toml", "README.md")):
            selected = candidate
            break
    return selected


PROJECT_ROOT = _discover_project_root()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))


from .config import AppConfig, load_config  # noqa: E402
from .database import create_db_engine, init_schema  # noqa: E402
from .repositories import DeliveriesRepository  # noqa: E402


def _format_amount(value: Optional[Decimal], places: int = 0) -> str:
    """Render a number with thousands separators for templates."""

    if value is None:
        return "-"
    return f"{Decimal(value):,.{places}f}"


def create_app(config: AppConfig | None = None) -> Flask:
    """Build and configure the Fleet Deliveries Flask application instance.

    Args:
        config: Optional :class:`AppConfig` override. When ``None`` the helper
            loads configuration via :func:`load_config`, which reads the
            ``FLEET_*`` environment variables.

    Returns:
        Flask: Fully initialised application. The instance carries a
        SQLAlchemy engine stored on ``app.config['DB_ENGINE']`` for
        :func:`get_repository`.

    External Dependencies:
        * Calls :func:`load_config` to resolve runtime settings.
        * Uses :func:`create_db_engine` and :func:`init_schema` to prepare the
          database schema on startup.
    """

    app = Flask(__name__, instance_relative_config=True)
    app_config = config or load_config()
    app.config.update(
        SECRET_KEY=app_config.secret_key,
        DEFAULT_RATE=app_config.default_rate,
    )
    level = getattr(logging, app_config.log_level.upper(), logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger("fleet_deliveries_web").setLevel(level)

    engine = create_db_engine(app_config.database_url)
    init_schema(engine)
    app.config["DB_ENGINE"] = engine

    from .blueprints.billing import billing_bp
    from .blueprints.deliveries import deliveries_bp

    app.register_blueprint(deliveries_bp)
    app.register_blueprint(billing_bp)
    app.add_template_filter(_format_amount, "amount")

    @app.teardown_appcontext
    def teardown(_: Any) -> None:
        g.pop("deliveries_repo", None)

    @app.cli.command("init-db")
    def init_db_command() -> None:
        """Initialize the database tables."""

        init_schema(engine)
        import click

        click.echo("Database initialized.")

    app.logger.info(
        "Fleet Deliveries app ready (database: %s)",
        engine.url.render_as_string(hide_password=True),
    )
    return app


def get_repository() -> DeliveriesRepository:
    """Return a cached repository bound to the active Flask request.

    Returns:
        DeliveriesRepository: Lazily constructed instance stored on
        :mod:`flask.g` so blueprints share one repository per request.

    External Dependencies:
        * Reads ``current_app.config['DB_ENGINE']`` set during
          :func:`create_app`.
    """

    if not hasattr(g, "deliveries_repo"):
        engine = current_app.config["DB_ENGINE"]
        g.deliveries_repo = DeliveriesRepository(engine)
    return g.deliveries_repo


__all__ = ["create_app", "AppConfig", "get_repository"]
