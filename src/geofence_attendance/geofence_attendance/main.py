from __future__ import annotations

import atexit
import importlib
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .attendance.controller import register as register_attendance
from .container import Container, build_container
from .database.bootstrap import apply_schema, apply_seed_sql, list_tables
from .monitoring.clock import ClockSource
from .monitoring.notifications import NotificationSink

logger = logging.getLogger(__name__)

EXTENSION_KEY = "geofence_attendance"


def _configure_logging(settings) -> None:
    default = "DEBUG" if getattr(settings, "DEBUG", False) else "INFO"
    level = str(getattr(settings, "LOG_LEVEL", default)).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def get_container(app: Flask) -> Container:
    return app.extensions[EXTENSION_KEY]


def create_app(
    settings_module: Optional[str] = None,
    *,
    clock: Optional[ClockSource] = None,
    notifications: Optional[NotificationSink] = None,
) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = settings_module or get_settings_module()
    settings = importlib.import_module(settings_module)
    _configure_logging(settings)

    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    backend = str(getattr(settings, "STORE_BACKEND", "mysql")).lower()
    db_config = getattr(settings, "DB_CONFIG", {})
    logger.info(
        "settings=%s backend=%s db=%s@%s:%s/%s",
        settings_module, backend,
        db_config.get("user"), db_config.get("host"), db_config.get("port", 3306), db_config.get("database"),
    )

    if backend == "mysql":
        root = Path(__file__).resolve().parents[3] / "database"
        if getattr(settings, "AUTO_INIT_DB", False):
            apply_schema(db_config, schema_path=root / "schema.sql")
            logger.info("schema ready (tables=%s)", len(list_tables(db_config)))
        if getattr(settings, "AUTO_SEED_DB", False):
            apply_seed_sql(db_config, seed_path=root / "seed.sql")

    container = build_container(settings, clock=clock, notifications=notifications)
    app.extensions[EXTENSION_KEY] = container

    register_attendance(app, container)

    if getattr(settings, "MONITORING_ENABLED", False):
        container.monitoring.start()
        container.trigger.sync()
        atexit.register(container.monitoring.shutdown)

    return app


if __name__ == "__main__":
    app = create_app()
    # The reloader would start a second copy of the background scheduler.
    app.run(
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "5000")),
        debug=app.config["DEBUG"],
        use_reloader=False,
    )
