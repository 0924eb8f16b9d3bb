from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from classshift.core.config import get_settings
from classshift.db.base import Base
from classshift.models.session_resource import OCCUPANCY_INDEX_NAME, occupancy_index

logger = logging.getLogger(__name__)

REQUIRED_TABLES: set[str] = {
    "users",
    "teachers",
    "resources",
    "time_slot_templates",
    "class_sessions",
    "session_resources",
    "teaching_assignments",
    "change_requests",
}


def _ensure_occupancy_index(engine: Engine) -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "session_resources" not in set(inspector.get_table_names()):
            return
        index_names = {item["name"] for item in inspector.get_indexes("session_resources")}
        if OCCUPANCY_INDEX_NAME in index_names:
            return
        logger.warning("Occupancy unique index missing; creating %s", OCCUPANCY_INDEX_NAME)
        occupancy_index.create(bind=connection)


def missing_required_tables(engine: Engine) -> list[str]:
    with engine.connect() as connection:
        table_names = set(inspect(connection).get_table_names())
    return sorted(REQUIRED_TABLES - table_names)


def ensure_runtime_schema_compatibility(engine: Engine | None = None) -> None:
    if engine is None:
        from classshift.db.session import engine as default_engine

        engine = default_engine

    import classshift.models  # noqa: F401

    if get_settings().auto_create_schema:
        Base.metadata.create_all(bind=engine)
    _ensure_occupancy_index(engine)
