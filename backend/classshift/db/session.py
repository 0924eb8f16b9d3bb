from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from classshift.core.config import get_settings

settings = get_settings()


def configure_sqlite_transactions(target: Engine) -> Engine:
    """Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINTs behave."""

    @event.listens_for(target, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")

    return target


_engine_options: dict = {"pool_pre_ping": True}
if settings.database_isolation_level:
    _engine_options["isolation_level"] = settings.database_isolation_level

engine = create_engine(settings.database_url, **_engine_options)
if engine.dialect.name == "sqlite":
    configure_sqlite_transactions(engine)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run the enclosed block as one unit of work: commit on success, roll back on any error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
