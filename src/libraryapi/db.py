from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from . import models  # noqa: F401  registers the tables on SQLModel.metadata
from .config import Settings


def _enable_sqlite_foreign_keys(dbapi_connection, _):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(settings: Settings) -> Engine:
    connect_args = {}
    if settings.database_url.startswith("sqlite"):
        # "timeout" is how long sqlite waits on a locked database
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.request_timeout,
        }
    engine = create_engine(settings.database_url, connect_args=connect_args)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_db_and_tables(engine: Engine):
    SQLModel.metadata.create_all(engine)


def ping(engine: Engine) -> bool:
    with Session(engine) as dbsession:
        dbsession.connection().exec_driver_sql("SELECT 1")
    return True
