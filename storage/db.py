# storage/db.py
from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session

from core.settings import DB_PATH

# Ensure SQLModel metadata is populated
from models.task import Task
from models.completion import Completion
from models.setting import Setting
from storage import migrations


DESKTOP_TABLES = [Task.__table__, Completion.__table__, Setting.__table__]


def _enable_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_sqlite_engine(url: str, **kwargs):
    """Create an engine with SQLite foreign keys switched on."""

    engine = create_engine(url, echo=False, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_foreign_keys)
    return engine


_engine = create_sqlite_engine(f"sqlite:///{DB_PATH.as_posix()}")


def init_db(engine=None):
    target = engine or _engine
    if engine is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(target, tables=DESKTOP_TABLES)
    migrations.run_all(target)


def get_session() -> Session:
    return Session(_engine)
