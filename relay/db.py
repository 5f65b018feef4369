"""Engine and session helpers for the relay database."""
from __future__ import annotations

from typing import Callable

from sqlmodel import Session, SQLModel, create_engine

from relay.models import RELAY_TABLES


def create_relay_engine(database_url: str):
    kwargs = {}
    if database_url.startswith("sqlite"):
        # FastAPI runs sync endpoints in a thread pool
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(database_url, echo=False, **kwargs)


def init_relay_db(engine) -> None:
    SQLModel.metadata.create_all(engine, tables=RELAY_TABLES)


def session_factory_for(engine) -> Callable[[], Session]:
    def factory() -> Session:
        return Session(engine)

    return factory


__all__ = ["create_relay_engine", "init_relay_db", "session_factory_for"]
