from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.settings import settings

engine: Engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    future=True,
)

SessionLocal: sessionmaker[Session] = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def get_db_session() -> Iterator[Session]:
    """
    Yield a session bound to the shared engine and always close it afterwards.
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


__all__ = ["SessionLocal", "engine", "get_db_session"]
