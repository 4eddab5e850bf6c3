from __future__ import annotations

from collections.abc import Generator
from typing import TypeVar

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.sql import Executable

from app.core.config import get_settings


class Base(DeclarativeBase):
    pass


engine = create_engine(get_settings().database_url, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

StatementT = TypeVar("StatementT", bound=Executable)


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def pinned(statement: StatementT) -> StatementT:
    """Bind a statement to the configured schema instead of the session search path.

    Role lookups and cascading updates run with system privilege, so the tables
    they touch are resolved through a fixed schema map rather than whatever the
    connection's search path happens to be.
    """

    schema = get_settings().database_schema
    return statement.execution_options(schema_translate_map={None: schema})
