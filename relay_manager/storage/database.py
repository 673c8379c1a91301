"""Database handle and declarative base."""

from __future__ import annotations

import logging
import pathlib
import threading
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from relay_manager.core.exceptions import StorageError

logger = logging.getLogger("relay.storage")

# Columns added after the first schema release: (table, column, DDL type).
_LEGACY_COLUMNS = (("relay_stations", "user_id", "TEXT"),)


class Base(DeclarativeBase):
    pass


def _enable_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """One SQLite connection shared by every caller, serialized by a lock.

    The lock is held only for the lifetime of a ``session_scope`` block, which
    must never contain an ``await``.
    """

    def __init__(self, url: str) -> None:
        if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
            pathlib.Path(url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
        self.engine: Engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
        event.listen(self.engine, "connect", _enable_foreign_keys)
        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
        self._lock = threading.Lock()

    def init_schema(self) -> None:
        """Create missing tables and bring older databases up to date."""
        from . import models  # noqa: F401  registers tables on Base.metadata

        with self._lock:
            Base.metadata.create_all(bind=self.engine)
            self._add_missing_columns()

    def _add_missing_columns(self) -> None:
        inspector = inspect(self.engine)
        missing = [
            (table, column, ddl_type)
            for table, column, ddl_type in _LEGACY_COLUMNS
            if column not in {col["name"] for col in inspector.get_columns(table)}
        ]
        if not missing:
            return
        with self.engine.begin() as connection:
            for table, column, ddl_type in missing:
                logger.info(
                    "Adding legacy column",
                    extra={"event": "schema_migrate", "table": table, "column": column},
                )
                connection.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl_type}"))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Transactional scope holding the connection lock until commit or rollback."""
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StorageError(f"Database error: {exc}") from exc
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def dispose(self) -> None:
        self.engine.dispose()
