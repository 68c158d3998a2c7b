"""Engine and session management for the pipeline store."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from utils.exceptions import StorageError

from .models import Base


logger = logging.getLogger(__name__)


def _is_memory_url(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def create_db_engine(database_url: str, *, busy_timeout_secs: float = 30.0) -> Engine:
    """Create an engine; SQLite gets WAL journaling, a busy timeout and FK enforcement."""
    url = make_url(database_url)
    is_sqlite = url.get_backend_name() == "sqlite"

    kwargs = {"pool_pre_ping": True}
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": float(busy_timeout_secs)}
        if _is_memory_url(database_url):
            kwargs["poolclass"] = StaticPool
        else:
            Path(str(url.database)).expanduser().parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url, **kwargs)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _record):  # pragma: no cover - driver hook
            cursor = dbapi_connection.cursor()
            if not _is_memory_url(database_url):
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_secs * 1000)}")
            cursor.close()

    return engine


class Database:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, database_url: str, *, busy_timeout_secs: float = 30.0, engine: Optional[Engine] = None) -> None:
        self.database_url = database_url
        self.engine = engine or create_db_engine(database_url, busy_timeout_secs=busy_timeout_secs)
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def init_schema(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("schema ready url=%s", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """One transaction: commit on success, roll back on any exception.

        Driver-level failures (locked past the busy timeout, disk I/O) surface
        as ``StorageError``; integrity conflicts propagate unchanged.
        """
        session = self._sessions()
        try:
            yield session
            session.commit()
        except OperationalError as exc:
            session.rollback()
            raise StorageError("database operation failed", {"error": str(exc.orig or exc)}) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
