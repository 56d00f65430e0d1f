"""Engine ownership for the deployment store.

SQLite is the default (one file under ``.sluice/``); any SQLAlchemy URL
works, e.g. ``postgresql://sluice@db/sluice`` for a shared store.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType
from typing import Any, Self

from sqlalchemy import Connection, create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

from sluice.core.store.schema import metadata

MEMORY_URL = "sqlite:///:memory:"


def _enable_sqlite_pragmas(engine: Engine) -> None:
    """WAL journal and foreign keys on every new SQLite connection."""

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()


def _build_engine(url: str, **engine_kwargs: Any) -> Engine:
    parsed = make_url(url)
    is_sqlite = parsed.get_backend_name() == "sqlite"
    if is_sqlite and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, echo=False, **engine_kwargs)
    if is_sqlite:
        _enable_sqlite_pragmas(engine)
    metadata.create_all(engine)
    return engine


class DeploymentDB:
    """Owns the SQLAlchemy engine the repositories share.

    Tables are created on construction. Use as a context manager, or call
    close() when done.
    """

    def __init__(self, url: str, *, engine: Engine | None = None) -> None:
        self.url = url
        self._engine: Engine | None = engine if engine is not None else _build_engine(url)

    @classmethod
    def in_memory(cls) -> Self:
        """Private in-memory SQLite store.

        One connection (StaticPool) is shared by every thread, so status
        workers and callers see the same data.
        """
        engine = _build_engine(
            MEMORY_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        return cls(MEMORY_URL, engine=engine)

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError(f"Deployment store {self.url!r} is closed")
        return self._engine

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """One transaction: committed on normal exit, rolled back on error."""
        with self.engine.begin() as conn:
            yield conn

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
