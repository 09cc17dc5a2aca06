"""Source Reader -- read-only queries against the relational source.

The engine's whole contract with the database is "run query Q, get rows with
columns C". Rows are yielded as read-only mappings keyed by column name and
fetched in chunks of ``batch_size`` so a large table is never materialized as
one driver result list.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from cachesync.core.errors import SourceError
from cachesync.core.logging import get_logger

logger = get_logger(__name__)


class SourceReader:
    """Executes read-only SQL against a SQLAlchemy engine.

    Thread-safe: every call checks a connection out of the engine's pool
    for the duration of one query.
    """

    def __init__(self, engine: Engine, *, batch_size: int = 1000):
        self._engine = engine
        self._batch_size = batch_size

    @property
    def engine(self) -> Engine:
        return self._engine

    def rows(self, sql: str, params: Mapping[str, Any] | None = None) -> Iterator[Mapping[str, Any]]:
        """Yield each row of *sql* as a mapping of column name to value.

        Raises:
            SourceError: If the query fails, with the statement in context.
        """
        try:
            with self._engine.connect() as conn:
                result = conn.execution_options(stream_results=True).execute(
                    text(sql), dict(params or {})
                ).mappings()
                while True:
                    chunk = result.fetchmany(self._batch_size)
                    if not chunk:
                        break
                    yield from chunk
        except SQLAlchemyError as e:
            logger.error("source_query_failed", sql=sql, error=str(e))
            raise SourceError(f"Source query failed: {e}", cause=e).with_context(sql=sql) from e

    def scalars(self, sql: str, params: Mapping[str, Any] | None = None) -> list[Any]:
        """Run *sql* and return the first column of every row."""
        try:
            with self._engine.connect() as conn:
                return list(conn.execute(text(sql), dict(params or {})).scalars())
        except SQLAlchemyError as e:
            logger.error("source_query_failed", sql=sql, error=str(e))
            raise SourceError(f"Source query failed: {e}", cause=e).with_context(sql=sql) from e


__all__ = ["SourceReader"]
