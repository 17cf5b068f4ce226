from __future__ import annotations

import logging
import time
from typing import Any, Mapping

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.sql import TextClause

from .cache import CollectionCache
from .collection import Collection
from .helpers import _parse_sql_operation
from .metrics import observe_db_write
from .tx import DbTransaction

logger = logging.getLogger(__name__)


class Database:
    """
    Autocommit entry point over a SQLAlchemy Engine.

    Every execute() runs in its own short transaction and is committed before
    returning, so writes through a Database are read back by PartialMutation.
    Use begin() for multi-statement transactions.

    The Database owns the CollectionCache its operations share unless one is
    passed in.
    """

    in_transaction = False

    def __init__(self, engine: Engine, cache: CollectionCache | None = None) -> None:
        self.engine = engine
        self.collections = cache if cache is not None else CollectionCache()

    def begin(self) -> DbTransaction:
        """Begin a new transaction; commit/rollback it explicitly or use it in a with block."""
        return DbTransaction(self.engine)

    def collection(self, name: str) -> Collection:
        return Collection(self, name)

    def has_table(self, name: str) -> bool:
        """Check the live schema; nothing is cached here."""
        return inspect(self.engine).has_table(name)

    def clear_cache(self) -> None:
        """Hook for CollectionCache; has_table() holds no schema state to drop."""
        logger.debug("Schema cache cleared for %s", self.engine.url)

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> int:
        """
        Execute and commit a non-SELECT statement, returning affected row count.
        """
        start_time = time.monotonic()
        table_name, op_type = _parse_sql_operation(sql)
        status = "success"
        stmt = text(sql) if isinstance(sql, str) else sql

        try:
            with self.engine.begin() as conn:
                result = conn.execute(stmt, params or {})
                if result.rowcount is None:
                    raise RuntimeError(
                        "execute() received None rowcount for statement. "
                        "This may indicate a DDL statement or unsupported operation type."
                    )
                return int(result.rowcount)
        except Exception:
            status = "error"
            raise
        finally:
            if op_type != "unknown":
                observe_db_write(table_name, op_type, status, time.monotonic() - start_time)

    def fetch_one(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """
        Execute a SELECT expected to return 0 or 1 row. Raises if more than one row.
        """
        stmt = text(sql) if isinstance(sql, str) else sql
        with self.engine.connect() as conn:
            row = conn.execute(stmt, params or {}).mappings().one_or_none()
            if row is None:
                return None
            return dict(row)

    def fetch_all(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a SELECT returning multiple rows.
        """
        stmt = text(sql) if isinstance(sql, str) else sql
        with self.engine.connect() as conn:
            return [dict(row) for row in conn.execute(stmt, params or {}).mappings()]
