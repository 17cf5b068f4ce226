from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Engine, Connection
from sqlalchemy.sql.elements import TextClause

from .helpers import _parse_sql_operation
from .metrics import observe_db_write

logger = logging.getLogger(__name__)


class DbExecutor(Protocol):
    """
    Anything PartialMutation can write through: Database or DbTransaction.

    in_transaction tells PartialMutation whether a write is visible to other
    connections right away; when it is true the row is not read back.
    """

    in_transaction: bool

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> int:
        """Execute a non-SELECT statement and return affected row count."""
        ...

    def fetch_one(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Execute a SELECT expected to return 0 or 1 row."""
        ...

    def fetch_all(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a SELECT returning multiple rows."""
        ...


class DbTransaction:
    """
    Database transaction, committed or rolled back explicitly or by a with block.

    The transaction begins on construction; after commit or rollback the
    connection is closed and the transaction can not be used again. As a
    context manager it commits on a clean exit and rolls back when the block
    raises.

    Usage:
        with database.begin() as tx:
            mutation.insert(record, "name", "CAN", session=tx)

        tx = database.begin()
        try:
            mutation.update(record, "name", "CAN", session=tx)
            tx.commit()
        except Exception:
            tx.rollback()
            raise
    """

    in_transaction = True

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._conn: Connection | None = None
        self._tx = None
        self._closed = False
        # INSERT/UPDATE statements awaiting a commit/rollback outcome for metrics
        self._execute_operations: list[dict[str, Any]] = []

        self._conn = self.engine.connect()
        self._tx = self._conn.begin()

    def __enter__(self) -> "DbTransaction":
        self._connection()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._closed:
            return False
        if exc_type:
            self.rollback()
        else:
            self.commit()

        # propagate exceptions (if any)
        return False

    def _connection(self) -> Connection:
        if self._closed or self._conn is None:
            raise RuntimeError("Transaction is already closed")
        return self._conn

    def commit(self) -> None:
        """
        Commit the transaction and close the connection.

        Raises:
            RuntimeError: If transaction is already closed
        """
        if self._closed:
            raise RuntimeError("Transaction is already closed")

        status = "success"
        try:
            if self._tx is not None:
                self._tx.commit()
        except Exception:
            status = "error"
            try:
                if self._tx is not None:
                    self._tx.rollback()
            except Exception:
                logger.exception("Rollback after failed commit also failed")
            raise
        finally:
            self._close(status)

    def rollback(self) -> None:
        """
        Rollback the transaction and close the connection.

        Raises:
            RuntimeError: If transaction is already closed
        """
        if self._closed:
            raise RuntimeError("Transaction is already closed")

        try:
            if self._tx is not None:
                self._tx.rollback()
        finally:
            self._close("error")

    def _close(self, status: str) -> None:
        end_time = time.monotonic()
        self._closed = True
        if self._conn is not None:
            self._conn.close()

        self._conn = None
        self._tx = None

        for op in self._execute_operations:
            observe_db_write(
                table=op["table"],
                op_type=op["op_type"],
                status=status,
                latency_s=end_time - op["start_time"],
            )
        self._execute_operations.clear()

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> int:
        """
        Execute a non-SELECT statement and return affected row count.

        Raises:
            RuntimeError: If transaction is closed or rowcount is None
        """
        start_time = time.monotonic()
        table_name, op_type = _parse_sql_operation(sql)

        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        try:
            if result.rowcount is None:
                raise RuntimeError(
                    "execute() received None rowcount for statement. "
                    "This may indicate a DDL statement or unsupported operation type."
                )

            rowcount = int(result.rowcount)
        finally:
            result.close()

        if op_type != "unknown":
            self._execute_operations.append({
                "start_time": start_time,
                "table": table_name,
                "op_type": op_type,
            })

        return rowcount

    def fetch_one(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """
        Execute a SELECT expected to return 0 or 1 row. Raises if more than one row.

        Raises:
            RuntimeError: If transaction is closed
            MultipleResultsFound: If more than one row is returned
        """
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        try:
            row = result.mappings().one_or_none()
            if row is None:
                return None
            return dict(row)
        finally:
            result.close()

    def fetch_all(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a SELECT returning multiple rows.

        Raises:
            RuntimeError: If transaction is closed
        """
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        try:
            return [dict(row) for row in result.mappings()]
        finally:
            result.close()
