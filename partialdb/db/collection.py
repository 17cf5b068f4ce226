from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Optional

from ..errors import ResultNotFoundError
from .helpers import _validate_identifier, _validate_operator

if TYPE_CHECKING:
    from .database import Database

logger = logging.getLogger(__name__)


class Collection:
    """
    Handle to one physical table.

    A handle is cheap to create and does not check that the table exists;
    call exists() or go through CollectionCache.
    """

    def __init__(self, database: "Database", name: str) -> None:
        self.database = database
        self.name = _validate_identifier(name, "table")

    def __repr__(self) -> str:
        return f"Collection({self.name!r})"

    def exists(self) -> bool:
        return self.database.has_table(self.name)

    def find(self, column: Optional[str] = None, value: Any = None, op: str = "=") -> "Result":
        """
        Start a query over this table, optionally filtered by one predicate.

            collection.find()                        # every row
            collection.find("name", "CAN")           # name = 'CAN'
            collection.find("name", "CAN", op=">=")  # name >= 'CAN'
        """
        result = Result(collection=self)
        if column is not None:
            result = result.and_(column, value, op=op)
        return result


@dataclass(frozen=True)
class Result:
    """
    Immutable SELECT builder over a Collection.

    Every builder method returns a new Result, so a base query can be reused
    with different limits and offsets.
    """
    collection: Collection
    conditions: tuple[tuple[str, str, Any], ...] = ()
    order_column: Optional[str] = None
    limit_value: Optional[int] = None
    offset_value: Optional[int] = None

    def and_(self, column: str, value: Any, op: str = "=") -> "Result":
        condition = (_validate_identifier(column, "column"), _validate_operator(op), value)
        return replace(self, conditions=self.conditions + (condition,))

    def order_by(self, column: str) -> "Result":
        return replace(self, order_column=_validate_identifier(column, "column"))

    def limit(self, n: int) -> "Result":
        return replace(self, limit_value=int(n))

    def offset(self, n: int) -> "Result":
        return replace(self, offset_value=int(n))

    def to_sql(self) -> tuple[str, dict[str, Any]]:
        params: dict[str, Any] = {}
        sql = f"SELECT * FROM {self.collection.name}"

        if self.conditions:
            clauses = []
            for i, (column, op, value) in enumerate(self.conditions):
                clauses.append(f"{column} {op} :w{i}")
                params[f"w{i}"] = value
            sql += " WHERE " + " AND ".join(clauses)

        if self.order_column is not None:
            sql += f" ORDER BY {self.order_column}"

        if self.limit_value is not None:
            sql += f" LIMIT {self.limit_value}"
            if self.offset_value:
                sql += f" OFFSET {self.offset_value}"
        elif self.offset_value:
            raise ValueError("offset() requires limit()")

        return sql, params

    def all(self) -> list[dict[str, Any]]:
        sql, params = self.to_sql()
        logger.debug("%s %s", sql, params)
        return self.collection.database.fetch_all(sql, params)

    def one(self) -> dict[str, Any]:
        """
        First row of the query.

        Raises:
            ResultNotFoundError: If the query matches no row
        """
        sql, params = self.limit(1).to_sql()
        logger.debug("%s %s", sql, params)
        row = self.collection.database.fetch_one(sql, params)
        if row is None:
            raise ResultNotFoundError(f"no row found in {self.collection.name}")
        return row
