from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from .config import DEFAULT_PAGE_SIZE, MutationConfig
from .db.cache import CollectionCache
from .db.database import Database
from .db.helpers import _validate_identifier
from .db.tx import DbExecutor
from .errors import (
    ConstructionValidationError,
    EmptyColumnsError,
    ResultNotFoundError,
    TypeMismatchError,
    WriteHadNoEffectError,
)
from .fields import FieldMap, populate_record, resolve_excluding, resolve_including
from .metrics import instrumented

logger = logging.getLogger(__name__)


@dataclass
class Page:
    """
    One page of list() results.

    next_page_token is "" on the last page. probe_succeeded is False when the
    lookup of the next page failed; the token is then "" as well, but more
    rows may exist.
    """
    items: list[Any] = field(default_factory=list)
    next_page_token: str = ""
    probe_succeeded: bool = True


class PartialMutation:
    """
    Insert and update a policy-selected subset of a record's fields.

        mutation = PartialMutation(
            MutationConfig(
                value=Resource(),
                table="resources",
                session=database,
                include_fields=["name", "display_name"],
                include_update_fields=["display_name", "quantity"],
            )
        )
        mutation.insert(resource, "name", resource.name)

    include_fields has priority over exclude_fields. After a write the row is
    read back into the record, unless the write went through a DbTransaction:
    then the record is left as passed in.
    """

    def __init__(
        self,
        config: MutationConfig,
        *overrides: MutationConfig,
        cache: Optional[CollectionCache] = None,
    ) -> None:
        config = config.merge(*overrides)

        fields_map = None
        if config.fields is not None:
            fields_map = FieldMap.from_specs(config.fields)
        elif config.value is not None and not isinstance(config.value, type):
            try:
                fields_map = FieldMap.from_record(config.value)
            except TypeError as exc:
                raise ConstructionValidationError(f"PartialMutation: {exc}") from exc

        config.validate()

        self.config = config
        self.value = config.value
        self.table = _validate_identifier(config.table, "table")
        self.session = config.session
        self.fields_map: FieldMap = fields_map
        self.include_fields = list(config.include_fields or ())
        self.exclude_fields = list(config.exclude_fields or ())
        self.include_update_fields = (
            None if config.include_update_fields is None else list(config.include_update_fields)
        )
        self.exclude_update_fields = (
            None if config.exclude_update_fields is None else list(config.exclude_update_fields)
        )

        self.cache = cache if cache is not None else self.session.collections
        self.col = self.cache.ensure(self.session, self.table)

    def _check_target(self, target: Any) -> None:
        if target is None or not isinstance(target, type(self.value)):
            raise TypeMismatchError(
                f"expecting a {type(self.value).__name__} instance but got {type(target).__name__}"
            )
        params = getattr(target, "__dataclass_params__", None)
        if params is not None and params.frozen:
            raise TypeMismatchError(f"expecting a mutable record but got frozen {type(target).__name__}")

    def columns_values(
        self,
        value: Any,
        include_fields: Sequence[str],
        exclude_fields: Sequence[str],
    ) -> tuple[list[str], list[Any]]:
        """Resolve in include mode when include_fields is non-empty, else in exclude mode."""
        if include_fields:
            return resolve_including(value, include_fields, self.fields_map)
        return resolve_excluding(value, exclude_fields, self.fields_map)

    def update_fields(self, field_mask: Optional[Sequence[str]] = None) -> tuple[list[str], list[str]]:
        """
        Effective (include, exclude) lists for an update.

        The update overrides replace the generic lists when configured. A
        non-empty field mask narrows the result: in include mode it keeps the
        masked fields that are included, in mask order; in exclude mode the
        mask minus the excluded fields becomes the include list.
        """
        include_fields = self.include_fields
        if self.include_update_fields is not None:
            include_fields = self.include_update_fields

        exclude_fields = self.exclude_fields
        if self.exclude_update_fields is not None:
            exclude_fields = self.exclude_update_fields

        if not field_mask:
            return list(include_fields), list(exclude_fields)

        if include_fields:
            allowed = set(include_fields)
            return [f for f in field_mask if f in allowed], []

        excluded = set(exclude_fields)
        return [f for f in field_mask if f not in excluded], []

    @instrumented("insert")
    def insert(
        self,
        target: Any,
        where_column: str,
        where_value: Any,
        extra_fields: Optional[Mapping[str, Any]] = None,
        *,
        session: Optional[DbExecutor] = None,
    ) -> None:
        """
        Insert the configured fields of target, then read the row back into it.

        extra_fields are column -> value pairs written as-is, after the
        resolved ones. The row is read back with where_column = where_value,
        through session when it is a Database. where_column is validated before
        anything is written.

        Raises:
            TypeMismatchError: target is not an instance of the record type
            FieldResolutionError: an included field is unknown
            EmptyColumnsError: nothing to write
            WriteHadNoEffectError: zero rows affected
        """
        self._check_target(target)
        sess = session if session is not None else self.session

        if self.include_fields:
            columns, values = self.columns_values(target, self.include_fields, ())
        else:
            columns, values = self.columns_values(target, (), self.exclude_fields)

        for column, val in (extra_fields or {}).items():
            columns.append(column)
            values.append(val)

        self._check_columns(columns, values)

        for column in columns:
            _validate_identifier(column, "column")
        _validate_identifier(where_column, "column")
        placeholders = ", ".join(f":v{i}" for i in range(len(columns)))
        sql = f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders})"
        params = {f"v{i}": val for i, val in enumerate(values)}

        logger.debug("%s %s", sql, params)
        if sess.execute(sql, params) == 0:
            raise WriteHadNoEffectError("insert", where_value)

        if sess.in_transaction:
            return

        self._read_back(sess, target, where_column, where_value)

    @instrumented("update")
    def update(
        self,
        target: Any,
        where_column: str,
        where_value: Any,
        field_mask: Optional[Sequence[str]] = None,
        extra_fields: Optional[Mapping[str, Any]] = None,
        *,
        session: Optional[DbExecutor] = None,
    ) -> None:
        """
        Update the configured fields of target where where_column = where_value,
        then read the row back into it.

        field_mask, when non-empty, narrows the configured fields (see
        update_fields()). A Database passed as session is also used for the
        read-back.

        Raises:
            TypeMismatchError: target is not an instance of the record type
            FieldResolutionError: an included or masked field is unknown
            EmptyColumnsError: nothing to write
            WriteHadNoEffectError: zero rows affected
        """
        self._check_target(target)
        sess = session if session is not None else self.session

        include_fields, exclude_fields = self.update_fields(field_mask)
        if field_mask:
            columns, values = resolve_including(target, include_fields, self.fields_map)
        else:
            columns, values = self.columns_values(target, include_fields, exclude_fields)

        for column, val in (extra_fields or {}).items():
            columns.append(column)
            values.append(val)

        self._check_columns(columns, values)

        assignments = dict(zip(columns, values))
        set_clause = ", ".join(
            f"{_validate_identifier(column, 'column')} = :v{i}"
            for i, column in enumerate(assignments)
        )
        sql = (
            f"UPDATE {self.table} SET {set_clause} "
            f"WHERE {_validate_identifier(where_column, 'column')} = :where_value"
        )
        params = {f"v{i}": val for i, val in enumerate(assignments.values())}
        params["where_value"] = where_value

        logger.debug("%s %s", sql, params)
        if sess.execute(sql, params) == 0:
            raise WriteHadNoEffectError("update", where_value)

        if sess.in_transaction:
            return

        self._read_back(sess, target, where_column, where_value)

    @staticmethod
    def _check_columns(columns: Sequence[str], values: Sequence[Any]) -> None:
        if not columns or not values:
            raise EmptyColumnsError("query with zero columns and values")
        if len(columns) != len(values):
            raise EmptyColumnsError("columns and values length mismatch")

    def _read_back(self, sess: DbExecutor, target: Any, where_column: str, where_value: Any) -> None:
        if isinstance(sess, Database) and sess is not self.session:
            collection = sess.collections.ensure_collection(sess, self.table)
        else:
            collection = self.col()
        row = collection.find(where_column, where_value).limit(1).one()
        populate_record(target, row, self.fields_map)

    def _record_from_row(self, row: Mapping[str, Any]) -> Any:
        return populate_record(copy.copy(self.value), row, self.fields_map)

    @instrumented("list")
    def list(
        self,
        order_column: str,
        page_token: str = "",
        where: Optional[Mapping[str, Any]] = None,
        limit: int = 0,
    ) -> Page:
        """
        One page of records ordered by order_column, starting at page_token.

        Paging is inclusive (order_column >= page_token), so a non-unique
        order column may repeat a row at the page boundary. Each where item
        adds an equality predicate.
        """
        if limit <= 0:
            limit = DEFAULT_PAGE_SIZE

        if page_token == "":
            query = self.col().find()
        else:
            query = self.col().find(order_column, page_token, op=">=")

        for column, value in (where or {}).items():
            query = query.and_(column, value)

        query = query.order_by(order_column)
        page = Page(items=[self._record_from_row(row) for row in query.limit(limit).all()])

        try:
            row = query.offset(limit).limit(1).one()
        except ResultNotFoundError:
            return page
        except SQLAlchemyError:
            logger.warning(
                "Next page lookup failed for %s ordered by %s", self.table, order_column, exc_info=True
            )
            page.probe_succeeded = False
            return page

        page.next_page_token = str(row[order_column])
        return page
