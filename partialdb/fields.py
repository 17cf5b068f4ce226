"""
Field maps and column/value resolution for partial mutations.

A FieldMap translates a record's logical field names into physical column
names. It is built once per record type, either from an explicit table of
FieldSpec entries or from the record's dataclass declarations:

    @dataclass
    class Resource:
        name: str = field(default="", metadata={"db": "name"})
        display_name: str = field(default="", metadata={"db": "display_name"})
        create_time: datetime | None = field(default=None, metadata={"db": "-"})

Fields with no "db" metadata, or with "-", are not persisted.
"""
from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from .errors import FieldResolutionError

DB_METADATA_KEY = "db"
IGNORE_TAG = "-"


@dataclass(frozen=True)
class FieldSpec:
    """One row of an explicit field declaration table."""
    name: str
    column: str
    persisted: bool = True


class FieldMap(Mapping[str, str]):
    """Immutable logical field name -> physical column name mapping."""

    def __init__(self, columns: Mapping[str, str]) -> None:
        self._columns = MappingProxyType(dict(columns))

    @classmethod
    def from_specs(cls, specs: Iterable[FieldSpec]) -> "FieldMap":
        return cls({s.name: s.column for s in specs if s.persisted and s.column})

    @classmethod
    def from_record(cls, record: Any) -> "FieldMap":
        """
        Build the map from the dataclass declarations of a record type or instance.

        The "db" metadata value may carry options after a comma ("name,omitempty");
        only the column part is kept.
        """
        if not dataclasses.is_dataclass(record):
            raise TypeError(
                f"cannot derive a field map from {type(record).__name__}; "
                "declare the fields explicitly with FieldSpec"
            )

        columns = {}
        for f in dataclasses.fields(record):
            tag = f.metadata.get(DB_METADATA_KEY, "")
            if not tag or tag == IGNORE_TAG:
                continue
            columns[f.name] = tag.split(",", 1)[0]
        return cls(columns)

    def __getitem__(self, name: str) -> str:
        return self._columns[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __repr__(self) -> str:
        return f"FieldMap({dict(self._columns)!r})"

    def logical_names(self) -> dict[str, str]:
        """Reverse mapping, column -> logical field name."""
        return {column: name for name, column in self._columns.items()}


def record_values(value: Any) -> dict[str, Any]:
    """Flatten a record into {logical field name: current value}."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return dict(value)
    return dict(vars(value))


def resolve_including(
    value: Any,
    fields: Sequence[str],
    field_map: Mapping[str, str],
) -> tuple[list[str], list[Any]]:
    """
    Columns and values for exactly the given fields, in the given order.

    Raises:
        FieldResolutionError: a field is not on the record or has no column
    """
    values_by_name = record_values(value)

    columns: list[str] = []
    values: list[Any] = []
    for name in fields:
        if name not in values_by_name:
            raise FieldResolutionError(name, f"resolve including, invalid field: {name}")
        column = field_map.get(name)
        if not column:
            raise FieldResolutionError(name, f"resolve including, field is not persisted: {name}")

        columns.append(column)
        values.append(values_by_name[name])

    return columns, values


def resolve_excluding(
    value: Any,
    fields: Sequence[str],
    field_map: Mapping[str, str],
) -> tuple[list[str], list[Any]]:
    """
    Columns and values for every mapped field except the given ones.

    Fields without a column are skipped. Output is sorted by column name.
    """
    values_by_name = record_values(value)
    for name in fields:
        values_by_name.pop(name, None)

    pairs = sorted(
        (
            (field_map[name], val)
            for name, val in values_by_name.items()
            if field_map.get(name)
        ),
        key=lambda pair: pair[0],
    )
    return [c for c, _ in pairs], [v for _, v in pairs]


def populate_record(target: Any, row: Mapping[str, Any], field_map: FieldMap) -> Any:
    """Copy the mapped columns of a fetched row onto target, in place."""
    names = field_map.logical_names()
    for column, val in row.items():
        name = names.get(column)
        if name is None:
            continue
        if isinstance(target, dict):
            target[name] = val
        else:
            setattr(target, name, val)
    return target
