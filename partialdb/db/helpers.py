from __future__ import annotations

import re
from typing import Any

from sqlalchemy.sql.elements import TextClause

_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_OPERATION_RE = re.compile(
    r"^\s*(?:(INSERT)\s+INTO|(UPDATE))\s+[`\"]?([a-zA-Z_][a-zA-Z0-9_]*)",
    re.IGNORECASE,
)

COMPARISON_OPERATORS = frozenset({"=", "!=", "<>", "<", "<=", ">", ">="})


def _validate_identifier(name: str, identifier_type: str = "identifier") -> str:
    """
    Validate that an identifier (table/column name) is safe for SQL interpolation.

    Identifiers are restricted to letters, digits and underscores and must not
    start with a digit. Values never go through here; they always travel as
    bound parameters.

    ⚠️ SECURITY CONTRACT ⚠️
    Validation checks the format only. Identifiers MUST be trusted (declared in
    a field map or hardcoded), never taken directly from user input.

    Raises:
        TypeError: If identifier is not a string
        ValueError: If identifier contains unsafe characters or is invalid

    Example:
        >>> _validate_identifier("resources", "table")
        'resources'
        >>> _validate_identifier("'; DROP TABLE--", "table")
        ValueError: Invalid table '; DROP TABLE--': ...
    """
    if not isinstance(name, str):
        raise TypeError(f"{identifier_type} must be a string, got {type(name).__name__}")

    if not name:
        raise ValueError(f"{identifier_type} cannot be empty")

    if not _IDENTIFIER_RE.match(name):
        raise ValueError(
            f"Invalid {identifier_type} {name!r}: "
            "must start with letter/underscore and contain only alphanumeric characters and underscores"
        )

    if len(name) > 64:
        raise ValueError(f"{identifier_type} {name!r} exceeds the 64-character limit")

    return name


def _validate_operator(op: str) -> str:
    if op not in COMPARISON_OPERATORS:
        raise ValueError(f"Unsupported comparison operator {op!r}")
    return op


def _parse_sql_operation(sql: Any) -> tuple[str, str]:
    """
    Best-effort (table, op_type) extraction for metrics labels.

    op_type is "insert", "update" or "unknown"; table is "unknown" when it
    can not be determined.
    """
    raw = sql.text if isinstance(sql, TextClause) else str(sql)
    match = _OPERATION_RE.match(raw)
    if match is None:
        return "unknown", "unknown"

    op_type = "insert" if match.group(1) else "update"
    return match.group(3), op_type
