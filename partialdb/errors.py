from __future__ import annotations

from typing import Any


class PartialDbError(Exception):
    """Base exception for partialdb errors."""


class ConstructionValidationError(PartialDbError):
    """A PartialMutation was configured with missing or invalid options."""


class TypeMismatchError(PartialDbError, TypeError):
    """The target record is not an instance of the operation's record type."""


class FieldResolutionError(PartialDbError):
    """A named field is missing from the record or from the field map."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"invalid field: {field}")


class EmptyColumnsError(PartialDbError):
    """A statement would be built with no columns, or columns and values disagree."""


class NotFoundError(PartialDbError):
    """Base for conditions that map to a not-found response."""


class WriteHadNoEffectError(NotFoundError):
    """An INSERT or UPDATE affected zero rows."""

    def __init__(self, operation: str, resource: Any) -> None:
        self.operation = operation
        self.resource = resource
        super().__init__(
            f"operation {operation} can not be performed, zero rows affected, resource {resource}"
        )


class ResultNotFoundError(NotFoundError):
    """A read expected one row and found none."""
