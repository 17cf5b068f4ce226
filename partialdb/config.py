from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING, Any, Optional, Sequence

from .errors import ConstructionValidationError

if TYPE_CHECKING:
    from .db.database import Database
    from .fields import FieldSpec


DEFAULT_PAGE_SIZE = 30


@dataclass(frozen=True)
class MutationConfig:
    """
    Options for a PartialMutation.

    Every option defaults to None, meaning "not set". Several configs can be
    combined with merge(); options set in a later config replace the earlier
    ones.

    include_fields has priority over exclude_fields. The *_update_fields
    options override the generic lists for update() only; an empty list is
    still an override.
    """
    value: Any = None
    table: Optional[str] = None
    session: Optional["Database"] = None
    include_fields: Optional[Sequence[str]] = None
    exclude_fields: Optional[Sequence[str]] = None
    include_update_fields: Optional[Sequence[str]] = None
    exclude_update_fields: Optional[Sequence[str]] = None
    # explicit field declarations; derived from the record's dataclass fields when unset
    fields: Optional[Sequence["FieldSpec"]] = None

    def merge(self, *others: "MutationConfig") -> "MutationConfig":
        merged = self
        for other in others:
            changes = {
                f.name: getattr(other, f.name)
                for f in fields(other)
                if getattr(other, f.name) is not None
            }
            merged = replace(merged, **changes)
        return merged

    def validate(self) -> None:
        """Raise ConstructionValidationError naming every unmet requirement."""
        problems = []
        if self.value is None:
            problems.append("value is required")
        elif isinstance(self.value, type):
            problems.append("value must be a record instance, not a type")
        if not self.table:
            problems.append("table is required")
        if self.session is None:
            problems.append("session is required")
        if not self.include_fields and not self.exclude_fields:
            problems.append("included or excluded fields are required")

        if problems:
            raise ConstructionValidationError("PartialMutation: " + "; ".join(problems))
