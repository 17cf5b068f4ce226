from .config import DEFAULT_PAGE_SIZE, MutationConfig
from .db import CollectionCache, Database, DbTransaction
from .fields import FieldMap, FieldSpec
from .mutation import Page, PartialMutation

__all__ = [
    "PartialMutation",
    "MutationConfig",
    "Page",
    "FieldMap",
    "FieldSpec",
    "Database",
    "DbTransaction",
    "CollectionCache",
    "DEFAULT_PAGE_SIZE",
]
