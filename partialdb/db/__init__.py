from .cache import CollectionCache
from .collection import Collection, Result
from .database import Database
from .tx import DbExecutor, DbTransaction

__all__ = [
    "Database",
    "DbTransaction",
    "DbExecutor",
    "Collection",
    "CollectionCache",
    "Result",
]
