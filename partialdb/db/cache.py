from __future__ import annotations

import functools
import logging
import threading
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .collection import Collection
    from .database import Database

logger = logging.getLogger(__name__)

CollectionProvider = Callable[[], "Collection"]


class CollectionCache:
    """
    Thread-safe memo of table handles keyed by table name.

    A handle is only stored once its table has been seen to exist. Entries
    never expire; clear() empties the cache. Concurrent misses for the same
    name share a single lookup.
    """

    def __init__(self) -> None:
        self._collections: dict[str, Collection] = {}
        self._lookup_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._collections)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._collections

    def ensure(self, session: "Database", name: str) -> CollectionProvider:
        """A provider that resolves the handle on every call, going through the cache."""
        return functools.partial(self.ensure_collection, session, name)

    def ensure_collection(self, session: "Database", name: str) -> "Collection":
        """
        Return the cached handle for name, looking it up on a miss.

        When the table does not exist the whole cache and the session's schema
        cache are cleared, and the unverified handle is returned anyway.
        """
        with self._lock:
            collection = self._collections.get(name)
            if collection is not None:
                return collection
            lookup_lock = self._lookup_locks.setdefault(name, threading.Lock())

        with lookup_lock:
            with self._lock:
                collection = self._collections.get(name)
            if collection is not None:
                return collection

            collection = session.collection(name)
            if collection.exists():
                with self._lock:
                    self._collections[name] = collection
                return collection

        logger.info("Collection %s does not exist; clearing collection cache", name)
        self.clear()
        session.clear_cache()
        return collection

    def clear(self) -> None:
        with self._lock:
            self._collections.clear()
            self._lookup_locks.clear()
