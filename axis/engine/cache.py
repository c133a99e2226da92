"""
axis.engine.cache — Reactive In-Memory Local Cache
===================================================

One ordered container per mirrored collection (profiles with embedded
proofs, projects, broadcasts, notifications, events).  Every entity is an
immutable snapshot of the last successful remote read or write.

Two writers share the same narrow primitives:
  - the invalidation subscriber uses :meth:`LocalCache.replace_all`;
  - the mutation coordinator uses :meth:`patch_one`, :meth:`remove_one`
    and :meth:`insert_one` after the store has confirmed a write.

Subscribers are notified once per logical operation, never per field.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from axis.constants import COLLECTIONS, EVENT_LOG_LIMIT, EVENTS

logger = logging.getLogger(__name__)

# (collection, items) → None
Subscriber = Callable[[str, list[Any]], None]


class LocalCache:
    """Thread-safe reactive mirror of the remote collections.

    Usage:
        cache = LocalCache()
        unsubscribe = cache.subscribe("profiles", on_profiles)

        cache.replace_all("profiles", snapshots)
        cache.patch_one("profiles", profile_id, {"trust_modifier": 5})
        profiles = cache.get("profiles")
    """

    def __init__(self, event_log_limit: int = EVENT_LOG_LIMIT) -> None:
        self._lock = threading.Lock()
        self._event_log_limit = event_log_limit
        # collection → ordered tuple of snapshots
        self._collections: dict[str, tuple[Any, ...]] = {name: () for name in COLLECTIONS}
        # collection → callbacks, in registration order
        self._subscribers: dict[str, list[Subscriber]] = {name: [] for name in COLLECTIONS}

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, collection: str) -> list[Any]:
        """Return the ordered snapshots currently held for *collection*."""
        self._check(collection)
        with self._lock:
            return list(self._collections[collection])

    def find(self, collection: str, entity_id: str) -> Any | None:
        self._check(collection)
        with self._lock:
            for item in self._collections[collection]:
                if item.id == entity_id:
                    return item
        return None

    # -------------------------------------------------------------------
    # Writes (each notifies subscribers exactly once)
    # -------------------------------------------------------------------
    def replace_all(self, collection: str, items: Iterable[Any]) -> None:
        """Replace the whole collection with *items*."""
        self._check(collection)
        snapshot = tuple(items)
        if collection == EVENTS:
            snapshot = snapshot[: self._event_log_limit]
        with self._lock:
            self._collections[collection] = snapshot
        self._notify(collection, snapshot)

    def patch_one(self, collection: str, entity_id: str, partial: Mapping[str, Any]) -> Any | None:
        """Apply *partial* to the entity with *entity_id*.

        Returns the patched snapshot, or ``None`` (and notifies nobody)
        when the entity is not cached.
        """
        self._check(collection)
        with self._lock:
            items = list(self._collections[collection])
            for index, item in enumerate(items):
                if item.id == entity_id:
                    patched = dataclasses.replace(item, **partial)
                    items[index] = patched
                    break
            else:
                logger.debug("patch_one: %s/%s not cached", collection, entity_id)
                return None
            snapshot = tuple(items)
            self._collections[collection] = snapshot
        self._notify(collection, snapshot)
        return patched

    def remove_one(self, collection: str, entity_id: str) -> bool:
        """Drop the entity with *entity_id*.  Returns True if it was cached."""
        self._check(collection)
        with self._lock:
            before = self._collections[collection]
            snapshot = tuple(item for item in before if item.id != entity_id)
            if len(snapshot) == len(before):
                return False
            self._collections[collection] = snapshot
        self._notify(collection, snapshot)
        return True

    def insert_one(self, collection: str, item: Any, *, front: bool = True) -> None:
        """Insert a confirmed new entity (replacing any same-id entry).

        Collections are newest-first, so *front* is the default.  The
        events collection is trimmed to its cap.
        """
        self._check(collection)
        with self._lock:
            rest = [x for x in self._collections[collection] if x.id != item.id]
            items = [item, *rest] if front else [*rest, item]
            if collection == EVENTS:
                items = items[: self._event_log_limit]
            snapshot = tuple(items)
            self._collections[collection] = snapshot
        self._notify(collection, snapshot)

    def clear(self) -> None:
        """Empty every collection (session teardown)."""
        for collection in COLLECTIONS:
            self.replace_all(collection, ())

    # -------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------
    def subscribe(self, collection: str, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* for changes to *collection*.

        Returns a zero-argument function that removes the subscription.
        """
        self._check(collection)
        with self._lock:
            self._subscribers[collection].append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscribers[collection].remove(callback)
                except ValueError:
                    pass

        return _unsubscribe

    def _notify(self, collection: str, snapshot: tuple[Any, ...]) -> None:
        with self._lock:
            callbacks = list(self._subscribers[collection])
        for callback in callbacks:
            try:
                callback(collection, list(snapshot))
            except Exception:
                logger.exception("Cache subscriber failed for '%s'", collection)

    @staticmethod
    def _check(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(
                f"Unknown collection: '{collection}'. Allowed: {list(COLLECTIONS)}"
            )
