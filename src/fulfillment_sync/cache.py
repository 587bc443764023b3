"""Collection cache: the local snapshot of one subscribed collection.

Each cache runs a small state machine::

    unsubscribed -> subscribing -> subscribed <-> error
          ^______________________________________|  (unsubscribe)

Only adapter deliveries mutate the records. Every delivery replaces the
cache content with exactly the delivered document set. Deliveries that
belong to a superseded subscription (older generation) are dropped.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from enum import StrEnum
from types import MappingProxyType
from typing import Generic, TypeVar

from .adapter import RemoteStoreAdapter, Unsubscribe
from .errors import AdapterUnavailable, SyncError
from .models import Document, Record

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)

RecordFactory = Callable[[Document], R]
ChangeListener = Callable[["CollectionCache"], None]
ErrorListener = Callable[[SyncError], None]


class SubscriptionState(StrEnum):
    """Lifecycle state of a collection subscription."""

    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"
    ERROR = "error"


class CollectionCache(Generic[R]):
    """Authoritative local copy of one remote collection.

    Thread-safe: deliveries and reads are serialized by an internal lock,
    and ``version`` increments on every reconciliation so readers can
    detect staleness.
    """

    def __init__(
        self,
        name: str,
        adapter: RemoteStoreAdapter,
        factory: RecordFactory[R],
    ) -> None:
        self.name = name
        self._adapter = adapter
        self._factory = factory
        self._records: dict[str, R] = {}
        self._state = SubscriptionState.UNSUBSCRIBED
        self._path: str | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._generation = 0
        self._version = 0
        self._last_error: SyncError | None = None
        self._lock = threading.RLock()
        self._change_listeners: list[ChangeListener] = []
        self._error_listeners: list[ErrorListener] = []

    # ── Read side ────────────────────────────────────────────────

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def path(self) -> str | None:
        return self._path

    @property
    def version(self) -> int:
        return self._version

    @property
    def last_error(self) -> SyncError | None:
        return self._last_error

    @property
    def is_active(self) -> bool:
        return self._state is not SubscriptionState.UNSUBSCRIBED

    def records(self) -> Mapping[str, R]:
        """Read-only copy of the current records keyed by id."""
        with self._lock:
            return MappingProxyType(dict(self._records))

    def values(self) -> list[R]:
        with self._lock:
            return list(self._records.values())

    def get(self, record_id: str) -> R | None:
        with self._lock:
            return self._records.get(record_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._records

    # ── Listeners ────────────────────────────────────────────────

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Call ``listener(cache)`` after every reconciliation or reset."""
        self._change_listeners.append(listener)
        return lambda: self._discard(self._change_listeners, listener)

    def on_error(self, listener: ErrorListener) -> Callable[[], None]:
        """Call ``listener(sync_error)`` when the subscription reports an error."""
        self._error_listeners.append(listener)
        return lambda: self._discard(self._error_listeners, listener)

    @staticmethod
    def _discard(listeners: list, listener: object) -> None:
        if listener in listeners:
            listeners.remove(listener)

    # ── Subscription lifecycle ───────────────────────────────────

    def subscribe(self, path: str) -> None:
        """Subscribe to ``path``.

        A live subscription to the same path is kept as-is. A subscription
        to another path is fully torn down (and its records discarded)
        before the new one is registered.
        """
        with self._lock:
            if self._path == path and self._unsubscribe is not None:
                return
            self._teardown()
            self._generation += 1
            generation = self._generation
            self._path = path
            self._state = SubscriptionState.SUBSCRIBING

        logger.debug("Subscribing %s to %s", self.name, path)
        try:
            unsubscribe = self._adapter.subscribe(
                path,
                lambda documents: self._apply_snapshot(generation, documents),
                lambda exc: self._apply_error(generation, exc),
            )
        except Exception as exc:
            with self._lock:
                if generation == self._generation:
                    self._state = SubscriptionState.ERROR
                    self._last_error = SyncError(self.name, exc)
            raise AdapterUnavailable(f"Cannot subscribe {self.name} to {path}: {exc}") from exc

        with self._lock:
            if generation != self._generation:
                # Torn down while the adapter was registering.
                unsubscribe()
                return
            self._unsubscribe = unsubscribe

    def unsubscribe(self) -> None:
        """Detach from the adapter and discard the cache. Idempotent."""
        with self._lock:
            if not self.is_active and self._unsubscribe is None:
                return
            self._teardown()
        self._notify_change()

    def _teardown(self) -> None:
        # Bumping the generation invalidates any delivery already in flight.
        self._generation += 1
        detach = self._unsubscribe
        self._unsubscribe = None
        self._path = None
        self._state = SubscriptionState.UNSUBSCRIBED
        self._records = {}
        self._last_error = None
        self._version += 1
        if detach is not None:
            logger.debug("Unsubscribing %s", self.name)
            detach()

    # ── Adapter callbacks ────────────────────────────────────────

    def _apply_snapshot(self, generation: int, documents: Sequence[Document]) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping stale delivery for %s", self.name)
                return
            reconciled: dict[str, R] = {}
            for document in documents:
                reconciled[document.id] = self._factory(document)
            self._records = reconciled
            self._state = SubscriptionState.SUBSCRIBED
            self._last_error = None
            self._version += 1
            count = len(reconciled)
        logger.debug("%s reconciled to %d record(s)", self.name, count)
        self._notify_change()

    def _apply_error(self, generation: int, exc: BaseException) -> None:
        with self._lock:
            if generation != self._generation:
                return
            error = SyncError(self.name, exc)
            self._state = SubscriptionState.ERROR
            self._last_error = error
        logger.warning("Sync error on %s (keeping %d cached record(s)): %s", self.name, len(self), exc)
        for listener in list(self._error_listeners):
            listener(error)
        self._notify_change()

    def _notify_change(self) -> None:
        for listener in list(self._change_listeners):
            listener(self)
