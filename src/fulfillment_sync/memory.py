"""In-memory document store implementing the adapter contract.

Deliveries are scheduled on the running event loop, so a write is never
visible to subscribers synchronously. Without a running loop (plain
synchronous use) deliveries happen immediately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import ulid

from .adapter import ErrorCallback, SnapshotCallback, Unsubscribe
from .models import Document

logger = logging.getLogger(__name__)


class DocumentNotFound(KeyError):
    """Raised when a write targets a missing document."""


@dataclass
class _Subscription:
    path: str
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    active: bool = True


class InMemoryStoreAdapter:
    """A process-local document store with snapshot subscriptions."""

    def __init__(self, id_factory: Callable[[], str] | None = None) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscriptions: list[_Subscription] = []
        self._id_factory = id_factory or (lambda: str(ulid.ULID()))

    # ── Direct access ────────────────────────────────────────────

    def documents(self, path: str) -> list[Document]:
        collection = self._collections.get(path, {})
        return [Document(id=doc_id, data=dict(data)) for doc_id, data in collection.items()]

    def seed(self, path: str, documents: Mapping[str, Mapping[str, Any]]) -> None:
        """Replace a collection's content and notify subscribers."""
        self._collections[path] = {doc_id: dict(data) for doc_id, data in documents.items()}
        self._broadcast(path)

    def push_error(self, path: str, exc: BaseException) -> None:
        """Deliver ``exc`` to every subscriber of ``path``."""
        for sub in self._active(path):
            self._schedule(sub, lambda sub=sub: sub.on_error(exc))

    def subscriber_count(self, path: str) -> int:
        return len(self._active(path))

    # ── Adapter contract ─────────────────────────────────────────

    def subscribe(self, path: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> Unsubscribe:
        sub = _Subscription(path=path, on_snapshot=on_snapshot, on_error=on_error)
        self._subscriptions.append(sub)
        self._deliver(sub)

        def _unsubscribe() -> None:
            sub.active = False
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        return _unsubscribe

    async def create(self, path: str, fields: Mapping[str, Any]) -> str:
        record_id = self._id_factory()
        self._collections.setdefault(path, {})[record_id] = dict(fields)
        self._broadcast(path)
        return record_id

    async def update(self, path: str, record_id: str, patch: Mapping[str, Any]) -> None:
        collection = self._collections.get(path, {})
        if record_id not in collection:
            raise DocumentNotFound(f"{path}/{record_id}")
        collection[record_id] = {**collection[record_id], **dict(patch)}
        self._broadcast(path)

    async def remove(self, path: str, record_id: str) -> None:
        collection = self._collections.get(path, {})
        if record_id not in collection:
            raise DocumentNotFound(f"{path}/{record_id}")
        del collection[record_id]
        self._broadcast(path)

    # ── Internal ─────────────────────────────────────────────────

    def _active(self, path: str) -> list[_Subscription]:
        return [sub for sub in self._subscriptions if sub.active and sub.path == path]

    def _broadcast(self, path: str) -> None:
        for sub in self._active(path):
            self._deliver(sub)

    def _deliver(self, sub: _Subscription) -> None:
        snapshot = self.documents(sub.path)
        self._schedule(sub, lambda: sub.on_snapshot(snapshot))

    @staticmethod
    def _schedule(sub: _Subscription, callback: Callable[[], None]) -> None:
        def _run() -> None:
            # Unsubscribed after scheduling: drop the delivery.
            if sub.active:
                callback()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _run()
            return
        loop.call_soon(_run)
