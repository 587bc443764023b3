"""SyncEngine: the consumer-facing synchronization and derived-view surface.

Wires the session gate to one collection cache per configured
collection, exposes the derived order view, and routes mutations
through the gateway.

Usage:
    engine = SyncEngine(config, adapter=adapter)
    engine.start()
    engine.session.publish("actor-1", ready=True)

    orders = engine.get_view(FilterState(status_filter="new"))
    result = await engine.advance_order_status(orders[0].id, "preparing")

    await engine.aclose()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any

from .adapter import ErrorCallback, RemoteStoreAdapter, SnapshotCallback, Unsubscribe
from .cache import CollectionCache, SubscriptionState
from .config import INTEGRATIONS, ORDERS, EngineConfig
from .errors import AdapterUnavailable, SyncError
from .gateway import MutationGateway, MutationResult, OrderDraft
from .models import Document, Integration, Order, Record
from .session import SessionGate, SessionState
from .view import FilterState, compose_view, status_counts

logger = logging.getLogger(__name__)

CacheChangedCallback = Callable[[str], None]
SyncErrorCallback = Callable[[SyncError], None]


class SyncStatus(StrEnum):
    """Overall synchronization state shown to the user."""

    UNAVAILABLE = "unavailable"
    CONNECTING = "connecting"
    SYNCED = "synced"
    DEGRADED = "degraded"


class _UnconfiguredAdapter:
    """Stands in for the store when no configuration was provided."""

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def subscribe(self, path: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> Unsubscribe:
        raise AdapterUnavailable(self.reason)

    async def create(self, path: str, fields: Mapping[str, Any]) -> str:
        raise AdapterUnavailable(self.reason)

    async def update(self, path: str, record_id: str, patch: Mapping[str, Any]) -> None:
        raise AdapterUnavailable(self.reason)

    async def remove(self, path: str, record_id: str) -> None:
        raise AdapterUnavailable(self.reason)


class SyncEngine:
    """Real-time order synchronization engine.

    The engine subscribes only while the session is ready. Public
    collections are subscribed for any ready session; private ones also
    need an actor id. When the actor changes, affected caches are torn
    down and rebuilt from scratch.
    """

    def __init__(
        self,
        config: EngineConfig,
        adapter: RemoteStoreAdapter | None = None,
        session: SessionGate | None = None,
    ) -> None:
        self.config = config
        self.lifecycle = config.build_lifecycle()
        self.session = session or SessionGate()
        self.unavailable_reason: str | None = None

        if adapter is None and config.store is not None:
            from .remote import WebSocketStoreAdapter

            adapter = WebSocketStoreAdapter.from_config(config.store, config.initial_session_token)
        if adapter is None:
            reason = "Document store configuration is missing"
            if config.fail_on_missing_config:
                raise AdapterUnavailable(reason)
            logger.warning("%s; synchronization unavailable", reason)
            self.unavailable_reason = reason
            adapter = _UnconfiguredAdapter(reason)
        self.adapter = adapter

        lifecycle = self.lifecycle
        self.orders: CollectionCache[Order] = CollectionCache(
            ORDERS, adapter, lambda doc: Order.from_document(doc, lifecycle=lifecycle)
        )
        self.integrations: CollectionCache[Integration] = CollectionCache(
            INTEGRATIONS, adapter, Integration.from_document
        )
        self._caches: dict[str, CollectionCache[Any]] = {
            ORDERS: self.orders,
            INTEGRATIONS: self.integrations,
        }
        for name in config.collections:
            if name not in self._caches:
                self._caches[name] = CollectionCache(name, adapter, _generic_record)

        self.gateway = MutationGateway(
            adapter,
            self.session,
            self._current_path,
            self.orders,
            self.integrations,
            lifecycle=self.lifecycle,
        )
        self._change_callbacks: list[CacheChangedCallback] = []
        self._error_callbacks: list[SyncErrorCallback] = []
        self._detach: list[Callable[[], None]] = []
        self.started = False

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        """Start reacting to session changes (idempotent)."""
        if self.started:
            return
        self.started = True
        if self.unavailable_reason:
            return
        for name, cache in self._caches.items():
            self._detach.append(cache.on_change(lambda _cache, name=name: self._emit_change(name)))
            self._detach.append(cache.on_error(self._emit_error))
        self._detach.append(self.session.subscribe(self._apply_session))
        self._apply_session(self.session.state)
        logger.debug("SyncEngine started")

    def stop(self) -> None:
        """Tear down every subscription. Safe to call multiple times."""
        if not self.started:
            return
        for cache in self._caches.values():
            cache.unsubscribe()
        for detach in self._detach:
            detach()
        self._detach = []
        self.started = False
        logger.debug("SyncEngine stopped")

    async def aclose(self) -> None:
        """Stop the engine and close the adapter, if it can be closed."""
        self.stop()
        closer = getattr(self.adapter, "aclose", None)
        if closer is not None:
            await closer()

    async def __aenter__(self) -> SyncEngine:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _current_path(self, collection: str) -> str | None:
        state = self.session.state
        if not state.ready:
            return None
        return self.config.resolve_path(collection, state.actor_id)

    def _apply_session(self, state: SessionState) -> None:
        for name, cache in self._caches.items():
            path = self.config.resolve_path(name, state.actor_id) if state.ready else None
            if path is None:
                cache.unsubscribe()
                continue
            try:
                cache.subscribe(path)
            except AdapterUnavailable as exc:
                logger.warning("Cannot subscribe %s: %s", name, exc)
                self._emit_error(SyncError(name, exc))

    # ── Notifications ────────────────────────────────────────────

    def on_cache_changed(self, callback: CacheChangedCallback) -> Callable[[], None]:
        """Call ``callback(collection_name)`` whenever a cache changes."""
        self._change_callbacks.append(callback)
        return _remover(self._change_callbacks, callback)

    def on_sync_error(self, callback: SyncErrorCallback) -> Callable[[], None]:
        """Call ``callback(sync_error)`` on non-fatal subscription errors."""
        self._error_callbacks.append(callback)
        return _remover(self._error_callbacks, callback)

    def _emit_change(self, name: str) -> None:
        for callback in list(self._change_callbacks):
            callback(name)

    def _emit_error(self, error: SyncError) -> None:
        for callback in list(self._error_callbacks):
            callback(error)

    # ── Read side ────────────────────────────────────────────────

    @property
    def sync_status(self) -> SyncStatus:
        if self.unavailable_reason or not self.started or not self.session.state.ready:
            return SyncStatus.UNAVAILABLE
        active = [cache for cache in self._caches.values() if cache.is_active]
        if not active:
            return SyncStatus.UNAVAILABLE
        if any(cache.state is SubscriptionState.ERROR for cache in active):
            return SyncStatus.DEGRADED
        if any(cache.state is SubscriptionState.SUBSCRIBING for cache in active):
            return SyncStatus.CONNECTING
        return SyncStatus.SYNCED

    def cache(self, name: str) -> CollectionCache[Any]:
        return self._caches[name]

    def get_view(self, filter_state: FilterState | None = None) -> list[Order]:
        """Derived order view for the given filter state."""
        return compose_view(self.orders.values(), filter_state)

    def status_counts(self) -> dict[str, int]:
        return status_counts(self.orders.values(), self.lifecycle)

    def linked_integrations(self) -> list[Integration]:
        return sorted(self.integrations.values(), key=lambda i: (i.display_name.lower(), i.id))

    async def wait_until_synced(self, timeout: float | None = None) -> bool:
        """Wait until every active collection has received a snapshot.

        Returns False on timeout.
        """
        if self.sync_status is SyncStatus.SYNCED:
            return True
        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()

        def _check(_name: str) -> None:
            if self.sync_status is SyncStatus.SYNCED and not future.done():
                future.set_result(True)

        remove = self.on_cache_changed(_check)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            return False
        finally:
            remove()

    # ── Mutations ────────────────────────────────────────────────

    def _declined(self, operation: str, record_id: str | None = None) -> MutationResult | None:
        if self.unavailable_reason:
            return MutationResult(operation, record_id=record_id, error=AdapterUnavailable(self.unavailable_reason))
        return None

    async def create_order(self, draft: OrderDraft | Mapping[str, Any]) -> MutationResult:
        declined = self._declined("create")
        if declined is not None:
            return declined
        return await self.gateway.create(draft)

    async def advance_order_status(self, record_id: str, target_status: str) -> MutationResult:
        declined = self._declined("advance_status", record_id)
        if declined is not None:
            return declined
        return await self.gateway.advance_status(record_id, target_status)

    async def delete_order(self, record_id: str, *, confirmed: bool) -> MutationResult:
        """Delete an order whose deletion the user already confirmed."""
        declined = self._declined("remove", record_id)
        if declined is not None:
            return declined
        return await self.gateway.remove(record_id, confirmed=confirmed)


def _generic_record(document: Document) -> Record:
    return Record.from_document(document)


def _remover(listeners: list, callback: object) -> Callable[[], None]:
    def _remove() -> None:
        if callback in listeners:
            listeners.remove(callback)

    return _remove

