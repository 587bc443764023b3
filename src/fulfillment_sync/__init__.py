"""
Real-time order synchronization and derived-view engine.

Keeps a local cache of remote document collections in sync with:
- Snapshot subscriptions per collection (gated on the session)
- A pure filtered/searched/sorted order view
- Validated mutations with explicit result conditions
- A fixed order-status lifecycle

Network dependencies (httpx, websockets) are lazily imported via
__getattr__ so that ``from fulfillment_sync import SyncEngine`` does not
pull them in.
"""

from .cache import CollectionCache, SubscriptionState
from .config import ConfigError, EngineConfig, load_config
from .engine import SyncEngine, SyncStatus
from .errors import (
    AdapterUnavailable,
    InvalidTransition,
    MutationFailed,
    SyncEngineError,
    SyncError,
    ValidationRejected,
)
from .gateway import MutationGateway, MutationResult, OrderDraft
from .lifecycle import DEFAULT_LIFECYCLE, OrderStatus, StatusLifecycle
from .memory import InMemoryStoreAdapter
from .models import Document, Integration, Order, Record
from .session import SessionGate, SessionState
from .view import FilterState, compose_view, status_counts

# Lazy-loaded names (require 'httpx' and 'websockets' at runtime)
_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "WebSocketStoreAdapter": (".remote", "WebSocketStoreAdapter"),
    "RemoteStoreError": (".remote", "RemoteStoreError"),
}


def __getattr__(name: str):
    if name in _LAZY_IMPORTS:
        module_path, attr = _LAZY_IMPORTS[name]
        import importlib

        mod = importlib.import_module(module_path, __name__)
        return getattr(mod, attr)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "AdapterUnavailable",
    "CollectionCache",
    "ConfigError",
    "DEFAULT_LIFECYCLE",
    "Document",
    "EngineConfig",
    "FilterState",
    "InMemoryStoreAdapter",
    "Integration",
    "InvalidTransition",
    "MutationFailed",
    "MutationGateway",
    "MutationResult",
    "Order",
    "OrderDraft",
    "OrderStatus",
    "Record",
    "RemoteStoreError",
    "SessionGate",
    "SessionState",
    "StatusLifecycle",
    "SubscriptionState",
    "SyncEngine",
    "SyncEngineError",
    "SyncError",
    "SyncStatus",
    "ValidationRejected",
    "WebSocketStoreAdapter",
    "compose_view",
    "load_config",
    "status_counts",
]
