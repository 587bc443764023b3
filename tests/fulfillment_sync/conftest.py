"""Shared fixtures for fulfillment_sync tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from fulfillment_sync.config import EngineConfig
from fulfillment_sync.memory import InMemoryStoreAdapter
from fulfillment_sync.models import Document, Order

ORDERS_PATH = "artifacts/test-app/public/data/orders"
BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def integrations_path(actor_id: str) -> str:
    return f"artifacts/test-app/users/{actor_id}/marketplace_integrations"


def make_order(record_id: str, status: str = "new", hours: int = 0, **fields: Any) -> Order:
    """Build an Order as if delivered by the store."""
    data: dict[str, Any] = {
        "order_id": f"ORD-{record_id}",
        "customer_name": f"Customer {record_id}",
        "marketplace": "MercadoLibre",
        "status": status,
        "order_date": BASE_TIME + timedelta(hours=hours),
    }
    data.update(fields)
    return Order.from_document(Document(id=record_id, data=data))


async def flush() -> None:
    """Let scheduled adapter deliveries run."""
    for _ in range(3):
        await asyncio.sleep(0)


class ManualAdapter:
    """Adapter whose deliveries are triggered by the test."""

    def __init__(self) -> None:
        self.subscriptions: list[dict[str, Any]] = []
        self.writes: list[tuple[str, ...]] = []
        self.fail_subscribe: Exception | None = None
        self.fail_writes: Exception | None = None

    def subscribe(self, path, on_snapshot, on_error):
        if self.fail_subscribe is not None:
            raise self.fail_subscribe
        entry = {"path": path, "on_snapshot": on_snapshot, "on_error": on_error, "active": True}
        self.subscriptions.append(entry)

        def _unsubscribe() -> None:
            entry["active"] = False

        return _unsubscribe

    def latest(self, path: str | None = None) -> dict[str, Any]:
        for entry in reversed(self.subscriptions):
            if path is None or entry["path"] == path:
                return entry
        raise LookupError(path)

    def deliver(self, entry: dict[str, Any], documents: dict[str, dict[str, Any]]) -> None:
        entry["on_snapshot"]([Document(id=k, data=v) for k, v in documents.items()])

    async def create(self, path, fields):
        if self.fail_writes is not None:
            raise self.fail_writes
        self.writes.append(("create", path, dict(fields)))
        return "new-record"

    async def update(self, path, record_id, patch):
        if self.fail_writes is not None:
            raise self.fail_writes
        self.writes.append(("update", path, record_id, dict(patch)))

    async def remove(self, path, record_id):
        if self.fail_writes is not None:
            raise self.fail_writes
        self.writes.append(("remove", path, record_id))


@pytest.fixture
def config() -> EngineConfig:
    """Engine config with a deterministic deployment id and no store."""
    return EngineConfig(deployment_id="test-app")


@pytest.fixture
def memory_adapter() -> InMemoryStoreAdapter:
    counter = iter(range(1, 10_000))
    return InMemoryStoreAdapter(id_factory=lambda: f"rec-{next(counter)}")


@pytest.fixture
def manual_adapter() -> ManualAdapter:
    return ManualAdapter()
