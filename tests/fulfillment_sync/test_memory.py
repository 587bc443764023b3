"""Tests for the in-memory store adapter."""

from __future__ import annotations

import pytest

from fulfillment_sync.adapter import RemoteStoreAdapter
from fulfillment_sync.memory import DocumentNotFound, InMemoryStoreAdapter
from fulfillment_sync.models import Document

from .conftest import flush


class Recorder:
    def __init__(self) -> None:
        self.snapshots: list[list[Document]] = []
        self.errors: list[BaseException] = []

    def on_snapshot(self, documents: list[Document]) -> None:
        self.snapshots.append(documents)

    def on_error(self, exc: BaseException) -> None:
        self.errors.append(exc)


class TestInMemoryStoreAdapter:
    def test_satisfies_protocol(self, memory_adapter: InMemoryStoreAdapter) -> None:
        assert isinstance(memory_adapter, RemoteStoreAdapter)

    def test_subscribe_delivers_current_content(self, memory_adapter: InMemoryStoreAdapter) -> None:
        memory_adapter.seed("c", {"a": {"x": 1}})
        recorder = Recorder()

        memory_adapter.subscribe("c", recorder.on_snapshot, recorder.on_error)

        assert recorder.snapshots == [[Document(id="a", data={"x": 1})]]

    def test_unsubscribe_stops_deliveries(self, memory_adapter: InMemoryStoreAdapter) -> None:
        recorder = Recorder()
        unsubscribe = memory_adapter.subscribe("c", recorder.on_snapshot, recorder.on_error)
        unsubscribe()
        memory_adapter.seed("c", {"a": {}})
        assert len(recorder.snapshots) == 1
        assert memory_adapter.subscriber_count("c") == 0

    @pytest.mark.asyncio
    async def test_writes_deliver_after_yield(self, memory_adapter: InMemoryStoreAdapter) -> None:
        recorder = Recorder()
        memory_adapter.subscribe("c", recorder.on_snapshot, recorder.on_error)
        await flush()

        record_id = await memory_adapter.create("c", {"status": "new"})
        assert len(recorder.snapshots) == 1
        await flush()

        assert record_id == "rec-1"
        assert recorder.snapshots[-1] == [Document(id="rec-1", data={"status": "new"})]

    @pytest.mark.asyncio
    async def test_update_merges_patch(self, memory_adapter: InMemoryStoreAdapter) -> None:
        memory_adapter.seed("c", {"a": {"status": "new", "customer_name": "Ana"}})

        await memory_adapter.update("c", "a", {"status": "preparing"})

        assert memory_adapter.documents("c")[0].data == {"status": "preparing", "customer_name": "Ana"}

    @pytest.mark.asyncio
    async def test_missing_document(self, memory_adapter: InMemoryStoreAdapter) -> None:
        with pytest.raises(DocumentNotFound):
            await memory_adapter.update("c", "nope", {})
        with pytest.raises(DocumentNotFound):
            await memory_adapter.remove("c", "nope")

    @pytest.mark.asyncio
    async def test_delivery_dropped_if_unsubscribed_before_it_runs(
        self, memory_adapter: InMemoryStoreAdapter
    ) -> None:
        memory_adapter.seed("c", {"a": {}})
        recorder = Recorder()
        unsubscribe = memory_adapter.subscribe("c", recorder.on_snapshot, recorder.on_error)
        unsubscribe()
        await flush()
        assert recorder.snapshots == []

    def test_push_error(self, memory_adapter: InMemoryStoreAdapter) -> None:
        recorder = Recorder()
        memory_adapter.subscribe("c", recorder.on_snapshot, recorder.on_error)
        memory_adapter.push_error("c", RuntimeError("boom"))
        assert [str(e) for e in recorder.errors] == ["boom"]
