"""Remote store adapter contract.

The engine only depends on this protocol. ``subscribe`` registers
callbacks and returns an unsubscribe function; writes are coroutines.
Every snapshot delivery carries the full current document set of the
subscribed collection.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from .models import Document

SnapshotCallback = Callable[[Sequence[Document]], None]
ErrorCallback = Callable[[BaseException], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class RemoteStoreAdapter(Protocol):
    """Capability exposed by the document store."""

    def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe: ...

    async def create(self, path: str, fields: Mapping[str, Any]) -> str: ...

    async def update(self, path: str, record_id: str, patch: Mapping[str, Any]) -> None: ...

    async def remove(self, path: str, record_id: str) -> None: ...
