"""Error taxonomy for the synchronization engine.

Every condition the engine reports derives from :class:`SyncEngineError`:

- ``AdapterUnavailable``: the store cannot be reached (session not ready,
  no actor, missing configuration, unresolvable collection path).
- ``SyncError``: a live subscription reported an error; non-fatal, the
  last-known-good cache stays authoritative.
- ``ValidationRejected``: a local precondition failed before the adapter
  was contacted.
- ``InvalidTransition``: the status lifecycle rejected a status change.
- ``MutationFailed``: the adapter rejected a write after preconditions passed.
"""

from __future__ import annotations

from typing import Sequence


class SyncEngineError(Exception):
    """Base class for all engine conditions."""


class AdapterUnavailable(SyncEngineError):
    """Raised when the remote store cannot be used at all."""


class SyncError(SyncEngineError):
    """A live subscription reported an error after it was established."""

    def __init__(self, collection: str, cause: BaseException | None = None) -> None:
        self.collection = collection
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Sync error on collection '{collection}'{detail}")


class ValidationRejected(SyncEngineError):
    """A local precondition failed; the adapter was not contacted."""

    def __init__(self, reasons: str | Sequence[str]) -> None:
        if isinstance(reasons, str):
            reasons = [reasons]
        self.reasons: list[str] = list(reasons)
        super().__init__("; ".join(self.reasons))


class InvalidTransition(SyncEngineError):
    """The requested status change is not allowed by the lifecycle."""

    def __init__(self, from_status: str, to_status: str, message: str | None = None) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message or f"Illegal transition: {from_status} -> {to_status}")


class MutationFailed(SyncEngineError):
    """The adapter rejected a write."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")
