"""Mutation gateway: validated create / advance-status / delete intents.

Pipeline for every operation (checks stop at the first failure and no
adapter call is made):
    1. session ready with an actor id          -> AdapterUnavailable
    2. owning collection path resolvable        -> AdapterUnavailable
    3. operation preconditions                  -> ValidationRejected / InvalidTransition
    4. forward to the adapter                   -> MutationFailed on rejection

The gateway never writes to a cache. The authoritative result of a
successful write arrives later through the collection subscription.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import ulid
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .adapter import RemoteStoreAdapter
from .cache import CollectionCache
from .config import ORDERS
from .errors import (
    AdapterUnavailable,
    InvalidTransition,
    MutationFailed,
    SyncEngineError,
    ValidationRejected,
)
from .lifecycle import DEFAULT_LIFECYCLE, StatusLifecycle, normalize_status
from .models import Integration, Order, now_utc
from .session import SessionGate

logger = logging.getLogger(__name__)

PathResolver = Callable[[str], str | None]


def generate_order_id() -> str:
    """Fallback user-facing order identifier."""
    return f"ORD-{ulid.ULID()}"


class OrderDraft(BaseModel):
    """Caller-supplied order fields for creation."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    order_id: str | None = None
    customer_name: str = Field(min_length=1)
    item: str = Field(min_length=1)
    marketplace: str | None = None
    amount: float | None = None

    @field_validator("order_id", "marketplace", mode="after")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("amount", mode="before")
    @classmethod
    def _blank_amount(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a gateway operation.

    ``error`` is None on success, otherwise the condition that stopped
    the operation.
    """

    operation: str
    record_id: str | None = None
    error: SyncEngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> MutationResult:
        """Raise the carried condition, if any. Returns self on success."""
        if self.error is not None:
            raise self.error
        return self


def _draft_reasons(exc: ValidationError) -> list[str]:
    reasons = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "draft"
        reasons.append(f"{location}: {err.get('msg', 'invalid value')}")
    return reasons


class MutationGateway:
    """Forwards validated order mutations to the remote store."""

    def __init__(
        self,
        adapter: RemoteStoreAdapter,
        session: SessionGate,
        resolve_path: PathResolver,
        orders: CollectionCache[Order],
        integrations: CollectionCache[Integration],
        lifecycle: StatusLifecycle = DEFAULT_LIFECYCLE,
        clock: Callable[[], datetime] = now_utc,
        id_factory: Callable[[], str] = generate_order_id,
    ) -> None:
        self._adapter = adapter
        self._session = session
        self._resolve_path = resolve_path
        self._orders = orders
        self._integrations = integrations
        self._lifecycle = lifecycle
        self._clock = clock
        self._id_factory = id_factory

    def _ready_path(self, collection: str) -> tuple[str, str]:
        """Return (actor_id, path) or raise AdapterUnavailable."""
        state = self._session.state
        if not state.ready:
            raise AdapterUnavailable("Session is not ready")
        if not state.actor_id:
            raise AdapterUnavailable("No actor identity; mutations require a signed-in session")
        path = self._resolve_path(collection)
        if not path:
            raise AdapterUnavailable(f"No resolvable path for collection '{collection}'")
        return state.actor_id, path

    def _linked_marketplace(self, requested: str | None) -> str:
        """Resolve ``requested`` to a linked integration's marketplace name."""
        if not requested:
            raise ValidationRejected("marketplace: select one of the linked marketplaces")
        for integration in self._integrations.values():
            if integration.marketplace.lower() == requested.lower():
                return integration.marketplace
        raise ValidationRejected(f"marketplace: '{requested}' is not a linked marketplace")

    async def create(self, draft: OrderDraft | Mapping[str, Any]) -> MutationResult:
        """Create an order in the start state."""
        operation = "create"
        try:
            actor_id, path = self._ready_path(ORDERS)
            if len(self._integrations) == 0:
                raise ValidationRejected("At least one linked marketplace integration is required")
            if not isinstance(draft, OrderDraft):
                try:
                    draft = OrderDraft.model_validate(dict(draft))
                except ValidationError as exc:
                    raise ValidationRejected(_draft_reasons(exc)) from exc
            marketplace = self._linked_marketplace(draft.marketplace)
        except SyncEngineError as exc:
            logger.debug("Order creation declined: %s", exc)
            return MutationResult(operation, error=exc)

        stamp = self._clock()
        fields: dict[str, Any] = {
            "order_id": draft.order_id or self._id_factory(),
            "customer_name": draft.customer_name,
            "item": draft.item,
            "items": [{"name": draft.item, "qty": 1}],
            "marketplace": marketplace,
            "source": marketplace,
            "amount": draft.amount,
            "status": self._lifecycle.start,
            "order_date": stamp,
            "created_at": stamp,
            "updated_at": stamp,
            "created_by": actor_id,
            "updated_by": actor_id,
        }
        try:
            record_id = await self._adapter.create(path, fields)
        except Exception as exc:
            logger.warning("Order creation failed: %s", exc)
            return MutationResult(operation, error=self._failed(operation, exc))

        logger.info("Order %s created as %s", fields["order_id"], record_id)
        return MutationResult(operation, record_id=record_id)

    async def advance_status(self, record_id: str, target_status: str) -> MutationResult:
        """Move an order to ``target_status`` if the lifecycle allows it.

        Only status, updated_at and updated_by are sent, so concurrent
        edits to other fields are not overwritten.
        """
        operation = "advance_status"
        try:
            actor_id, path = self._ready_path(ORDERS)
            order = self._orders.get(record_id)
            if order is None:
                raise ValidationRejected(f"Unknown order: {record_id}")
            ok, message = self._lifecycle.validate_transition(order.status, target_status)
            if not ok:
                raise InvalidTransition(order.status, target_status, message)
        except SyncEngineError as exc:
            logger.debug("Status change for %s declined: %s", record_id, exc)
            return MutationResult(operation, record_id=record_id, error=exc)

        patch = {
            "status": normalize_status(target_status),
            "updated_at": self._clock(),
            "updated_by": actor_id,
        }
        try:
            await self._adapter.update(path, record_id, patch)
        except Exception as exc:
            logger.warning("Status change for %s failed: %s", record_id, exc)
            return MutationResult(operation, record_id=record_id, error=self._failed(operation, exc))

        logger.info("Order %s advanced %s -> %s", record_id, order.status, patch["status"])
        return MutationResult(operation, record_id=record_id)

    async def remove(self, record_id: str, *, confirmed: bool) -> MutationResult:
        """Delete an order. The caller must have confirmed the intent."""
        operation = "remove"
        try:
            _, path = self._ready_path(ORDERS)
            if not confirmed:
                raise ValidationRejected("Deletion requires explicit confirmation")
        except SyncEngineError as exc:
            return MutationResult(operation, record_id=record_id, error=exc)

        try:
            await self._adapter.remove(path, record_id)
        except Exception as exc:
            logger.warning("Deleting order %s failed: %s", record_id, exc)
            return MutationResult(operation, record_id=record_id, error=self._failed(operation, exc))

        logger.info("Order %s deleted", record_id)
        return MutationResult(operation, record_id=record_id)

    @staticmethod
    def _failed(operation: str, exc: Exception) -> MutationFailed:
        failure = MutationFailed(operation, exc)
        failure.__cause__ = exc
        return failure
