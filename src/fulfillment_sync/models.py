"""Record models materialized from remote documents.

Defines the generic Record, its Order and Integration specializations,
the Document delivery unit and timestamp coercion for store values.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

from .lifecycle import DEFAULT_LIFECYCLE, StatusLifecycle


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def coerce_timestamp(value: Any) -> datetime | None:
    """Coerce a stored timestamp into an aware UTC datetime.

    Accepts datetimes, ISO 8601 strings, epoch seconds and store-native
    ``{"seconds": ..., "nanoseconds": ...}`` mappings. Returns None for
    anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return coerce_timestamp(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    if isinstance(value, Mapping) and "seconds" in value:
        seconds = value.get("seconds")
        nanos = value.get("nanoseconds", 0) or 0
        if not isinstance(seconds, (int, float)) or not isinstance(nanos, (int, float)):
            return None
        return coerce_timestamp(seconds + nanos / 1_000_000_000)
    return None


@dataclass(frozen=True)
class Document:
    """One document as delivered by the store: id plus raw data."""

    id: str
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Record:
    """A remote document materialized into an immutable local value."""

    id: str
    fields: Mapping[str, Any]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **dict(self.fields)}

    @classmethod
    def from_document(cls, document: Document, **kwargs: Any) -> Record:
        data = dict(document.data)
        return cls(
            id=document.id,
            fields=MappingProxyType(data),
            created_at=coerce_timestamp(data.get("created_at")),
            updated_at=coerce_timestamp(data.get("updated_at")),
        )


@dataclass(frozen=True)
class Order(Record):
    """An order record. ``status`` is always a lifecycle state."""

    status: str = DEFAULT_LIFECYCLE.start
    order_date: datetime | None = None

    @property
    def order_id(self) -> str | None:
        return self._text("order_id")

    @property
    def customer_name(self) -> str | None:
        return self._text("customer_name")

    @property
    def item(self) -> str | None:
        return self._text("item")

    @property
    def marketplace(self) -> str | None:
        return self._text("marketplace")

    @property
    def source(self) -> str | None:
        return self._text("source")

    @property
    def amount(self) -> float | None:
        value = self.fields.get("amount")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    @property
    def created_by(self) -> str | None:
        return self._text("created_by")

    @property
    def updated_by(self) -> str | None:
        return self._text("updated_by")

    @property
    def sort_timestamp(self) -> datetime | None:
        """Timestamp used to order the derived view (order date, then creation)."""
        return self.order_date or self.created_at

    def _text(self, key: str) -> str | None:
        value = self.fields.get(key)
        return value if isinstance(value, str) else None

    @classmethod
    def from_document(
        cls,
        document: Document,
        lifecycle: StatusLifecycle = DEFAULT_LIFECYCLE,
        **kwargs: Any,
    ) -> Order:
        data = dict(document.data)
        return cls(
            id=document.id,
            fields=MappingProxyType(data),
            created_at=coerce_timestamp(data.get("created_at")),
            updated_at=coerce_timestamp(data.get("updated_at")),
            status=lifecycle.coerce(data.get("status")),
            order_date=coerce_timestamp(data.get("order_date")),
        )


@dataclass(frozen=True)
class Integration(Record):
    """A linked marketplace integration (read-only)."""

    @property
    def marketplace(self) -> str:
        value = self.fields.get("marketplace")
        return value if isinstance(value, str) else ""

    @property
    def nickname(self) -> str:
        value = self.fields.get("nickname")
        return value if isinstance(value, str) else ""

    @property
    def display_name(self) -> str:
        if self.nickname:
            return f"{self.marketplace} ({self.nickname})"
        return self.marketplace
