"""Derived order view: filter, search and sort over cached orders.

Pure functions only. The same records and filter state always produce
the same ordered sequence; every call recomputes from scratch.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from .lifecycle import ALL_STATUSES, DEFAULT_LIFECYCLE, StatusLifecycle, normalize_status
from .models import Order

SEARCHABLE_FIELDS: tuple[str, ...] = ("order_id", "customer_name", "marketplace", "source")


@dataclass(frozen=True)
class FilterState:
    """Consumer-owned filter parameters for the derived view."""

    status_filter: str = ALL_STATUSES
    search_term: str = ""


def matches_status(order: Order, status_filter: str) -> bool:
    resolved = normalize_status(status_filter)
    return resolved == ALL_STATUSES or order.status == resolved


def matches_search(order: Order, search_term: str) -> bool:
    """Case-insensitive substring match over the searchable fields.

    A missing or non-string field never matches, but another field may.
    """
    needle = search_term.strip().lower()
    if not needle:
        return True
    for name in SEARCHABLE_FIELDS:
        value = order.get(name)
        if isinstance(value, str) and needle in value.lower():
            return True
    return False


def _sort_key(order: Order) -> tuple[int, float, str]:
    stamp: datetime | None = order.sort_timestamp
    if stamp is None:
        # Undated records sort after every dated one.
        return (1, 0.0, order.id)
    return (0, -stamp.timestamp(), order.id)


def compose_view(orders: Iterable[Order], filter_state: FilterState | None = None) -> list[Order]:
    """Filter by status, narrow by search term, sort most-recent-first.

    Ties on the timestamp are broken by record id.
    """
    state = filter_state or FilterState()
    selected = [
        order
        for order in orders
        if matches_status(order, state.status_filter) and matches_search(order, state.search_term)
    ]
    return sorted(selected, key=_sort_key)


def status_counts(
    orders: Iterable[Order],
    lifecycle: StatusLifecycle = DEFAULT_LIFECYCLE,
) -> dict[str, int]:
    """Per-status counts, zero-filled; the values sum to the number of orders."""
    return lifecycle.counts(order.status for order in orders)
