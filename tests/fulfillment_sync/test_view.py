"""Tests for the derived order view."""

from __future__ import annotations

from fulfillment_sync.lifecycle import DEFAULT_LIFECYCLE
from fulfillment_sync.models import Document, Order
from fulfillment_sync.view import FilterState, compose_view, status_counts

from .conftest import make_order


def ids(orders: list[Order]) -> list[str]:
    return [order.id for order in orders]


class TestStatusFilter:
    def test_all_returns_everything(self) -> None:
        orders = [make_order("1", "new"), make_order("2", "shipped")]
        assert set(ids(compose_view(orders, FilterState()))) == {"1", "2"}

    def test_filter_by_status(self) -> None:
        orders = [make_order("1", "new"), make_order("2", "shipped"), make_order("3", "new")]
        view = compose_view(orders, FilterState(status_filter="new"))
        assert all(order.status == "new" for order in view)
        assert set(ids(view)) == {"1", "3"}

    def test_filter_is_case_insensitive(self) -> None:
        orders = [make_order("1", "preparing")]
        assert ids(compose_view(orders, FilterState(status_filter="Preparing"))) == ["1"]


class TestSearch:
    def test_matches_customer_name_case_insensitively(self) -> None:
        orders = [make_order("1", customer_name="Ana Torres"), make_order("2", customer_name="Bruno")]
        assert ids(compose_view(orders, FilterState(search_term="TORRES"))) == ["1"]

    def test_matches_order_id_marketplace_and_source(self) -> None:
        orders = [
            make_order("1", order_id="ML-555"),
            make_order("2", marketplace="Amazon"),
            make_order("3", source="Shopify", marketplace=None),
        ]
        assert ids(compose_view(orders, FilterState(search_term="ml-5"))) == ["1"]
        assert ids(compose_view(orders, FilterState(search_term="amaz"))) == ["2"]
        assert ids(compose_view(orders, FilterState(search_term="shopi"))) == ["3"]

    def test_missing_field_does_not_match_but_others_may(self) -> None:
        order = Order.from_document(Document(id="x", data={"customer_name": "Carla", "marketplace": None}))
        assert ids(compose_view([order], FilterState(search_term="carla"))) == ["x"]
        assert compose_view([order], FilterState(search_term="mercado")) == []

    def test_blank_search_matches_everything(self) -> None:
        orders = [make_order("1"), make_order("2")]
        assert len(compose_view(orders, FilterState(search_term="   "))) == 2

    def test_search_and_status_combine(self) -> None:
        orders = [
            make_order("1", "new", customer_name="Ana"),
            make_order("2", "shipped", customer_name="Ana"),
        ]
        view = compose_view(orders, FilterState(status_filter="shipped", search_term="ana"))
        assert ids(view) == ["2"]


class TestOrdering:
    def test_most_recent_first(self) -> None:
        orders = [make_order("a", hours=1), make_order("b", hours=5), make_order("c", hours=3)]
        assert ids(compose_view(orders)) == ["b", "c", "a"]

    def test_undated_orders_sort_last(self) -> None:
        undated = Order.from_document(Document(id="u", data={"customer_name": "No date"}))
        orders = [undated, make_order("a", hours=1), make_order("b", hours=2)]
        assert ids(compose_view(orders)) == ["b", "a", "u"]

    def test_ties_broken_by_id(self) -> None:
        orders = [make_order("b", hours=1), make_order("a", hours=1), make_order("c", hours=1)]
        assert ids(compose_view(orders)) == ["a", "b", "c"]

    def test_falls_back_to_created_at(self) -> None:
        created_only = Order.from_document(
            Document(id="c", data={"created_at": "2030-01-01T00:00:00Z"})
        )
        orders = [make_order("a", hours=1), created_only]
        assert ids(compose_view(orders)) == ["c", "a"]


class TestPurity:
    def test_same_input_same_output(self) -> None:
        orders = [make_order(str(i), hours=i % 3) for i in range(10)]
        state = FilterState(search_term="customer")
        assert ids(compose_view(orders, state)) == ids(compose_view(list(reversed(orders)), state))

    def test_input_not_modified(self) -> None:
        orders = [make_order("a", hours=1), make_order("b", hours=2)]
        compose_view(orders)
        assert ids(orders) == ["a", "b"]


class TestStatusCounts:
    def test_counts_from_orders(self) -> None:
        orders = [
            make_order("1", "new"),
            make_order("2", "new"),
            make_order("3", "preparing"),
            make_order("4", "shipped"),
        ]
        counts = status_counts(orders, DEFAULT_LIFECYCLE)
        assert counts == {"new": 2, "preparing": 1, "ready_to_ship": 0, "shipped": 1, "cancelled": 0}

    def test_unknown_status_counted_as_start(self) -> None:
        order = Order.from_document(Document(id="1", data={"status": "lost"}))
        assert status_counts([order])["new"] == 1
