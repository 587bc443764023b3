"""Tests for the order status lifecycle."""

from __future__ import annotations

import pytest

from fulfillment_sync.lifecycle import (
    DEFAULT_LIFECYCLE,
    OrderStatus,
    StatusLifecycle,
    normalize_status,
)


class TestDefaultTable:
    def test_states_in_display_order(self) -> None:
        assert DEFAULT_LIFECYCLE.states == ("new", "preparing", "ready_to_ship", "shipped", "cancelled")

    def test_start_state_is_new(self) -> None:
        assert DEFAULT_LIFECYCLE.start == OrderStatus.NEW

    def test_terminal_states_have_no_targets(self) -> None:
        assert DEFAULT_LIFECYCLE.terminal_states == frozenset({"shipped", "cancelled"})
        for state in DEFAULT_LIFECYCLE.terminal_states:
            assert DEFAULT_LIFECYCLE.allowed_targets(state) == frozenset()

    @pytest.mark.parametrize(
        "source,target",
        [
            ("new", "preparing"),
            ("new", "cancelled"),
            ("preparing", "ready_to_ship"),
            ("preparing", "cancelled"),
            ("ready_to_ship", "shipped"),
            ("ready_to_ship", "cancelled"),
        ],
    )
    def test_allowed_transitions(self, source: str, target: str) -> None:
        ok, error = DEFAULT_LIFECYCLE.validate_transition(source, target)
        assert ok is True
        assert error is None

    @pytest.mark.parametrize(
        "source,target",
        [
            ("new", "shipped"),
            ("new", "new"),
            ("preparing", "new"),
            ("ready_to_ship", "preparing"),
        ],
    )
    def test_illegal_transitions(self, source: str, target: str) -> None:
        ok, error = DEFAULT_LIFECYCLE.validate_transition(source, target)
        assert ok is False
        assert "Illegal transition" in error

    def test_terminal_state_rejects_everything(self) -> None:
        for target in DEFAULT_LIFECYCLE.states:
            ok, error = DEFAULT_LIFECYCLE.validate_transition("shipped", target)
            assert ok is False
            assert "terminal" in error

    def test_unknown_status_rejected(self) -> None:
        ok, error = DEFAULT_LIFECYCLE.validate_transition("new", "lost")
        assert ok is False
        assert "Unknown status: lost" == error

    def test_validation_normalizes_case(self) -> None:
        ok, _ = DEFAULT_LIFECYCLE.validate_transition(" NEW ", "Preparing")
        assert ok is True


class TestCoercion:
    def test_known_status_kept(self) -> None:
        assert DEFAULT_LIFECYCLE.coerce("Shipped") == "shipped"

    @pytest.mark.parametrize("value", [None, "", "lost", 3])
    def test_unknown_values_fall_back_to_start(self, value) -> None:
        assert DEFAULT_LIFECYCLE.coerce(value) == "new"

    def test_option_for_unknown_status_is_start_option(self) -> None:
        assert DEFAULT_LIFECYCLE.option("lost").value == "new"

    def test_normalize_status(self) -> None:
        assert normalize_status("  Ready_To_Ship ") == "ready_to_ship"


class TestCounts:
    def test_zero_filled(self) -> None:
        counts = DEFAULT_LIFECYCLE.counts([])
        assert counts == {state: 0 for state in DEFAULT_LIFECYCLE.states}

    def test_counts_sum_to_total(self) -> None:
        counts = DEFAULT_LIFECYCLE.counts(["new", "new", "preparing", "shipped"])
        assert counts["new"] == 2
        assert counts["preparing"] == 1
        assert counts["shipped"] == 1
        assert counts["cancelled"] == 0
        assert sum(counts.values()) == 4


class TestFromConfig:
    def test_builds_lifecycle(self) -> None:
        lifecycle = StatusLifecycle.from_config(
            {
                "states": ["Open", "Closed"],
                "transitions": {"open": ["closed"]},
                "labels": {"open": "Open order"},
            }
        )
        assert lifecycle.start == "open"
        assert lifecycle.terminal_states == frozenset({"closed"})
        assert lifecycle.option("open").label == "Open order"
        assert lifecycle.option("closed").label == "Closed"

    def test_unknown_target_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown target"):
            StatusLifecycle.from_config({"states": ["open"], "transitions": {"open": ["gone"]}})

    def test_start_must_be_a_state(self) -> None:
        with pytest.raises(ValueError, match="Start state"):
            StatusLifecycle.from_config({"states": ["open"], "start": "closed"})


class TestDefaultOptions:
    def test_display_labels_and_icons(self) -> None:
        assert DEFAULT_LIFECYCLE.option("new").label == "Nuevo"
        assert DEFAULT_LIFECYCLE.option("preparing").label == "En Preparación"
        assert DEFAULT_LIFECYCLE.option("ready_to_ship").label == "Listo para Despacho"
        assert DEFAULT_LIFECYCLE.option("shipped").label == "Enviado"
        assert DEFAULT_LIFECYCLE.option("cancelled").label == "Cancelado"
        assert DEFAULT_LIFECYCLE.option("shipped").icon == "✅"
