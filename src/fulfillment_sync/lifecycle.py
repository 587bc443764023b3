"""Order status lifecycle: state set, transition table and validation.

Implements the fulfillment state machine. The allowed targets from each
state are a static table; states without targets are terminal.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

ALL_STATUSES = "all"


class OrderStatus(StrEnum):
    """Default fulfillment states."""

    NEW = "new"
    PREPARING = "preparing"
    READY_TO_SHIP = "ready_to_ship"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StatusOption:
    """Display details for one status value."""

    value: str
    label: str
    icon: str = ""


def normalize_status(status: str) -> str:
    """Normalize a status value for comparison (strip + lowercase)."""
    return status.strip().lower()


@dataclass(frozen=True)
class StatusLifecycle:
    """A finite status state machine.

    ``transitions`` maps every state to the set of states it may advance
    to. ``start`` is the state every new order is created in.
    """

    states: tuple[str, ...]
    start: str
    transitions: Mapping[str, frozenset[str]]
    options: Mapping[str, StatusOption] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.states:
            raise ValueError("A lifecycle needs at least one state")
        known = set(self.states)
        if self.start not in known:
            raise ValueError(f"Start state '{self.start}' is not a lifecycle state")
        for source, targets in self.transitions.items():
            if source not in known:
                raise ValueError(f"Unknown state in transition table: {source}")
            unknown = set(targets) - known
            if unknown:
                raise ValueError(
                    f"Unknown target state(s) from {source}: {', '.join(sorted(unknown))}"
                )

    @property
    def terminal_states(self) -> frozenset[str]:
        return frozenset(s for s in self.states if not self.transitions.get(s))

    def is_state(self, status: str) -> bool:
        return normalize_status(status) in self.states

    def is_terminal(self, status: str) -> bool:
        """Check if a status permits no further transitions."""
        return normalize_status(status) in self.terminal_states

    def allowed_targets(self, status: str) -> frozenset[str]:
        return frozenset(self.transitions.get(normalize_status(status), ()))

    def option(self, status: str) -> StatusOption:
        """Display option for a status; unknown values get the start option."""
        resolved = normalize_status(status)
        if resolved in self.options:
            return self.options[resolved]
        return self.options.get(self.start, StatusOption(value=self.start, label=self.start))

    def coerce(self, status: Any) -> str:
        """Return ``status`` as a lifecycle state, or the start state."""
        if isinstance(status, str) and self.is_state(status):
            return normalize_status(status)
        return self.start

    def validate_transition(self, from_status: str, to_status: str) -> tuple[bool, str | None]:
        """Validate a status change. Returns (ok, error_message)."""
        resolved_from = normalize_status(from_status)
        resolved_to = normalize_status(to_status)

        if resolved_from not in self.states:
            return False, f"Unknown status: {from_status}"
        if resolved_to not in self.states:
            return False, f"Unknown status: {to_status}"
        if resolved_from in self.terminal_states:
            return False, f"Status {resolved_from} is terminal; no further transitions"
        if resolved_to not in self.allowed_targets(resolved_from):
            return False, f"Illegal transition: {resolved_from} -> {resolved_to}"
        return True, None

    def counts(self, statuses: Iterable[str]) -> dict[str, int]:
        """Count statuses per state, zero-filled for every state."""
        summary = {state: 0 for state in self.states}
        for status in statuses:
            resolved = self.coerce(status)
            summary[resolved] += 1
        return summary

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> StatusLifecycle:
        """Build a lifecycle from a configuration mapping.

        Expected keys: ``states`` (list), ``start`` (optional, defaults to
        the first state), ``transitions`` (state -> list of targets) and
        optional ``labels`` / ``icons`` (state -> text).
        """
        states = tuple(normalize_status(s) for s in data["states"])
        start = normalize_status(data.get("start") or states[0])
        raw_transitions = data.get("transitions", {})
        transitions = {
            normalize_status(source): frozenset(normalize_status(t) for t in targets)
            for source, targets in raw_transitions.items()
        }
        labels = data.get("labels", {})
        icons = data.get("icons", {})
        options = {
            state: StatusOption(
                value=state,
                label=labels.get(state, state.replace("_", " ").capitalize()),
                icon=icons.get(state, ""),
            )
            for state in states
        }
        return cls(states=states, start=start, transitions=transitions, options=options)


DEFAULT_LIFECYCLE = StatusLifecycle(
    states=tuple(s.value for s in OrderStatus),
    start=OrderStatus.NEW.value,
    transitions={
        OrderStatus.NEW.value: frozenset({OrderStatus.PREPARING.value, OrderStatus.CANCELLED.value}),
        OrderStatus.PREPARING.value: frozenset(
            {OrderStatus.READY_TO_SHIP.value, OrderStatus.CANCELLED.value}
        ),
        OrderStatus.READY_TO_SHIP.value: frozenset(
            {OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value}
        ),
        OrderStatus.SHIPPED.value: frozenset(),
        OrderStatus.CANCELLED.value: frozenset(),
    },
    options={
        OrderStatus.NEW.value: StatusOption("new", "Nuevo", "📦"),
        OrderStatus.PREPARING.value: StatusOption("preparing", "En Preparación", "🛠️"),
        OrderStatus.READY_TO_SHIP.value: StatusOption("ready_to_ship", "Listo para Despacho", "🚚"),
        OrderStatus.SHIPPED.value: StatusOption("shipped", "Enviado", "✅"),
        OrderStatus.CANCELLED.value: StatusOption("cancelled", "Cancelado", "❌"),
    },
)
