"""Session gate: the (actor_id, ready) signal the engine reacts to.

How the session is established is outside the engine. Producers call
:meth:`SessionGate.publish`; listeners only hear about real transitions.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SessionListener = Callable[["SessionState"], None]


@dataclass(frozen=True)
class SessionState:
    """Current session identity and readiness."""

    actor_id: str | None = None
    ready: bool = False

    @property
    def authenticated(self) -> bool:
        return self.ready and bool(self.actor_id)


class SessionGate:
    """Holds the session state and notifies listeners on change."""

    def __init__(self, actor_id: str | None = None, ready: bool = False) -> None:
        self._state = SessionState(actor_id=actor_id, ready=ready)
        self._listeners: list[SessionListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    def publish(self, actor_id: str | None, ready: bool) -> bool:
        """Publish a new session state.

        Returns True if the state changed (and listeners were notified),
        False if it was identical to the current one.
        """
        new_state = SessionState(actor_id=actor_id or None, ready=ready)
        if new_state == self._state:
            return False
        self._state = new_state
        logger.debug("Session changed: actor=%s ready=%s", new_state.actor_id, new_state.ready)
        for listener in list(self._listeners):
            listener(new_state)
        return True

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove
