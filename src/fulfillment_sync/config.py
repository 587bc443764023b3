"""Engine configuration.

All identifiers the engine needs are passed in explicitly through
:class:`EngineConfig`; nothing in the core reads files or environment
variables. :func:`load_config` is the one place a TOML file is read.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any

import toml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, ValidationError

from .lifecycle import DEFAULT_LIFECYCLE, StatusLifecycle

ORDERS = "orders"
INTEGRATIONS = "integrations"

DEFAULT_DEPLOYMENT_ID = "default-app-id"
DEFAULT_CONFIG_PATH = Path.home() / ".fulfillment-sync" / "config.toml"


class ConfigError(Exception):
    """Raised when configuration cannot be read or validated."""


class Visibility(StrEnum):
    """Whether a collection is shared or scoped to the current actor."""

    PUBLIC = "public"
    PRIVATE = "private"


class CollectionConfig(BaseModel):
    """Path template and visibility of one collection.

    ``path`` may reference ``{deployment_id}``; private collections may
    also reference ``{actor_id}``.
    """

    path: str = Field(min_length=1)
    visibility: Visibility = Visibility.PUBLIC


class StoreConfig(BaseModel):
    """Connection settings for the WebSocket/HTTP document service."""

    ws_url: str = Field(min_length=1)
    api_url: str = Field(min_length=1)
    timeout_seconds: float = 10.0


class LifecycleConfig(BaseModel):
    """Domain configuration of the status state machine."""

    states: list[str] = Field(min_length=1)
    start: str | None = None
    transitions: dict[str, list[str]] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    icons: dict[str, str] = Field(default_factory=dict)


def _default_collections() -> dict[str, CollectionConfig]:
    return {
        ORDERS: CollectionConfig(
            path="artifacts/{deployment_id}/public/data/orders",
            visibility=Visibility.PUBLIC,
        ),
        INTEGRATIONS: CollectionConfig(
            path="artifacts/{deployment_id}/users/{actor_id}/marketplace_integrations",
            visibility=Visibility.PRIVATE,
        ),
    }


class EngineConfig(BaseModel):
    """Everything the engine needs, resolved once at construction."""

    store: StoreConfig | None = None
    deployment_id: str = Field(default=DEFAULT_DEPLOYMENT_ID, min_length=1)
    initial_session_token: str | None = None
    fail_on_missing_config: bool = False
    collections: dict[str, CollectionConfig] = Field(default_factory=_default_collections)
    lifecycle: LifecycleConfig | None = None

    @property
    def has_store_config(self) -> bool:
        return self.store is not None

    def build_lifecycle(self) -> StatusLifecycle:
        if self.lifecycle is None:
            return DEFAULT_LIFECYCLE
        try:
            return StatusLifecycle.from_config(self.lifecycle.model_dump())
        except ValueError as exc:
            raise ConfigError(f"Invalid lifecycle configuration: {exc}") from exc

    def resolve_path(self, collection: str, actor_id: str | None) -> str | None:
        """Format the path of ``collection`` for the given actor.

        Returns None for unknown collections and for private collections
        while no actor is known.
        """
        entry = self.collections.get(collection)
        if entry is None:
            return None
        values = {"deployment_id": self.deployment_id}
        if entry.visibility is Visibility.PRIVATE:
            if not actor_id:
                return None
            values["actor_id"] = actor_id
        try:
            return entry.path.format(**values)
        except (KeyError, IndexError):
            return None


def parse_config(data: dict[str, Any]) -> EngineConfig:
    """Validate a raw mapping (TOML layout) into an EngineConfig."""
    payload = dict(data)
    if "store" in payload and not payload["store"]:
        payload["store"] = None
    try:
        return EngineConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration:\n{exc}") from exc


def load_config(path: Path | None = None) -> EngineConfig:
    """Load configuration from TOML.

    Uses ``~/.fulfillment-sync/config.toml`` when ``path`` is None.
    A missing file yields the defaults (no store configured).
    """
    config_file = path or DEFAULT_CONFIG_PATH
    if not config_file.exists():
        return EngineConfig()
    try:
        data: dict[str, Any] = toml.load(config_file)
    except (toml.TomlDecodeError, OSError) as exc:
        raise ConfigError(f"Cannot read {config_file}: {exc}") from exc
    return parse_config(data)
