"""Tests for engine configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from fulfillment_sync.config import (
    DEFAULT_DEPLOYMENT_ID,
    CollectionConfig,
    ConfigError,
    EngineConfig,
    Visibility,
    load_config,
    parse_config,
)
from fulfillment_sync.lifecycle import DEFAULT_LIFECYCLE


class TestPathResolution:
    def test_public_path_ignores_actor(self) -> None:
        config = EngineConfig(deployment_id="shop")
        assert config.resolve_path("orders", None) == "artifacts/shop/public/data/orders"
        assert config.resolve_path("orders", "actor-1") == "artifacts/shop/public/data/orders"

    def test_private_path_needs_actor(self) -> None:
        config = EngineConfig(deployment_id="shop")
        assert config.resolve_path("integrations", None) is None
        assert (
            config.resolve_path("integrations", "actor-1")
            == "artifacts/shop/users/actor-1/marketplace_integrations"
        )

    def test_unknown_collection(self) -> None:
        assert EngineConfig().resolve_path("invoices", "actor-1") is None

    def test_template_with_unknown_placeholder(self) -> None:
        config = EngineConfig(collections={"orders": CollectionConfig(path="{tenant}/orders")})
        assert config.resolve_path("orders", "actor-1") is None

    def test_public_template_cannot_use_actor(self) -> None:
        config = EngineConfig(
            collections={"orders": CollectionConfig(path="{actor_id}/orders", visibility=Visibility.PUBLIC)}
        )
        assert config.resolve_path("orders", "actor-1") is None


class TestParseConfig:
    def test_defaults(self) -> None:
        config = parse_config({})
        assert config.store is None
        assert config.deployment_id == DEFAULT_DEPLOYMENT_ID
        assert config.has_store_config is False
        assert config.build_lifecycle() is DEFAULT_LIFECYCLE

    def test_empty_store_table_means_unconfigured(self) -> None:
        assert parse_config({"store": {}}).store is None

    def test_invalid_store_rejected(self) -> None:
        with pytest.raises(ConfigError):
            parse_config({"store": {"ws_url": ""}})

    def test_custom_lifecycle(self) -> None:
        config = parse_config(
            {"lifecycle": {"states": ["open", "closed"], "transitions": {"open": ["closed"]}}}
        )
        lifecycle = config.build_lifecycle()
        assert lifecycle.start == "open"
        assert lifecycle.is_terminal("closed")

    def test_invalid_lifecycle_is_config_error(self) -> None:
        config = parse_config({"lifecycle": {"states": ["open"], "transitions": {"open": ["gone"]}}})
        with pytest.raises(ConfigError):
            config.build_lifecycle()


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "absent.toml")
        assert config == EngineConfig()

    def test_reads_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text(
            """
deployment_id = "acme"

[store]
ws_url = "wss://docs.acme.test"
api_url = "https://docs.acme.test/api"

[collections.orders]
path = "tenants/{deployment_id}/orders"
visibility = "public"

[collections.integrations]
path = "tenants/{deployment_id}/users/{actor_id}/integrations"
visibility = "private"
""",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.store is not None
        assert config.store.ws_url == "wss://docs.acme.test"
        assert config.resolve_path("orders", None) == "tenants/acme/orders"
        assert config.resolve_path("integrations", "u1") == "tenants/acme/users/u1/integrations"

    def test_malformed_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text("[store\nws_url = ", encoding="utf-8")
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(path)
