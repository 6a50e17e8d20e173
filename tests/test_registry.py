"""Tests for the server registry: lookup, mutation and validation."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from plan10.errors import DuplicateName, InvalidConfig, NotFound
from plan10.models.config import Plan10Config, ServerDefinition
from plan10.services.registry import ServerRegistry, build_server


@pytest.fixture
def registry(sample_config):
    return ServerRegistry(sample_config)


class TestLookup:
    def test_add_then_resolve_by_name_and_host(self):
        reg = ServerRegistry(Plan10Config())
        reg.add(ServerDefinition(name="mac1", host="10.0.0.5", user="ops", port=22))

        by_name = reg.resolve("mac1")
        by_host = reg.resolve("10.0.0.5")
        assert by_name is not None and by_name.endpoint == "ops@10.0.0.5:22"
        assert by_host is by_name

    def test_name_wins_over_host(self, registry):
        # a server whose *name* equals another server's host
        registry.add(ServerDefinition(name="mini.local", host="192.168.1.9", user="root"))
        server = registry.resolve("mini.local")
        assert server is not None
        assert server.host == "192.168.1.9"

    def test_resolve_unknown_returns_none(self, registry):
        assert registry.resolve("nope") is None

    def test_list_is_sorted(self, registry):
        registry.add(ServerDefinition(name="aaa", host="a", user="u"))
        assert [s.name for s in registry.list_servers()] == ["aaa", "mac1", "mini"]

    def test_default(self, registry):
        assert registry.default is not None
        assert registry.default.name == "mac1"

    def test_contains_and_len(self, registry):
        assert "mac1" in registry
        assert "ghost" not in registry
        assert len(registry) == 2


class TestMutation:
    def test_duplicate_rejected_without_mutation(self, registry):
        before = registry.config.model_dump()
        with pytest.raises(DuplicateName):
            registry.add(ServerDefinition(name="mac1", host="other", user="x"))
        assert registry.config.model_dump() == before

    def test_remove_absent_raises(self, registry):
        with pytest.raises(NotFound):
            registry.remove("ghost")
        assert len(registry) == 2

    def test_remove_clears_default(self, registry):
        removed = registry.remove("mac1")
        assert removed.host == "10.0.0.5"
        assert registry.config.client.default_server is None
        assert registry.default is None

    def test_remove_keeps_other_default(self, registry):
        registry.remove("mini")
        assert registry.config.client.default_server == "mac1"

    def test_set_default_unknown(self, registry):
        with pytest.raises(NotFound):
            registry.set_default("ghost")
        assert registry.config.client.default_server == "mac1"

    def test_set_default_none_clears(self, registry):
        registry.set_default(None)
        assert registry.default is None

    def test_update_last_seen(self, registry):
        when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        registry.update_last_seen("mini", when)
        assert registry.get("mini").last_seen == when

    def test_update_last_seen_defaults_to_now(self, registry):
        registry.update_last_seen("mac1")
        seen = registry.get("mac1").last_seen
        assert seen is not None
        assert (datetime.now(timezone.utc) - seen).total_seconds() < 60

    def test_update_last_seen_unknown(self, registry):
        with pytest.raises(NotFound):
            registry.update_last_seen("ghost")


class TestValidate:
    def test_sample_is_valid(self, registry):
        registry.validate()

    def test_name_key_mismatch(self, registry):
        registry.config.servers["other"] = ServerDefinition(name="x", host="h", user="u")
        with pytest.raises(InvalidConfig, match="mismatch"):
            registry.validate()

    @pytest.mark.parametrize("port", [0, 65536])
    def test_invalid_port(self, registry, port):
        registry.config.servers["bad"] = ServerDefinition.model_construct(
            name="bad", host="h", user="u", port=port, tags=[], enabled=True,
        )
        with pytest.raises(InvalidConfig, match="port"):
            registry.validate()

    def test_empty_host(self, registry):
        registry.config.servers["bad"] = ServerDefinition.model_construct(
            name="bad", host=" ", user="u", port=22, tags=[], enabled=True,
        )
        with pytest.raises(InvalidConfig, match="empty host"):
            registry.validate()

    def test_dangling_default(self, registry):
        registry.config.client.default_server = "ghost"
        with pytest.raises(InvalidConfig, match="Default server"):
            registry.validate()

    def test_temp_threshold_out_of_range(self, registry):
        registry.config.server.temp_threshold = 151.0
        with pytest.raises(InvalidConfig, match="temperature"):
            registry.validate()

    def test_battery_level_out_of_range(self, registry):
        registry.config.server.battery_warning_level = 101
        with pytest.raises(InvalidConfig, match="battery"):
            registry.validate()

    def test_model_rejects_bad_port(self):
        with pytest.raises(ValidationError):
            ServerDefinition(name="x", host="h", user="u", port=70000)

    def test_model_rejects_empty_user(self):
        with pytest.raises(ValidationError):
            ServerDefinition(name="x", host="h", user="")


class TestBuildServer:
    def test_valid_input(self):
        server = build_server(name="lab", host="lab.local", user="ops", port=2222)
        assert server.endpoint == "ops@lab.local:2222"

    def test_bad_fields_are_invalid_config(self):
        with pytest.raises(InvalidConfig) as excinfo:
            build_server(name="lab", host="", user="ops", port=0)
        message = str(excinfo.value)
        assert "'lab'" in message
        assert "host" in message
        assert "port" in message
