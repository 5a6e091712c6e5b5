"""Unit tests for the reconciler plugin system."""

from unittest.mock import MagicMock, patch

import pytest

from config import Config, ReconcilerConfig
from errors import ConfigurationError, SpecValidationError
from plugins.reconcilers.base import ReconcilerPlugin
from plugins.reconcilers.instance import InstanceReconciler
from plugins.registry import PluginRegistry, register_builtin_plugins
from provider import Provider

# ==================== Test Helpers ====================


class DummyReconciler(ReconcilerPlugin):
    """Concrete reconciler for testing."""

    name = "dummy"
    resource_types = ["dummy_resource"]
    schema = {"type": "object", "required": ["size"]}

    async def create(self, spec):
        return {"id": "d-1", **spec}

    async def read(self, state):
        return state

    async def update(self, state, spec):
        return {**state, **spec}

    async def delete(self, state):
        pass

    async def import_state(self, resource_id):
        return {"id": resource_id}


class MultiTypeReconciler(DummyReconciler):
    """Reconciler that handles multiple resource types."""

    name = "multi"
    resource_types = ["type_a", "type_b"]
    schema = None


class ConflictingReconciler(DummyReconciler):
    """Claims a resource type another reconciler already owns."""

    name = "conflicting"
    resource_types = ["dummy_resource"]


class BrokenSchemaReconciler(DummyReconciler):
    """Declares a schema that is not valid JSON Schema."""

    name = "broken_schema"
    resource_types = ["broken_resource"]
    schema = {"type": "not-a-type"}


# ==================== ReconcilerPlugin Tests ====================


class TestReconcilerPluginBase:
    """Tests for the ReconcilerPlugin base class."""

    def test_cannot_instantiate_abstract(self, client_cache):
        with pytest.raises(TypeError):
            ReconcilerPlugin(client_cache)

    def test_keeps_client_cache(self, client_cache):
        reconciler = DummyReconciler(client_cache)
        assert reconciler.clients is client_cache

    def test_default_config(self, client_cache):
        reconciler = DummyReconciler(client_cache)
        assert isinstance(reconciler.config, ReconcilerConfig)

    def test_custom_config(self, client_cache, reconciler_config):
        reconciler = DummyReconciler(client_cache, config=reconciler_config)
        assert reconciler.config is reconciler_config

    def test_validate_spec_uses_schema(self, client_cache):
        reconciler = DummyReconciler(client_cache)
        reconciler.validate_spec({"size": 1})
        with pytest.raises(SpecValidationError):
            reconciler.validate_spec({}, "dummy_resource.a")

    def test_validate_spec_without_schema(self, client_cache):
        MultiTypeReconciler(client_cache).validate_spec({"anything": True})

    @pytest.mark.asyncio
    async def test_lifecycle_calls(self, client_cache):
        reconciler = DummyReconciler(client_cache)
        state = await reconciler.create({"size": 1})
        assert state == {"id": "d-1", "size": 1}
        assert await reconciler.read(state) == state
        assert (await reconciler.update(state, {"size": 2}))["size"] == 2
        assert await reconciler.import_state("d-2") == {"id": "d-2"}


# ==================== PluginRegistry Tests ====================


class TestPluginRegistry:
    """Tests for PluginRegistry."""

    def test_register(self):
        registry = PluginRegistry()
        registry.register_reconciler_plugin(DummyReconciler)

        assert registry.list_reconciler_plugins() == ["dummy"]
        assert registry.list_resource_types() == ["dummy_resource"]

    def test_register_multi_type(self):
        registry = PluginRegistry()
        registry.register_reconciler_plugin(MultiTypeReconciler)
        assert sorted(registry.list_resource_types()) == ["type_a", "type_b"]

    def test_conflicting_resource_type(self):
        registry = PluginRegistry()
        registry.register_reconciler_plugin(DummyReconciler)
        with pytest.raises(ValueError) as exc_info:
            registry.register_reconciler_plugin(ConflictingReconciler)
        assert "already claimed" in str(exc_info.value)

    def test_invalid_schema_rejected(self):
        registry = PluginRegistry()
        with pytest.raises(ValueError) as exc_info:
            registry.register_reconciler_plugin(BrokenSchemaReconciler)
        assert "broken_schema" in str(exc_info.value)
        assert "Invalid schema" in str(exc_info.value)
        assert registry.list_resource_types() == []

    def test_reregister_same_plugin(self):
        registry = PluginRegistry()
        registry.register_reconciler_plugin(DummyReconciler)
        registry.register_reconciler_plugin(DummyReconciler)
        assert registry.list_reconciler_plugins() == ["dummy"]

    def test_unknown_plugin(self):
        registry = PluginRegistry()
        with pytest.raises(ValueError) as exc_info:
            registry.get_reconciler_plugin("missing")
        assert "Unknown reconciler plugin" in str(exc_info.value)

    def test_not_configured(self):
        registry = PluginRegistry()
        registry.register_reconciler_plugin(DummyReconciler)
        with pytest.raises(ValueError) as exc_info:
            registry.get_reconciler_plugin("dummy")
        assert "not configured" in str(exc_info.value)

    def test_configure_injects_cache(self, client_cache, reconciler_config):
        registry = PluginRegistry()
        registry.register_reconciler_plugin(DummyReconciler)
        registry.register_reconciler_plugin(MultiTypeReconciler)
        registry.configure(client_cache, config=reconciler_config)

        dummy = registry.get_reconciler_for_resource_type("dummy_resource")
        multi = registry.get_reconciler_for_resource_type("type_b")
        assert isinstance(dummy, DummyReconciler)
        assert isinstance(multi, MultiTypeReconciler)
        assert dummy.clients is client_cache
        assert multi.clients is client_cache
        assert dummy.config is reconciler_config

    def test_unknown_resource_type(self, client_cache):
        registry = PluginRegistry()
        registry.configure(client_cache)
        assert registry.get_reconciler_for_resource_type("other") is None

    def test_register_builtin_plugins(self):
        registry = PluginRegistry()
        with patch("plugins.registry.entry_points", return_value=[]):
            register_builtin_plugins(registry)
        assert registry.list_resource_types() == ["bingocloud_instance"]

    def test_register_entry_point_plugins(self):
        ep = MagicMock()
        ep.name = "dummy"
        ep.load.return_value = DummyReconciler
        broken = MagicMock()
        broken.name = "broken"
        broken.load.side_effect = ImportError("no module")

        registry = PluginRegistry()
        with patch("plugins.registry.entry_points", return_value=[ep, broken]):
            register_builtin_plugins(registry)

        assert sorted(registry.list_reconciler_plugins()) == ["dummy", "instance"]

    def test_entry_point_with_invalid_schema_skipped(self):
        ep = MagicMock()
        ep.name = "broken_schema"
        ep.load.return_value = BrokenSchemaReconciler

        registry = PluginRegistry()
        with patch("plugins.registry.entry_points", return_value=[ep]):
            register_builtin_plugins(registry)

        assert registry.list_reconciler_plugins() == ["instance"]


# ==================== Provider Tests ====================


class TestProvider:
    """Tests for Provider bootstrap."""

    def test_configure_with_cache(self, client_cache):
        provider = Provider(Config.default())
        assert not provider.configured

        with patch("plugins.registry.entry_points", return_value=[]):
            provider.configure(clients=client_cache)

        assert provider.configured
        assert provider.resource_types() == ["bingocloud_instance"]
        reconciler = provider.reconciler_for("bingocloud_instance")
        assert isinstance(reconciler, InstanceReconciler)
        assert reconciler.clients is client_cache

    def test_reconcilers_share_cache(self, client_cache):
        registry = PluginRegistry()
        registry.register_reconciler_plugin(InstanceReconciler)
        registry.register_reconciler_plugin(DummyReconciler)
        provider = Provider(Config.default(), registry=registry)
        provider.configure(clients=client_cache)

        instance = provider.reconciler_for("bingocloud_instance")
        dummy = provider.reconciler_for("dummy_resource")
        assert instance.clients is dummy.clients

    def test_configure_is_idempotent(self, client_cache):
        provider = Provider(Config.default())
        with patch("plugins.registry.entry_points", return_value=[]):
            first = provider.configure(clients=client_cache)
            second = provider.configure()
        assert first is second

    def test_missing_settings(self):
        provider = Provider(Config.default())
        with patch("plugins.registry.entry_points", return_value=[]):
            with pytest.raises(ConfigurationError):
                provider.configure()
        assert not provider.configured

    @patch("provider.connect")
    def test_configure_connects(self, mock_connect):
        config = Config.default()
        config.provider.endpoint = "https://bingocloud.example.com"
        config.provider.access_key = "AKID"
        config.provider.secret_key = "secret"
        config.provider.insecure_skip_tls = True

        provider = Provider(config)
        with patch("plugins.registry.entry_points", return_value=[]):
            clients = provider.configure()

        mock_connect.assert_called_once_with(
            endpoint="https://bingocloud.example.com",
            access_key="AKID",
            secret_key="secret",
            region="default",
            insecure_skip_tls=True,
            connect_timeout=10,
            read_timeout=60,
        )
        assert clients.ctx is mock_connect.return_value

    def test_reconciler_for_before_configure(self):
        provider = Provider(Config.default())
        with pytest.raises(ValueError):
            provider.reconciler_for("bingocloud_instance")

    def test_reconciler_for_unknown_type(self, client_cache):
        provider = Provider(Config.default())
        with patch("plugins.registry.entry_points", return_value=[]):
            provider.configure(clients=client_cache)
        with pytest.raises(ValueError) as exc_info:
            provider.reconciler_for("bingocloud_volume")
        assert "Unknown resource type" in str(exc_info.value)
