"""Tests for PluginManager: registration, normalisation and hook relay."""

from __future__ import annotations

from typing import Any

import pytest

from pricegraph.plugins import PluginManager, hookimpl


class _DummyPlugin:
    """Minimal plugin for registration tests."""

    @hookimpl
    def post_lint(self, issues_found: int, errors: int, warnings: int, issues: list[dict[str, Any]]) -> None:
        pass


class _NoHooks:
    pass


class _Exploding:
    def __init__(self) -> None:
        raise RuntimeError("boom")

    @hookimpl
    def post_stack(self, notice: Any) -> None:
        pass


class TestPluginManager:
    def test_hook_relay_accessible(self):
        pm = PluginManager()
        assert hasattr(pm.hook, "post_change")
        assert hasattr(pm.hook, "post_lint")

    def test_register_plugin(self):
        pm = PluginManager()
        pm.register_plugin(_DummyPlugin(), name="dummy")
        assert "dummy" in pm.list_plugin_names()

    def test_register_plugin_default_name(self):
        pm = PluginManager()
        pm.register_plugin(_DummyPlugin())
        assert "_DummyPlugin" in pm.list_plugin_names()

    def test_unregister_plugin(self):
        pm = PluginManager()
        plugin = _DummyPlugin()
        pm.register_plugin(plugin, name="dummy")
        pm.unregister(plugin)
        assert "dummy" not in pm.list_plugin_names()

    def test_is_loaded_false_before_discover(self):
        pm = PluginManager()
        assert pm.is_loaded is False

    def test_discover_keeps_direct_registrations(self):
        pm = PluginManager()
        pm.register_plugin(_DummyPlugin(), name="dummy")
        names = pm.discover_and_load()
        assert pm.is_loaded is True
        assert "dummy" in names

    def test_hook_dispatch_reaches_plugin(self):
        seen: list[int] = []

        class _Counter:
            @hookimpl
            def post_lint(self, issues_found: int) -> None:
                seen.append(issues_found)

        pm = PluginManager()
        pm.register_plugin(_Counter())
        pm.hook.post_lint(issues_found=3, errors=1, warnings=2, issues=[])
        assert seen == [3]

    @pytest.mark.parametrize("hook_name", ["post_change", "post_stack", "post_lint"])
    def test_all_hookspecs_registered(self, hook_name: str):
        pm = PluginManager()
        assert hasattr(pm.hook, hook_name)


class TestClassNormalisation:
    def test_class_plugin_is_instantiated(self):
        pm = PluginManager()
        pm._pm.register(_DummyPlugin, name="by-class")
        pm._normalize_plugin_instances()
        (plugin,) = pm._pm.get_plugins()
        assert isinstance(plugin, _DummyPlugin)
        assert pm.list_plugin_names() == ["by-class"]

    def test_failing_constructor_is_dropped(self, caplog: pytest.LogCaptureFixture):
        pm = PluginManager()
        pm._pm.register(_Exploding, name="exploding")
        with caplog.at_level("WARNING"):
            pm._normalize_plugin_instances()
        assert pm.list_plugin_names() == []
        assert "Failed to instantiate entry-point plugin exploding" in caplog.text

    @pytest.mark.parametrize(
        ("cls", "expected"),
        [(_DummyPlugin, True), (_Exploding, True), (_NoHooks, False)],
    )
    def test_has_hook_impls(self, cls: type, expected: bool):
        assert PluginManager._has_hook_impls(cls) is expected
