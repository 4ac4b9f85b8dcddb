"""Tests for built-in plugins and entry-point discovery."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

import ezburn.plugins as plugins_module
from ezburn.errors import ConfigurationError
from ezburn.models import ResolveResult
from ezburn.plugins import Plugin, discover_plugins, external_modules, setup_plugins, virtual_modules


def test_discover_returns_nothing_when_nothing_enabled() -> None:
    assert discover_plugins(None) == []
    assert discover_plugins({}) == []


def test_discover_builds_builtin_plugins_with_options() -> None:
    found = discover_plugins({"virtual": {"modules": {"<entry>": "x"}}, "External": {"patterns": ["^node:"]}})
    assert [plugin.name for plugin in found] == ["virtual", "external"]


def test_discover_rejects_unknown_names() -> None:
    with pytest.raises(ConfigurationError, match="missing-plugin"):
        discover_plugins({"missing-plugin": {}})


def test_discover_rejects_bad_options() -> None:
    with pytest.raises(ConfigurationError, match="virtual"):
        discover_plugins({"virtual": {"unknown_option": True}})


def test_discover_loads_entry_points(monkeypatch) -> None:
    third_party = Plugin(name="third-party", setup=lambda build: None)

    def factory(**options):
        return Plugin(name=f"factory-{options['suffix']}", setup=lambda build: None)

    entries = [
        SimpleNamespace(name="third-party", load=lambda: third_party),
        SimpleNamespace(name="made", load=lambda: factory),
    ]
    monkeypatch.setattr(plugins_module, "_iter_entry_points", lambda: entries)

    found = discover_plugins({"third-party": {}, "made": {"suffix": "ok"}})

    assert [plugin.name for plugin in found] == ["third-party", "factory-ok"]


def test_virtual_modules_resolve_and_load_in_their_namespace() -> None:
    pipeline = asyncio.run(setup_plugins([virtual_modules({"<entry>": "export default 1"})]))

    resolved = asyncio.run(pipeline.resolve("<entry>"))
    assert resolved is not None
    assert (resolved.path, resolved.namespace) == ("<entry>", "virtual")

    loaded = asyncio.run(pipeline.load(resolved))
    assert loaded is not None and loaded.contents == "export default 1"

    other = asyncio.run(pipeline.load(ResolveResult(path="<entry>", namespace="")))
    assert other is None


def test_virtual_modules_escape_specifiers() -> None:
    pipeline = asyncio.run(setup_plugins([virtual_modules({"a.b": "x"})]))
    assert asyncio.run(pipeline.resolve("axb")) is None
    assert asyncio.run(pipeline.resolve("a.b")) is not None


def test_empty_virtual_modules_never_match() -> None:
    pipeline = asyncio.run(setup_plugins([virtual_modules({})]))
    assert asyncio.run(pipeline.resolve("")) is None
    assert asyncio.run(pipeline.resolve("anything")) is None


def test_external_modules_mark_matches_external() -> None:
    pipeline = asyncio.run(setup_plugins([external_modules(["^node:", "^react$"])]))

    resolved = asyncio.run(pipeline.resolve("node:fs"))
    assert resolved is not None and resolved.external is True
    assert asyncio.run(pipeline.resolve("react-dom")) is None


def test_external_modules_reject_invalid_patterns() -> None:
    with pytest.raises(ConfigurationError):
        external_modules(["("])
