"""Build plugins: hook pipeline, built-in plugins and entry-point discovery."""

from __future__ import annotations

from importlib import metadata
from typing import Any, Callable, Iterable, List, Mapping, Set

from ..errors import ConfigurationError
from .builtin import external_modules, virtual_modules
from .pipeline import (
    HookRegistration,
    Plugin,
    PluginBuild,
    PluginPipeline,
    coerce_plugin,
    compile_filter,
    setup_plugins,
)

_ENTRY_POINT_GROUP = "ezburn.plugins"

_BUILTIN_FACTORIES: dict[str, Callable[..., Plugin]] = {
    "virtual": virtual_modules,
    "external": external_modules,
}


def discover_plugins(enabled: Mapping[str, Mapping[str, Any]] | None = None) -> List[Plugin]:
    """Instantiate the named plugins, passing each its options mapping.

    Built-in names win over entry points registered under ``ezburn.plugins``.
    """
    if not enabled:
        return []
    wanted = {name.lower(): dict(options or {}) for name, options in enabled.items()}
    plugins: List[Plugin] = []
    seen: Set[str] = set()

    def _add(name: str, factory: Callable[..., Any]) -> None:
        key = name.lower()
        if key not in wanted or key in seen:
            return
        try:
            instance = factory(**wanted[key])
        except TypeError as exc:
            raise ConfigurationError(f"Invalid options for plugin '{name}': {exc}") from exc
        plugins.append(coerce_plugin(instance))
        seen.add(key)

    for name, factory in _BUILTIN_FACTORIES.items():
        _add(name, factory)

    for entry in _iter_entry_points():
        if entry.name.lower() not in wanted or entry.name.lower() in seen:
            continue
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover - depends on installed distributions
            raise ConfigurationError(f"Failed to load plugin entry point '{entry.name}': {exc}") from exc
        _add(entry.name, _as_factory(loaded))

    missing = set(wanted) - seen
    if missing:
        raise ConfigurationError(f"Unknown plugins requested: {', '.join(sorted(missing))}")
    return plugins


def _as_factory(obj: object) -> Callable[..., Any]:
    if isinstance(obj, Plugin):
        return lambda **_: obj
    if callable(obj):
        return obj
    raise ConfigurationError("Plugin entry point must be a Plugin or a factory returning one")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "HookRegistration",
    "Plugin",
    "PluginBuild",
    "PluginPipeline",
    "coerce_plugin",
    "compile_filter",
    "discover_plugins",
    "external_modules",
    "setup_plugins",
    "virtual_modules",
]
