"""Plugins shipped with ezburn."""

from __future__ import annotations

import re
from typing import Mapping, Sequence

from ..errors import ConfigurationError
from ..models import LoadArgs, LoadResult, ResolveArgs, ResolveResult
from .pipeline import Plugin, PluginBuild, compile_filter

VIRTUAL_NAMESPACE = "virtual"


def virtual_modules(
    modules: Mapping[str, str] | None = None,
    *,
    namespace: str = VIRTUAL_NAMESPACE,
    loader: str = "js",
) -> Plugin:
    """Serve in-memory sources for exact specifiers under their own namespace."""
    table = dict(modules or {})
    for key, value in table.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise ConfigurationError("virtual modules must map specifier strings to source strings")
    if not table:
        # A filter that never matches keeps the plugin inert.
        pattern = r"(?!)"
    else:
        pattern = "^(?:" + "|".join(re.escape(name) for name in table) + ")$"

    def setup(build: PluginBuild) -> None:
        @build.on_resolve(pattern)
        def _resolve(args: ResolveArgs) -> ResolveResult:
            return ResolveResult(path=args.path, namespace=namespace)

        @build.on_load(pattern, namespace=namespace)
        def _load(args: LoadArgs) -> LoadResult:
            return LoadResult(contents=table[args.path], loader=loader)

    return Plugin(name="virtual", setup=setup)


def external_modules(patterns: Sequence[str] | None = None) -> Plugin:
    """Mark specifiers matching any pattern as external so they are left unbundled."""
    compiled = [compile_filter(pattern) for pattern in patterns or []]

    def setup(build: PluginBuild) -> None:
        for filter in compiled:
            build.on_resolve(filter, lambda args: ResolveResult(path=args.path, external=True))

    return Plugin(name="external", setup=setup)


__all__ = ["VIRTUAL_NAMESPACE", "external_modules", "virtual_modules"]
