"""Filter-matched resolve/load hook dispatch for build plugins.

Hooks are kept in registration order. For every request the pipeline walks
the hooks whose filter matches the candidate string (and whose namespace
restriction, when set, equals the request namespace) and calls them one at a
time until a handler produces a result. A handler returning ``None`` means
"nothing applicable" and the scan continues; when no handler produces a
result the caller falls back to default filesystem behaviour.
"""

from __future__ import annotations

import inspect
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Pattern, Sequence

from ..errors import ConfigurationError, PluginError
from ..logging import get_logger
from ..models import BuildResult, LoadArgs, LoadResult, Message, ResolveArgs, ResolveResult

ON_RESOLVE = "on-resolve"
ON_LOAD = "on-load"
ON_START = "on-start"
ON_END = "on-end"
ON_DISPOSE = "on-dispose"

_RESOLVE_KEYS = {"path", "namespace", "external", "plugin_data"}
_LOAD_KEYS = {"contents", "loader", "resolve_dir", "plugin_data"}

Handler = Callable[[Any], Any]

logger = get_logger("plugins")


def compile_filter(pattern: str | Pattern[str]) -> Pattern[str]:
    """Return a compiled filter, raising ConfigurationError for invalid input."""
    if isinstance(pattern, re.Pattern):
        return pattern
    if not isinstance(pattern, str):
        raise ConfigurationError(f"Hook filter must be a regular expression, got {type(pattern).__name__}")
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f'Invalid filter "{pattern}": {exc}') from exc


@dataclass(frozen=True)
class HookRegistration:
    """One registered hook: filter, optional namespace restriction, handler."""

    filter: Pattern[str]
    namespace: Optional[str]
    handler: Handler
    plugin_name: str

    def matches(self, candidate: str, namespace: str) -> bool:
        if self.namespace is not None and self.namespace != namespace:
            return False
        return self.filter.search(candidate) is not None


class PluginPipeline:
    """Ordered registry of resolve/load hooks plus build lifecycle callbacks."""

    def __init__(self) -> None:
        self._resolvers: List[HookRegistration] = []
        self._loaders: List[HookRegistration] = []
        self._on_start: List[tuple[str, Handler]] = []
        self._on_end: List[tuple[str, Handler]] = []
        self._on_dispose: List[tuple[str, Handler]] = []
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def resolvers(self) -> Sequence[HookRegistration]:
        return tuple(self._resolvers)

    @property
    def loaders(self) -> Sequence[HookRegistration]:
        return tuple(self._loaders)

    def freeze(self) -> None:
        """Reject further registrations; called when the first build starts."""
        self._frozen = True

    def register_resolver(
        self,
        filter: str | Pattern[str],
        handler: Handler,
        *,
        namespace: Optional[str] = None,
        plugin_name: str = "",
    ) -> HookRegistration:
        registration = self._make_registration(filter, handler, namespace, plugin_name)
        self._resolvers.append(registration)
        return registration

    def register_loader(
        self,
        filter: str | Pattern[str],
        handler: Handler,
        *,
        namespace: Optional[str] = None,
        plugin_name: str = "",
    ) -> HookRegistration:
        registration = self._make_registration(filter, handler, namespace, plugin_name)
        self._loaders.append(registration)
        return registration

    def register_callback(self, hook: str, callback: Handler, *, plugin_name: str = "") -> None:
        self._ensure_mutable()
        if not callable(callback):
            raise ConfigurationError(f"{hook} callback must be callable")
        targets = {ON_START: self._on_start, ON_END: self._on_end, ON_DISPOSE: self._on_dispose}
        if hook not in targets:
            raise ConfigurationError(f"Unknown lifecycle hook: {hook}")
        targets[hook].append((plugin_name, callback))

    async def resolve(
        self,
        specifier: str,
        *,
        importer: str = "",
        namespace: str = "",
        resolve_dir: str = "",
        kind: str = "import-statement",
        plugin_data: Any = None,
    ) -> Optional[ResolveResult]:
        """Return the first resolved reference produced by a matching hook, or None."""
        args = ResolveArgs(
            path=specifier,
            importer=importer,
            namespace=namespace,
            resolve_dir=resolve_dir,
            kind=kind,
            plugin_data=plugin_data,
        )
        for registration in self._matching(self._resolvers, specifier, namespace):
            value = await _invoke(registration, ON_RESOLVE, args)
            result = _coerce_resolve_result(value, registration)
            if result is not None:
                logger.debug(
                    "Plugin %s resolved %s to %s:%s",
                    registration.plugin_name,
                    specifier,
                    result.namespace,
                    result.path,
                )
                return result
        return None

    async def load(self, reference: ResolveResult) -> Optional[LoadResult]:
        """Return virtual contents for a resolved reference, or None to read from disk."""
        args = LoadArgs(
            path=reference.path,
            namespace=reference.namespace,
            plugin_data=reference.plugin_data,
        )
        for registration in self._matching(self._loaders, reference.path, reference.namespace):
            value = await _invoke(registration, ON_LOAD, args)
            result = _coerce_load_result(value, registration)
            if result is not None:
                logger.debug(
                    "Plugin %s loaded %s:%s", registration.plugin_name, reference.namespace, reference.path
                )
                return result
        return None

    async def run_on_start(self) -> List[Message]:
        errors: List[Message] = []
        for plugin_name, callback in self._on_start:
            try:
                await _maybe_await(callback())
            except Exception as exc:
                errors.append(PluginError(plugin_name, ON_START, str(exc)).to_message())
        return errors

    async def run_on_end(self, result: BuildResult) -> List[Message]:
        errors: List[Message] = []
        for plugin_name, callback in self._on_end:
            try:
                await _maybe_await(callback(result))
            except Exception as exc:
                errors.append(PluginError(plugin_name, ON_END, str(exc)).to_message())
        return errors

    async def run_on_dispose(self) -> None:
        for plugin_name, callback in self._on_dispose:
            try:
                await _maybe_await(callback())
            except Exception:
                logger.warning("on-dispose callback from plugin %s failed", plugin_name, exc_info=True)

    # ------------------------------------------------------------------
    # Internal helpers

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise ConfigurationError("Hooks cannot be registered after a build has started")

    def _make_registration(
        self,
        filter: str | Pattern[str],
        handler: Handler,
        namespace: Optional[str],
        plugin_name: str,
    ) -> HookRegistration:
        self._ensure_mutable()
        compiled = compile_filter(filter)
        if not callable(handler):
            raise ConfigurationError("Hook handler must be callable")
        if namespace is not None and not isinstance(namespace, str):
            raise ConfigurationError("Hook namespace must be a string")
        return HookRegistration(filter=compiled, namespace=namespace, handler=handler, plugin_name=plugin_name)

    @staticmethod
    def _matching(
        registrations: Iterable[HookRegistration], candidate: str, namespace: str
    ) -> Iterable[HookRegistration]:
        return (registration for registration in registrations if registration.matches(candidate, namespace))


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def _invoke(registration: HookRegistration, hook: str, args: Any) -> Any:
    try:
        return await _maybe_await(registration.handler(args))
    except PluginError:
        raise
    except Exception as exc:
        logger.warning("Plugin %s failed in %s: %s", registration.plugin_name, hook, exc)
        raise PluginError(registration.plugin_name, hook, str(exc) or type(exc).__name__) from exc


def _coerce_resolve_result(value: Any, registration: HookRegistration) -> Optional[ResolveResult]:
    if value is None:
        return None
    if isinstance(value, ResolveResult):
        result = value
    elif isinstance(value, Mapping):
        unknown = set(value) - _RESOLVE_KEYS
        if unknown:
            raise PluginError(
                registration.plugin_name, ON_RESOLVE, f"Invalid key(s) in resolve result: {', '.join(sorted(unknown))}"
            )
        if not value.get("path"):
            return None
        result = ResolveResult(
            path=str(value["path"]),
            namespace=str(value.get("namespace") or ""),
            external=bool(value.get("external", False)),
            plugin_data=value.get("plugin_data"),
        )
    else:
        raise PluginError(
            registration.plugin_name, ON_RESOLVE, f"Expected a resolve result, got {type(value).__name__}"
        )
    if result.plugin_name is None:
        result.plugin_name = registration.plugin_name
    return result


def _coerce_load_result(value: Any, registration: HookRegistration) -> Optional[LoadResult]:
    if value is None:
        return None
    if isinstance(value, LoadResult):
        result = value
    elif isinstance(value, Mapping):
        unknown = set(value) - _LOAD_KEYS
        if unknown:
            raise PluginError(
                registration.plugin_name, ON_LOAD, f"Invalid key(s) in load result: {', '.join(sorted(unknown))}"
            )
        if value.get("contents") is None:
            return None
        result = LoadResult(
            contents=value["contents"],
            loader=value.get("loader"),
            resolve_dir=value.get("resolve_dir"),
            plugin_data=value.get("plugin_data"),
        )
    else:
        raise PluginError(registration.plugin_name, ON_LOAD, f"Expected a load result, got {type(value).__name__}")
    if result.contents is None:
        return None
    result.contents = _decode_contents(result.contents, registration)
    if result.plugin_name is None:
        result.plugin_name = registration.plugin_name
    return result


def _decode_contents(contents: Any, registration: HookRegistration) -> str:
    if isinstance(contents, str):
        return contents
    if isinstance(contents, (bytes, bytearray)):
        try:
            return bytes(contents).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise PluginError(
                registration.plugin_name, ON_LOAD, f"Load result contents are not valid UTF-8: {exc}"
            ) from exc
    raise PluginError(
        registration.plugin_name, ON_LOAD, f"Load result contents must be str or bytes, got {type(contents).__name__}"
    )


class PluginBuild:
    """Handle passed to ``Plugin.setup``; registers hooks under the plugin's name."""

    def __init__(self, pipeline: PluginPipeline, plugin_name: str, initial_options: Any = None) -> None:
        self._pipeline = pipeline
        self.plugin_name = plugin_name
        self.initial_options = initial_options

    def on_resolve(
        self,
        filter: str | Pattern[str] | Mapping[str, Any],
        handler: Handler | None = None,
        *,
        namespace: Optional[str] = None,
    ) -> Any:
        """Register a resolve hook; usable directly or as a decorator."""
        return self._register(self._pipeline.register_resolver, filter, handler, namespace)

    def on_load(
        self,
        filter: str | Pattern[str] | Mapping[str, Any],
        handler: Handler | None = None,
        *,
        namespace: Optional[str] = None,
    ) -> Any:
        """Register a load hook; usable directly or as a decorator.

        Filesystem modules are loaded under the ``"file"`` namespace, including
        paths a resolver returned without a namespace, so ``namespace="file"``
        restricts a hook to files on disk.
        """
        return self._register(self._pipeline.register_loader, filter, handler, namespace)

    def on_start(self, callback: Callable[[], Any]) -> Callable[[], Any]:
        self._pipeline.register_callback(ON_START, callback, plugin_name=self.plugin_name)
        return callback

    def on_end(self, callback: Callable[[BuildResult], Any]) -> Callable[[BuildResult], Any]:
        self._pipeline.register_callback(ON_END, callback, plugin_name=self.plugin_name)
        return callback

    def on_dispose(self, callback: Callable[[], Any]) -> Callable[[], Any]:
        self._pipeline.register_callback(ON_DISPOSE, callback, plugin_name=self.plugin_name)
        return callback

    def _register(
        self,
        register: Callable[..., HookRegistration],
        filter: str | Pattern[str] | Mapping[str, Any],
        handler: Handler | None,
        namespace: Optional[str],
    ) -> Any:
        if isinstance(filter, Mapping):
            options = dict(filter)
            if "filter" not in options:
                raise ConfigurationError('Hook options must include a "filter"')
            filter = options.pop("filter")
            namespace = options.pop("namespace", namespace)
            if options:
                raise ConfigurationError(f"Invalid hook option(s): {', '.join(sorted(options))}")

        def _decorator(func: Handler) -> Handler:
            register(filter, func, namespace=namespace, plugin_name=self.plugin_name)
            return func

        if handler is None:
            return _decorator
        return _decorator(handler)


@dataclass
class Plugin:
    """A named build plugin whose ``setup`` registers hooks on a PluginBuild."""

    name: str
    setup: Callable[[PluginBuild], Optional[Awaitable[None]]]


def coerce_plugin(obj: Any) -> Plugin:
    """Accept Plugin instances or ``{"name": ..., "setup": ...}`` mappings."""
    if isinstance(obj, Plugin):
        plugin = obj
    elif isinstance(obj, Mapping):
        unknown = set(obj) - {"name", "setup"}
        if unknown:
            raise ConfigurationError(f"Invalid plugin key(s): {', '.join(sorted(unknown))}")
        plugin = Plugin(name=obj.get("name", ""), setup=obj.get("setup"))  # type: ignore[arg-type]
    else:
        name = getattr(obj, "name", None)
        setup = getattr(obj, "setup", None)
        if name is None or setup is None:
            raise ConfigurationError("Plugin must provide a name and a setup function")
        plugin = Plugin(name=name, setup=setup)
    if not isinstance(plugin.name, str) or not plugin.name:
        raise ConfigurationError("Plugin is missing a name")
    if not callable(plugin.setup):
        raise ConfigurationError(f'Plugin "{plugin.name}" is missing a setup function')
    return plugin


async def setup_plugins(plugins: Sequence[Any], initial_options: Any = None) -> PluginPipeline:
    """Run every plugin's setup against a fresh pipeline, in order.

    Raises ConfigurationError for malformed plugins or filters and PluginError
    when a setup function itself throws.
    """
    pipeline = PluginPipeline()
    for obj in plugins:
        plugin = coerce_plugin(obj)
        build = PluginBuild(pipeline, plugin.name, initial_options)
        try:
            await _maybe_await(plugin.setup(build))
        except ConfigurationError:
            raise
        except Exception as exc:
            raise PluginError(plugin.name, "setup", str(exc) or type(exc).__name__) from exc
        logger.debug("Plugin %s registered", plugin.name)
    return pipeline


__all__ = [
    "HookRegistration",
    "ON_DISPOSE",
    "ON_END",
    "ON_LOAD",
    "ON_RESOLVE",
    "ON_START",
    "Plugin",
    "PluginBuild",
    "PluginPipeline",
    "coerce_plugin",
    "compile_filter",
    "setup_plugins",
]
