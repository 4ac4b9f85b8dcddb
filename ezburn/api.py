"""Public asynchronous API: build, context, transform, analyze_metafile.

A process-wide service pairs one backend with one engine. ``initialize``
selects the backend explicitly; any API call made before it lazily starts
the native backend.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Mapping, Optional, Set

from .backends import Backend, create_backend
from .engine import Engine, GraphEngine
from .errors import ConfigurationError, PluginError
from .logging import get_logger
from .metafile import analyze_metafile as format_metafile
from .models import BuildResult, TransformResult
from .options import BuildOptions, build_options, transform_options
from .plugins.pipeline import PluginPipeline, setup_plugins

logger = get_logger("api")


class Service:
    """One backend plus one engine, exposing the build API."""

    def __init__(self, backend: Backend, engine: Engine | None = None) -> None:
        self.backend = backend
        self.engine: Engine = engine or GraphEngine()

    def start(self) -> None:
        self.backend.start()

    def close(self) -> None:
        self.backend.close()

    async def build(self, options: Mapping[str, Any] | None = None, **kwargs: Any) -> BuildResult:
        """Run a one-shot build. Plugin failures are reported in ``errors``."""
        opts = build_options(options, **kwargs)
        try:
            pipeline = await setup_plugins(opts.plugins, opts)
        except PluginError as exc:
            return BuildResult(errors=[exc.to_message()], output_files=None if opts.write else [])
        try:
            return await self.run_build(opts, pipeline)
        finally:
            await pipeline.run_on_dispose()

    async def context(self, options: Mapping[str, Any] | None = None, **kwargs: Any) -> "BuildContext":
        """Run plugin setup once and return a context for repeated rebuilds."""
        opts = build_options(options, **kwargs)
        pipeline = await setup_plugins(opts.plugins, opts)
        return BuildContext(self, opts, pipeline)

    async def transform(
        self, code: str, options: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> TransformResult:
        opts = transform_options(options, **kwargs)
        return await self.backend.run(lambda: self.engine.transform(code, opts))

    async def analyze_metafile(self, metafile: Any) -> str:
        async def _analyze() -> str:
            return format_metafile(metafile)

        return await self.backend.run(_analyze)

    async def run_build(self, options: BuildOptions, pipeline: PluginPipeline) -> BuildResult:
        pipeline.freeze()
        start_errors = await pipeline.run_on_start()
        if start_errors:
            return BuildResult(errors=start_errors, output_files=None if options.write else [])
        logger.debug("Building with the %s backend", self.backend.name)
        result = await self.backend.run(lambda: self.engine.build(options, pipeline))
        result.errors.extend(await pipeline.run_on_end(result))
        return result


class BuildContext:
    """Reusable build with fixed options and plugins; see ``rebuild`` and ``dispose``."""

    def __init__(self, service: Service, options: BuildOptions, pipeline: PluginPipeline) -> None:
        self._service = service
        self.options = options
        self._pipeline = pipeline
        self._inflight: Set["asyncio.Future[BuildResult]"] = set()
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def rebuild(self) -> BuildResult:
        if self._disposed:
            raise RuntimeError("Cannot rebuild a disposed context")
        task = asyncio.ensure_future(self._service.run_build(self.options, self._pipeline))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await task

    async def dispose(self) -> None:
        """Wait for in-flight rebuilds, then run on-dispose callbacks. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        await self._pipeline.run_on_dispose()

    async def __aenter__(self) -> "BuildContext":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()


_state_lock = threading.Lock()
_service: Optional[Service] = None
_initialized = False


def initialize(*, backend: str = "native", engine: Engine | None = None) -> Service:
    """Start the process-wide service with the named backend. Call at most once."""
    global _service, _initialized
    with _state_lock:
        if _initialized:
            raise ConfigurationError('"initialize" must only be called once')
        service = Service(create_backend(backend), engine)
        if _service is not None:
            _service.close()
        service.start()
        _service = service
        _initialized = True
    logger.debug("Initialized the %s backend", backend)
    return service


def stop() -> None:
    """Stop the process-wide service; ``initialize`` may be called again afterwards."""
    global _service, _initialized
    with _state_lock:
        service, _service = _service, None
        _initialized = False
    if service is not None:
        service.close()


def current_service() -> Service:
    global _service
    with _state_lock:
        if _service is None:
            service = Service(create_backend("native"))
            service.start()
            _service = service
        return _service


async def build(options: Mapping[str, Any] | None = None, **kwargs: Any) -> BuildResult:
    return await current_service().build(options, **kwargs)


async def context(options: Mapping[str, Any] | None = None, **kwargs: Any) -> BuildContext:
    return await current_service().context(options, **kwargs)


async def transform(code: str, options: Mapping[str, Any] | None = None, **kwargs: Any) -> TransformResult:
    return await current_service().transform(code, options, **kwargs)


async def analyze_metafile(metafile: Any) -> str:
    return await current_service().analyze_metafile(metafile)


__all__ = [
    "BuildContext",
    "Service",
    "analyze_metafile",
    "build",
    "context",
    "current_service",
    "initialize",
    "stop",
    "transform",
]
