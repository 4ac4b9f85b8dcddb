"""ezburn: plugin-driven bundling API with interchangeable execution backends."""

from .api import (
    BuildContext,
    Service,
    analyze_metafile,
    build,
    context,
    initialize,
    stop,
    transform,
)
from .errors import ConfigurationError, EngineError, EzburnError, PluginError
from .models import (
    BuildResult,
    LoadArgs,
    LoadResult,
    Message,
    OutputFile,
    ResolveArgs,
    ResolveResult,
    TransformResult,
)
from .plugins import Plugin, PluginBuild

__version__ = "0.1.0"

__all__ = [
    "BuildContext",
    "BuildResult",
    "ConfigurationError",
    "EngineError",
    "EzburnError",
    "LoadArgs",
    "LoadResult",
    "Message",
    "OutputFile",
    "Plugin",
    "PluginBuild",
    "PluginError",
    "ResolveArgs",
    "ResolveResult",
    "Service",
    "TransformResult",
    "analyze_metafile",
    "build",
    "context",
    "initialize",
    "stop",
    "transform",
]
