"""Contract between the public API and a build engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..models import BuildResult, TransformResult
    from ..options import BuildOptions, TransformOptions
    from ..plugins.pipeline import PluginPipeline

FILE_NAMESPACE = "file"
FILE_NAMESPACES = ("", FILE_NAMESPACE)


class Engine(Protocol):
    """Performs resolution, loading and code generation for the backends."""

    name: str

    async def build(self, options: "BuildOptions", pipeline: "PluginPipeline") -> "BuildResult":
        """Run one build, consulting the pipeline for every resolve and load."""

    async def transform(self, code: str, options: "TransformOptions") -> "TransformResult":
        """Transform a single source text."""
