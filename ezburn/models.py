"""Core data models shared across ezburn components."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ResolveArgs:
    """Arguments handed to an on-resolve handler."""

    path: str
    importer: str
    namespace: str
    resolve_dir: str = ""
    kind: str = "import-statement"
    plugin_data: Any = None


@dataclass
class ResolveResult:
    """A resolved reference: the identity key used for load-hook matching."""

    path: str
    namespace: str = ""
    external: bool = False
    plugin_data: Any = None
    plugin_name: Optional[str] = None


@dataclass
class LoadArgs:
    """Arguments handed to an on-load handler."""

    path: str
    namespace: str
    plugin_data: Any = None


@dataclass
class LoadResult:
    """Virtual file contents returned by an on-load handler."""

    contents: str
    loader: Optional[str] = None
    resolve_dir: Optional[str] = None
    plugin_data: Any = None
    plugin_name: Optional[str] = None


@dataclass
class Message:
    """Error or warning reported by a build."""

    text: str
    plugin_name: str = ""
    detail: Any = None
    location: Optional[str] = None


@dataclass
class OutputFile:
    """In-memory output produced when a build runs with ``write=False``."""

    path: str
    contents: bytes

    @property
    def text(self) -> str:
        return self.contents.decode("utf-8")


@dataclass
class BuildResult:
    """Outcome of a build or rebuild."""

    errors: List[Message] = field(default_factory=list)
    warnings: List[Message] = field(default_factory=list)
    output_files: Optional[List[OutputFile]] = None
    metafile: Optional[Dict[str, Any]] = None


@dataclass
class TransformResult:
    """Outcome of a single-file transform."""

    code: str
    map: str = ""
    warnings: List[Message] = field(default_factory=list)
