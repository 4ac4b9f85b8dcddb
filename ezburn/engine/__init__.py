"""Build engines consumed by the backends."""

from ..errors import EngineError
from .base import FILE_NAMESPACES, Engine
from .graph import GraphEngine, scan_imports
from .transformer import TransformRequest, Transformer

__all__ = [
    "Engine",
    "EngineError",
    "FILE_NAMESPACES",
    "GraphEngine",
    "TransformRequest",
    "Transformer",
    "scan_imports",
]
