"""Execution backends sharing one asynchronous API."""

from __future__ import annotations

from typing import Callable, Dict

from ..errors import ConfigurationError
from .base import Backend
from .mainthread import MainThreadBackend
from .native import NativeBackend
from .worker import WorkerBackend

BACKENDS: Dict[str, Callable[[], Backend]] = {
    "native": NativeBackend,
    "main": MainThreadBackend,
    "worker": WorkerBackend,
}


def create_backend(name: str) -> Backend:
    """Instantiate a backend by name."""
    try:
        factory = BACKENDS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown backend '{name}': expected one of {', '.join(BACKENDS)}"
        ) from None
    return factory()


__all__ = [
    "BACKENDS",
    "Backend",
    "MainThreadBackend",
    "NativeBackend",
    "WorkerBackend",
    "create_backend",
]
