"""In-process backend running engine calls directly on the caller's event loop."""

from __future__ import annotations

from typing import Awaitable, Callable, TypeVar

from .base import Backend

T = TypeVar("T")


class NativeBackend(Backend):
    """Calls the engine in-process; independent calls may interleave freely."""

    name = "native"

    async def _execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        return await fn()
