"""Single-instance backend on the caller's event loop."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from .base import Backend

T = TypeVar("T")


class MainThreadBackend(Backend):
    """Shares one engine instance on the main thread, so calls run one at a time."""

    name = "main"

    def __init__(self) -> None:
        super().__init__()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    def close(self) -> None:
        super().close()
        self._lock = None
        self._lock_loop = None

    async def _execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        # asyncio locks belong to one loop; a new loop gets a new lock.
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        async with self._lock:
            return await fn()
