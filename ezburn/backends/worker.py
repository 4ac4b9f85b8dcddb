"""Backend that runs the engine on a dedicated worker thread with its own event loop."""

from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Callable, Optional, TypeVar

from .base import Backend

T = TypeVar("T")


class WorkerBackend(Backend):
    """Posts each call to the worker loop and awaits the reply from the caller's loop."""

    name = "worker"

    def __init__(self, *, thread_name: str = "ezburn-worker") -> None:
        super().__init__()
        self._thread_name = thread_name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return
        loop = asyncio.new_event_loop()
        ready = threading.Event()

        def _serve() -> None:
            asyncio.set_event_loop(loop)
            loop.call_soon(ready.set)
            try:
                loop.run_forever()
            finally:
                pending = asyncio.all_tasks(loop)
                for task in pending:
                    task.cancel()
                if pending:
                    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
                loop.close()

        thread = threading.Thread(target=_serve, name=self._thread_name, daemon=True)
        thread.start()
        ready.wait()
        self._loop = loop
        self._thread = thread
        super().start()

    def close(self) -> None:
        if not self.running:
            return
        super().close()
        loop, thread = self._loop, self._thread
        self._loop = None
        self._thread = None
        if loop is not None:
            loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join()

    @property
    def thread(self) -> Optional[threading.Thread]:
        return self._thread

    async def _execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        loop = self._loop
        if loop is None:
            raise RuntimeError("The worker backend is not running")

        async def _call() -> T:
            return await fn()

        future = asyncio.run_coroutine_threadsafe(_call(), loop)
        return await asyncio.wrap_future(future)
