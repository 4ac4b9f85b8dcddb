"""Base class for the execution backends behind the public API."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, TypeVar

from ..logging import get_logger

T = TypeVar("T")


class Backend(ABC):
    """Runs engine calls in a particular execution environment.

    Every backend exposes the same asynchronous contract; they differ only in
    where the engine coroutine executes and how many calls may run at once.
    """

    name = "base"

    def __init__(self) -> None:
        self._running = False
        self.logger = get_logger(f"backends.{self.name}")

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.logger.debug("Backend %s started", self.name)

    def close(self) -> None:
        if not self._running:
            return
        self._running = False
        self.logger.debug("Backend %s stopped", self.name)

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Execute ``fn()`` in this backend and return its result."""
        if not self._running:
            raise RuntimeError(f"The {self.name} backend is not running")
        return await self._execute(fn)

    @abstractmethod
    async def _execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run the coroutine function in the backend's environment."""
