"""Exception types raised by ezburn."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .models import Message


class EzburnError(RuntimeError):
    """Base class for errors raised by ezburn."""


class ConfigurationError(EzburnError, ValueError):
    """Raised for invalid options, filters or metafile shapes before any work starts."""


class EngineError(EzburnError):
    """Raised when the build engine or an external transformer fails."""


class PluginError(EzburnError):
    """Raised when a plugin hook throws or returns something unusable."""

    def __init__(self, plugin_name: str, hook: str, detail: str) -> None:
        super().__init__(f"[plugin {plugin_name}] {detail}")
        self.plugin_name = plugin_name
        self.hook = hook
        self.detail = detail

    def to_message(self) -> "Message":
        from .models import Message

        return Message(text=self.detail, plugin_name=self.plugin_name, detail=self.hook)


__all__ = ["ConfigurationError", "EngineError", "EzburnError", "PluginError"]
