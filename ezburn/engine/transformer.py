"""Adapter around an esbuild-compatible executable for single-file transforms."""

from __future__ import annotations

import asyncio
import base64
import functools
import os
import subprocess
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..errors import EngineError
from ..logging import get_logger
from ..models import TransformResult
from ..options import TransformOptions

_INLINE_MAP_PREFIX = "//# sourceMappingURL=data:application/json;base64,"


@dataclass
class TransformRequest:
    """Represents one transform invocation."""

    code: str
    loader: str
    format: Optional[str]
    minify_whitespace: bool
    sourcemap: bool
    sourcefile: Optional[str]
    executable: str
    timeout: Optional[float]


class Transformer:
    """Runs transforms through the configured executable or an injected runner."""

    DEFAULT_EXECUTABLE = "esbuild"
    ENV_EXECUTABLE_KEYS = ("EZBURN_ESBUILD", "ESBUILD_BINARY_PATH")

    def __init__(
        self,
        executable: str | None = None,
        *,
        timeout: Optional[float] = 60.0,
        runner: Callable[[TransformRequest], str] | None = None,
    ) -> None:
        self.executable = self._resolve_executable(executable)
        self.timeout = timeout
        self._runner = runner or self._cli_runner
        self.logger = get_logger("engine.transformer")

    def run(self, code: str, options: TransformOptions) -> TransformResult:
        """Transform ``code`` and split an inline source map off the output."""
        request = TransformRequest(
            code=code,
            loader=options.loader,
            format=options.format,
            minify_whitespace=options.minify_whitespace,
            sourcemap=options.sourcemap,
            sourcefile=options.sourcefile,
            executable=self.executable,
            timeout=self.timeout,
        )
        self.logger.debug("Transforming %d characters with loader %s", len(code), options.loader)
        output = self._runner(request)
        code_out, source_map = _split_inline_map(output)
        return TransformResult(code=code_out, map=source_map)

    async def run_async(self, code: str, options: TransformOptions) -> TransformResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.run, code, options))

    @staticmethod
    def build_args(request: TransformRequest) -> list[str]:
        args = [request.executable, f"--loader={request.loader}", "--log-level=error"]
        if request.format:
            args.append(f"--format={request.format}")
        if request.minify_whitespace:
            args.append("--minify-whitespace")
        if request.sourcemap:
            args.append("--sourcemap=inline")
        if request.sourcefile:
            args.append(f"--sourcefile={request.sourcefile}")
        return args

    @staticmethod
    def _cli_runner(request: TransformRequest) -> str:
        args = Transformer.build_args(request)
        try:
            completed = subprocess.run(
                args,
                input=request.code,
                check=True,
                capture_output=True,
                text=True,
                timeout=request.timeout,
            )
        except FileNotFoundError as exc:
            raise EngineError(
                f"Unable to locate '{request.executable}'. Install esbuild or provide a custom runner."
            ) from exc
        except subprocess.CalledProcessError as exc:
            raise EngineError(
                f"Transform failed with exit code {exc.returncode}: {exc.stderr.strip()}"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise EngineError(f"Transform timed out after {exc.timeout} seconds") from exc
        return completed.stdout

    def _resolve_executable(self, executable: str | None) -> str:
        if executable:
            return executable
        env_value = _first_env_value(self.ENV_EXECUTABLE_KEYS)
        if env_value:
            return env_value
        return self.DEFAULT_EXECUTABLE


def _first_env_value(keys: Sequence[str]) -> str | None:
    for key in keys:
        value = os.getenv(key)
        if value:
            return value
    return None


def _split_inline_map(output: str) -> tuple[str, str]:
    index = output.rfind(_INLINE_MAP_PREFIX)
    if index == -1:
        return output, ""
    encoded = output[index + len(_INLINE_MAP_PREFIX) :].strip()
    try:
        source_map = base64.b64decode(encoded).decode("utf-8")
    except ValueError as exc:
        raise EngineError("Transform produced an unreadable inline source map") from exc
    return output[:index], source_map


__all__ = ["TransformRequest", "Transformer"]
