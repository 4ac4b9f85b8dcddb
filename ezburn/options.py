"""Normalisation and validation of build and transform options."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, fields
from typing import Any, List, Mapping, Optional

from .errors import ConfigurationError

FORMATS = ("esm", "cjs", "iife")
LOADERS = ("js", "jsx", "ts", "tsx", "json", "css", "text")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass
class StdinOptions:
    """Source text used in place of an entry point file."""

    contents: str
    loader: str = "js"
    resolve_dir: Optional[str] = None
    sourcefile: Optional[str] = None


@dataclass
class BuildOptions:
    """Validated options for ``build`` and ``context``."""

    entry_points: List[str] = field(default_factory=list)
    bundle: bool = False
    outfile: Optional[str] = None
    outdir: Optional[str] = None
    write: bool = True
    format: Optional[str] = None
    plugins: List[Any] = field(default_factory=list)
    stdin: Optional[StdinOptions] = None
    minify_whitespace: bool = False
    metafile: bool = False
    abs_working_dir: str = ""


@dataclass
class TransformOptions:
    """Validated options for ``transform``."""

    loader: str = "js"
    format: Optional[str] = None
    minify_whitespace: bool = False
    sourcemap: bool = False
    sourcefile: Optional[str] = None


def snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _normalise_keys(raw: Mapping[str, Any], allowed: set[str], kind: str) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in raw.items():
        name = snake_case(key)
        if name not in allowed:
            raise ConfigurationError(f'Invalid {kind} option "{key}"')
        result[name] = value
    return result


def _as_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f'"{name}" must be a boolean')
    return value


def _as_optional_str(name: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, (str, os.PathLike)):
        raise ConfigurationError(f'"{name}" must be a string')
    return os.fspath(value)


def _check_format(value: Any) -> Optional[str]:
    if value is None:
        return None
    if value not in FORMATS:
        raise ConfigurationError(f'Invalid format "{value}": expected one of {", ".join(FORMATS)}')
    return value


def _check_loader(value: Any) -> str:
    if value not in LOADERS:
        raise ConfigurationError(f'Invalid loader "{value}": expected one of {", ".join(LOADERS)}')
    return value


def build_options(raw: Mapping[str, Any] | None = None, **kwargs: Any) -> BuildOptions:
    """Return validated BuildOptions from snake_case or camelCase keys."""
    merged = dict(raw or {})
    merged.update(kwargs)
    allowed = {f.name for f in fields(BuildOptions)}
    data = _normalise_keys(merged, allowed, "build")

    entry_points = data.get("entry_points", [])
    if isinstance(entry_points, (str, bytes)) or not isinstance(entry_points, (list, tuple)):
        raise ConfigurationError('"entry_points" must be a list of strings')
    entries = [_as_optional_str("entry_points", entry) for entry in entry_points]

    stdin = _stdin_options(data.get("stdin"))
    plugins = data.get("plugins") or []
    if not isinstance(plugins, (list, tuple)):
        raise ConfigurationError('"plugins" must be a list')

    abs_working_dir = _as_optional_str("abs_working_dir", data.get("abs_working_dir")) or os.getcwd()
    if not os.path.isabs(abs_working_dir):
        raise ConfigurationError('"abs_working_dir" must be an absolute path')

    options = BuildOptions(
        entry_points=[entry for entry in entries if entry is not None],
        bundle=_as_bool("bundle", data.get("bundle", False)),
        outfile=_as_optional_str("outfile", data.get("outfile")),
        outdir=_as_optional_str("outdir", data.get("outdir")),
        write=_as_bool("write", data.get("write", True)),
        format=_check_format(data.get("format")),
        plugins=list(plugins),
        stdin=stdin,
        minify_whitespace=_as_bool("minify_whitespace", data.get("minify_whitespace", False)),
        metafile=_as_bool("metafile", data.get("metafile", False)),
        abs_working_dir=abs_working_dir,
    )

    if not options.entry_points and options.stdin is None:
        raise ConfigurationError('Must provide "entry_points" or "stdin"')
    if options.outfile and options.outdir:
        raise ConfigurationError('Cannot use both "outfile" and "outdir"')
    if options.outfile and len(options.entry_points) + (1 if options.stdin else 0) > 1:
        raise ConfigurationError('Must use "outdir" when there are multiple input files')
    if options.write and not (options.outfile or options.outdir):
        raise ConfigurationError('Must use "outfile" or "outdir" when "write" is enabled')
    return options


def _stdin_options(value: Any) -> Optional[StdinOptions]:
    if value is None or isinstance(value, StdinOptions):
        return value
    if not isinstance(value, Mapping):
        raise ConfigurationError('"stdin" must be a mapping')
    allowed = {f.name for f in fields(StdinOptions)}
    data = _normalise_keys(value, allowed, "stdin")
    contents = data.get("contents")
    if not isinstance(contents, str):
        raise ConfigurationError('"stdin.contents" must be a string')
    return StdinOptions(
        contents=contents,
        loader=_check_loader(data.get("loader", "js")),
        resolve_dir=_as_optional_str("stdin.resolve_dir", data.get("resolve_dir")),
        sourcefile=_as_optional_str("stdin.sourcefile", data.get("sourcefile")),
    )


def transform_options(raw: Mapping[str, Any] | None = None, **kwargs: Any) -> TransformOptions:
    """Return validated TransformOptions from snake_case or camelCase keys."""
    merged = dict(raw or {})
    merged.update(kwargs)
    allowed = {f.name for f in fields(TransformOptions)}
    data = _normalise_keys(merged, allowed, "transform")
    return TransformOptions(
        loader=_check_loader(data.get("loader", "js")),
        format=_check_format(data.get("format")),
        minify_whitespace=_as_bool("minify_whitespace", data.get("minify_whitespace", False)),
        sourcemap=_as_bool("sourcemap", data.get("sourcemap", False)),
        sourcefile=_as_optional_str("sourcefile", data.get("sourcefile")),
    )


__all__ = [
    "BuildOptions",
    "FORMATS",
    "LOADERS",
    "StdinOptions",
    "TransformOptions",
    "build_options",
    "snake_case",
    "transform_options",
]
