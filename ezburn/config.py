"""Configuration loading for ezburn (.ezburn.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .backends import BACKENDS
from .errors import ConfigurationError
from .options import FORMATS

CONFIG_FILENAME = ".ezburn.yml"


class ConfigError(ConfigurationError):
    """Raised when the configuration file cannot be parsed or holds invalid values."""


@dataclass
class BuildDefaults:
    """Default build options applied before CLI flags."""

    bundle: Optional[bool] = None
    format: Optional[str] = None
    outdir: Optional[str] = None
    outfile: Optional[str] = None
    metafile: Optional[bool] = None
    minify_whitespace: Optional[bool] = None

    def as_options(self) -> Dict[str, Any]:
        values = {
            "bundle": self.bundle,
            "format": self.format,
            "outdir": self.outdir,
            "outfile": self.outfile,
            "metafile": self.metafile,
            "minify_whitespace": self.minify_whitespace,
        }
        return {key: value for key, value in values.items() if value is not None}


@dataclass
class TransformConfig:
    """Settings for the external transform executable."""

    executable: Optional[str] = None
    timeout: Optional[float] = None


@dataclass
class EzburnConfig:
    """Represents the settings defined in .ezburn.yml."""

    root: Path
    backend: str = "native"
    build: BuildDefaults = field(default_factory=BuildDefaults)
    transform: TransformConfig = field(default_factory=TransformConfig)
    plugins: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    log_file: Optional[Path] = None


def load_config(config_path: Path) -> EzburnConfig:
    """Load configuration from disk, returning defaults when the file is absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return EzburnConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    backend = _as_str(data.get("backend")) or "native"
    if backend not in BACKENDS:
        raise ConfigError(f"Unknown backend '{backend}' in {CONFIG_FILENAME}")

    build_data = _as_dict(data.get("build"))
    build = BuildDefaults(
        bundle=_as_bool(build_data.get("bundle")),
        format=_as_str(build_data.get("format")),
        outdir=_as_str(build_data.get("outdir")),
        outfile=_as_str(build_data.get("outfile")),
        metafile=_as_bool(build_data.get("metafile")),
        minify_whitespace=_as_bool(build_data.get("minify_whitespace")),
    )
    if build.format is not None and build.format not in FORMATS:
        raise ConfigError(f"Unknown format '{build.format}' in {CONFIG_FILENAME}")

    transform_data = _as_dict(data.get("transform"))
    transform = TransformConfig(
        executable=_as_str(transform_data.get("executable")),
        timeout=_as_float(transform_data.get("timeout")),
    )

    log_file_str = _as_str(data.get("log_file"))
    log_file = root / log_file_str if log_file_str else None

    return EzburnConfig(
        root=root,
        backend=backend,
        build=build,
        transform=transform,
        plugins=_as_plugin_table(data.get("plugins")),
        log_file=log_file,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_plugin_table(value: Any) -> Dict[str, Dict[str, Any]]:
    # Either a list of names or a mapping of name -> options.
    if value is None:
        return {}
    if isinstance(value, dict):
        table: Dict[str, Dict[str, Any]] = {}
        for name, options in value.items():
            if options is not None and not isinstance(options, dict):
                raise ConfigError(f"Options for plugin '{name}' must be a mapping")
            table[str(name)] = dict(options or {})
        return table
    return {name: {} for name in _as_str_list(value)}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = ["BuildDefaults", "ConfigError", "EzburnConfig", "TransformConfig", "load_config"]
