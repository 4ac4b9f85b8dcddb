"""CLI entrypoints for ezburn commands."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict

from . import api
from .backends import BACKENDS
from .config import EzburnConfig, load_config
from .engine import GraphEngine, Transformer
from .errors import EzburnError
from .logging import configure_logging, get_logger
from .options import FORMATS, LOADERS
from .plugins import discover_plugins


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=".",
        help="Path to .ezburn.yml or the directory containing it (defaults to current directory).",
    )


def _add_backend_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--backend",
        choices=sorted(BACKENDS),
        default=None,
        help="Execution backend (overrides the config file).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ezburn",
        description="Bundle, transform and analyze JavaScript builds with plugin hooks.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Bundle one or more entry points.")
    _add_verbose_option(build_parser, suppress_default=True)
    _add_config_option(build_parser)
    _add_backend_option(build_parser)
    build_parser.add_argument("entry_points", nargs="+", help="Entry point files.")
    build_parser.add_argument("--bundle", action="store_true", default=None, help="Follow imports.")
    output = build_parser.add_mutually_exclusive_group()
    output.add_argument("--outfile", help="Write the single output to this file.")
    output.add_argument("--outdir", help="Write outputs into this directory.")
    build_parser.add_argument("--format", choices=FORMATS, default=None, help="Output format.")
    build_parser.add_argument(
        "--minify-whitespace",
        action="store_true",
        default=None,
        help="Drop comments and blank lines from the output.",
    )
    build_parser.add_argument("--metafile", help="Write build metadata JSON to this path.")
    build_parser.add_argument(
        "--analyze",
        action="store_true",
        help="Print the size report for the build outputs.",
    )

    transform_parser = subparsers.add_parser("transform", help="Transform a single file or stdin.")
    _add_verbose_option(transform_parser, suppress_default=True)
    _add_config_option(transform_parser)
    _add_backend_option(transform_parser)
    transform_parser.add_argument("file", nargs="?", help="Source file (defaults to stdin).")
    transform_parser.add_argument("--loader", choices=LOADERS, default="js", help="Source loader.")

    analyze_parser = subparsers.add_parser("analyze", help="Print the size report for a metafile.")
    _add_verbose_option(analyze_parser, suppress_default=True)
    analyze_parser.add_argument("metafile", help="Path to a metafile JSON document.")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for ezburn commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    config: EzburnConfig | None = None
    if hasattr(args, "config"):
        try:
            config = load_config(Path(args.config))
        except EzburnError as exc:
            parser.exit(1, f"{exc}\n")

    configure_logging(
        verbose=bool(args.verbose),
        log_file=config.log_file if config is not None else None,
    )
    logger = get_logger("cli")

    try:
        if args.command == "build":
            status = asyncio.run(_run_build(args, config))
        elif args.command == "transform":
            status = asyncio.run(_run_transform(args, config))
        elif args.command == "analyze":
            status = asyncio.run(_run_analyze(args))
        elif args.command == "serve":
            from .service import run_service

            run_service(host=args.host, port=args.port)
            status = 0
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except EzburnError as exc:
        logger.debug("Command failed", exc_info=True)
        parser.exit(1, f"ezburn {args.command} failed: {exc}\n")
    except OSError as exc:
        parser.exit(1, f"{exc}\n")
    finally:
        api.stop()
    if status:
        sys.exit(status)


def _start(args: argparse.Namespace, config: EzburnConfig) -> None:
    transformer = Transformer(config.transform.executable, timeout=config.transform.timeout or 60.0)
    api.initialize(backend=args.backend or config.backend, engine=GraphEngine(transformer))


async def _run_build(args: argparse.Namespace, config: EzburnConfig | None) -> int:
    assert config is not None
    _start(args, config)
    options: Dict[str, Any] = config.build.as_options()
    overrides = {
        "bundle": args.bundle,
        "format": args.format,
        "minify_whitespace": args.minify_whitespace,
        "outfile": args.outfile,
        "outdir": args.outdir,
    }
    if args.outfile or args.outdir:
        options.pop("outfile", None)
        options.pop("outdir", None)
    options.update({key: value for key, value in overrides.items() if value is not None})
    options["entry_points"] = list(args.entry_points)
    options["plugins"] = discover_plugins(config.plugins)
    if args.metafile or args.analyze:
        options["metafile"] = True
    options.setdefault("write", bool(options.get("outfile") or options.get("outdir")))

    result = await api.build(options)
    for message in result.warnings:
        print(_format_message("warning", message), file=sys.stderr)
    for message in result.errors:
        print(_format_message("error", message), file=sys.stderr)
    if result.errors:
        return 1

    for output in result.output_files or []:
        sys.stdout.write(output.text)
    if result.metafile is not None:
        if args.metafile:
            Path(args.metafile).write_text(json.dumps(result.metafile, indent=2), encoding="utf-8")
        if args.analyze:
            sys.stdout.write(await api.analyze_metafile(result.metafile))
    return 0


async def _run_transform(args: argparse.Namespace, config: EzburnConfig | None) -> int:
    assert config is not None
    _start(args, config)
    if args.file:
        code = Path(args.file).read_text(encoding="utf-8")
    else:
        code = sys.stdin.read()
    result = await api.transform(code, loader=args.loader, sourcefile=args.file)
    sys.stdout.write(result.code)
    return 0


async def _run_analyze(args: argparse.Namespace) -> int:
    text = Path(args.metafile).read_text(encoding="utf-8")
    sys.stdout.write(await api.analyze_metafile(text))
    return 0


def _format_message(level: str, message: Any) -> str:
    prefix = f"[plugin {message.plugin_name}] " if message.plugin_name else ""
    location = f" ({message.location})" if message.location else ""
    return f"{level}: {prefix}{message.text}{location}"


if __name__ == "__main__":
    main(sys.argv[1:])
