"""In-process reference engine: module graph construction through the plugin pipeline.

The graph engine resolves and loads every module reachable from the entry
points, consulting plugins first and the filesystem second, and emits the
modules dependencies-first into one output per entry point. It does not
parse, transpile or link JavaScript; module sources are emitted verbatim.
"""

from __future__ import annotations

import asyncio
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import PluginError
from ..logging import get_logger
from ..models import BuildResult, Message, OutputFile, ResolveResult, TransformResult
from ..options import BuildOptions, TransformOptions
from ..plugins.pipeline import PluginPipeline
from .base import FILE_NAMESPACE, FILE_NAMESPACES
from .transformer import Transformer

STDIN_LABEL = "<stdin>"
STDOUT_PATH = "<stdout>"

_RESOLVE_EXTENSIONS = (".tsx", ".ts", ".jsx", ".js", ".mjs", ".cjs", ".css", ".json")
_LOADER_BY_EXTENSION = {
    ".js": "js",
    ".mjs": "js",
    ".cjs": "js",
    ".jsx": "jsx",
    ".ts": "ts",
    ".mts": "ts",
    ".cts": "ts",
    ".tsx": "tsx",
    ".json": "json",
    ".css": "css",
    ".txt": "text",
}

_SPECIFIER_PATTERNS: Tuple[Tuple[str, re.Pattern[str]], ...] = (
    ("import-statement", re.compile(r"""\bimport\s+(?:[\w$*{}\s,]+?\s+from\s+)?(["'])(?P<spec>[^"'\r\n]+)\1""")),
    ("import-statement", re.compile(r"""\bexport\s+[\w$*{}\s,]+?\s+from\s+(["'])(?P<spec>[^"'\r\n]+)\1""")),
    ("require-call", re.compile(r"""\brequire\s*\(\s*(["'])(?P<spec>[^"'\r\n]+)\1\s*\)""")),
    ("dynamic-import", re.compile(r"""\bimport\s*\(\s*(["'])(?P<spec>[^"'\r\n]+)\1\s*\)""")),
)

ModuleKey = Tuple[str, str]


def scan_imports(source: str) -> List[Tuple[str, str]]:
    """Return ``(specifier, kind)`` pairs in source order, first occurrence only."""
    found: List[Tuple[int, str, str]] = []
    for kind, pattern in _SPECIFIER_PATTERNS:
        for match in pattern.finditer(source):
            found.append((match.start(), match.group("spec"), kind))
    found.sort()
    seen: set[str] = set()
    ordered: List[Tuple[str, str]] = []
    for _, spec, kind in found:
        if spec in seen:
            continue
        seen.add(spec)
        ordered.append((spec, kind))
    return ordered


def loader_for(path: str) -> str:
    return _LOADER_BY_EXTENSION.get(os.path.splitext(path)[1].lower(), "js")


def resolve_on_disk(specifier: str, base_dir: str, *, entry_point: bool = False) -> Optional[str]:
    """Resolve a relative or absolute specifier against ``base_dir``.

    Entry points are always treated as paths; bare import specifiers
    (packages) are not resolved here.
    """
    if not entry_point and not (specifier.startswith((".", "/")) or os.path.isabs(specifier)):
        return None
    candidate = os.path.normpath(os.path.join(base_dir, specifier))
    if os.path.isfile(candidate):
        return candidate
    for extension in _RESOLVE_EXTENSIONS:
        if os.path.isfile(candidate + extension):
            return candidate + extension
    if os.path.isdir(candidate):
        for extension in _RESOLVE_EXTENSIONS:
            index = os.path.join(candidate, "index" + extension)
            if os.path.isfile(index):
                return index
    return None


@dataclass
class ModuleRecord:
    """A loaded module and the modules it depends on."""

    key: ModuleKey
    label: str
    contents: str
    loader: str
    resolve_dir: str
    dependencies: List[Tuple[ModuleKey, str]] = field(default_factory=list)
    externals: List[Tuple[str, str]] = field(default_factory=list)


class GraphEngine:
    """Reference engine that builds the module graph and concatenates it."""

    name = "graph"

    def __init__(self, transformer: Transformer | None = None) -> None:
        self.transformer = transformer or Transformer()

    async def build(self, options: BuildOptions, pipeline: PluginPipeline) -> BuildResult:
        return await _BuildSession(options, pipeline).run()

    async def transform(self, code: str, options: TransformOptions) -> TransformResult:
        return await self.transformer.run_async(code, options)


class _BuildSession:
    def __init__(self, options: BuildOptions, pipeline: PluginPipeline) -> None:
        self.options = options
        self.pipeline = pipeline
        self.errors: List[Message] = []
        self.warnings: List[Message] = []
        self.modules: Dict[ModuleKey, ModuleRecord] = {}
        self._tasks: Dict[ModuleKey, asyncio.Future[None]] = {}
        self.logger = get_logger("engine.graph")

    async def run(self) -> BuildResult:
        options = self.options
        roots: List[Optional[ModuleKey]] = list(
            await asyncio.gather(*(self._entry(entry) for entry in options.entry_points))
        )
        if options.stdin is not None:
            roots.append(await self._stdin_entry())
        await self._drain()
        outputs, meta_outputs = ([], {}) if self.errors else self._emit_all(roots)

        if self.errors:
            self.logger.debug("Build finished with %d error(s)", len(self.errors))
            return BuildResult(
                errors=self.errors,
                warnings=self.warnings,
                output_files=None if options.write else [],
            )

        if options.write:
            for output in outputs:
                target = Path(output.path)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(output.contents)
                self.logger.debug("Wrote %s (%d bytes)", target, len(output.contents))

        metafile = None
        if options.metafile:
            metafile = {"inputs": self._meta_inputs(), "outputs": meta_outputs}

        return BuildResult(
            errors=self.errors,
            warnings=self.warnings,
            output_files=None if options.write else outputs,
            metafile=metafile,
        )

    # ------------------------------------------------------------------
    # Graph construction

    async def _entry(self, entry: str) -> Optional[ModuleKey]:
        resolved = await self._resolve(
            entry,
            kind="entry-point",
            importer="",
            namespace="",
            resolve_dir=self.options.abs_working_dir,
        )
        if resolved is None:
            return None
        if resolved.external:
            self.errors.append(Message(text=f'The entry point "{entry}" cannot be marked as external'))
            return None
        return self._ensure(resolved)

    async def _stdin_entry(self) -> ModuleKey:
        stdin = self.options.stdin
        assert stdin is not None
        label = stdin.sourcefile or STDIN_LABEL
        key: ModuleKey = ("", STDIN_LABEL)
        record = ModuleRecord(
            key=key,
            label=label,
            contents=stdin.contents,
            loader=stdin.loader,
            resolve_dir=stdin.resolve_dir or self.options.abs_working_dir,
        )
        self.modules[key] = record
        await self._link(record, importer=label, namespace="")
        return key

    def _ensure(self, reference: ResolveResult) -> ModuleKey:
        if reference.namespace == "":
            # "" and "file" name the same filesystem module.
            reference = replace(reference, namespace=FILE_NAMESPACE)
        key: ModuleKey = (reference.namespace, reference.path)
        if key not in self._tasks:
            self._tasks[key] = asyncio.ensure_future(self._load(reference))
        return key

    async def _drain(self) -> None:
        # Loading a module schedules its dependencies, so keep waiting until nothing new appears.
        while True:
            pending = [task for task in self._tasks.values() if not task.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        for key, task in self._tasks.items():
            exc = task.exception()
            if exc is None:
                continue
            label = self._label(*key)
            self.logger.debug("Loading %s failed", label, exc_info=exc)
            self.errors.append(Message(text=f"Failed to load {label}: {exc}", location=label))

    async def _resolve(
        self,
        specifier: str,
        *,
        kind: str,
        importer: str,
        namespace: str,
        resolve_dir: str,
    ) -> Optional[ResolveResult]:
        try:
            result = await self.pipeline.resolve(
                specifier,
                importer=importer,
                namespace=namespace,
                resolve_dir=resolve_dir,
                kind=kind,
            )
        except PluginError as exc:
            message = exc.to_message()
            message.location = importer or None
            self.errors.append(message)
            return None
        if result is not None:
            return result
        path = resolve_on_disk(specifier, resolve_dir, entry_point=kind == "entry-point")
        if path is None:
            self.errors.append(Message(text=f'Could not resolve "{specifier}"', location=importer or None))
            return None
        return ResolveResult(path=path, namespace=FILE_NAMESPACE)

    async def _load(self, reference: ResolveResult) -> None:
        key: ModuleKey = (reference.namespace, reference.path)
        label = self._label(reference.namespace, reference.path)
        try:
            loaded = await self.pipeline.load(reference)
        except PluginError as exc:
            message = exc.to_message()
            message.location = label
            self.errors.append(message)
            return

        is_file = reference.namespace in FILE_NAMESPACES
        if loaded is not None:
            contents = loaded.contents
            loader = loaded.loader or loader_for(reference.path)
            resolve_dir = loaded.resolve_dir or (os.path.dirname(reference.path) if is_file else "")
        elif is_file:
            try:
                contents = Path(reference.path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                self.errors.append(Message(text=f"Could not read {label}: {exc}", location=label))
                return
            loader = loader_for(reference.path)
            resolve_dir = os.path.dirname(reference.path)
        else:
            self.errors.append(Message(text=f"Do not know how to load path: {reference.namespace}:{reference.path}"))
            return

        record = ModuleRecord(key=key, label=label, contents=contents, loader=loader, resolve_dir=resolve_dir)
        self.modules[key] = record
        self.logger.debug("Loaded %s (%s)", label, loader)
        await self._link(record, importer=reference.path, namespace=reference.namespace)

    async def _link(self, record: ModuleRecord, *, importer: str, namespace: str) -> None:
        if not self.options.bundle:
            return
        specifiers = scan_imports(record.contents)
        results = await asyncio.gather(
            *(
                self._resolve(spec, kind=kind, importer=importer, namespace=namespace, resolve_dir=record.resolve_dir)
                for spec, kind in specifiers
            )
        )
        for (spec, kind), resolved in zip(specifiers, results):
            if resolved is None:
                continue
            if resolved.external:
                record.externals.append((spec, kind))
                continue
            record.dependencies.append((self._ensure(resolved), kind))

    # ------------------------------------------------------------------
    # Output

    def _emit_all(
        self, roots: List[Optional[ModuleKey]]
    ) -> Tuple[List[OutputFile], Dict[str, Dict[str, object]]]:
        outputs: List[OutputFile] = []
        meta_outputs: Dict[str, Dict[str, object]] = {}
        for root in roots:
            if root is None:
                continue
            output, meta = self._emit(root)
            display = self._display_path(output.path)
            if display in meta_outputs:
                self.errors.append(
                    Message(text=f"Two output files share the same path: {display}")
                )
                continue
            outputs.append(output)
            meta_outputs[display] = meta
        return outputs, meta_outputs

    def _ordered(self, root: ModuleKey) -> List[ModuleRecord]:
        ordered: List[ModuleRecord] = []
        visited: set[ModuleKey] = set()

        def _visit(key: ModuleKey) -> None:
            if key in visited or key not in self.modules:
                return
            visited.add(key)
            record = self.modules[key]
            for dependency, _ in record.dependencies:
                _visit(dependency)
            ordered.append(record)

        _visit(root)
        return ordered

    def _render_module(self, record: ModuleRecord) -> str:
        if self.options.minify_whitespace:
            lines = [line.strip() for line in record.contents.splitlines()]
            return "\n".join(line for line in lines if line) + "\n"
        return f"// {record.label}\n{record.contents.rstrip()}\n"

    def _emit(self, root: ModuleKey) -> Tuple[OutputFile, Dict[str, object]]:
        chunks: List[str] = []
        contributions: Dict[str, Dict[str, int]] = {}
        for record in self._ordered(root):
            chunk = self._render_module(record)
            chunks.append(chunk)
            contributions[record.label] = {"bytesInOutput": len(chunk.encode("utf-8"))}

        separator = "" if self.options.minify_whitespace else "\n"
        text = separator.join(chunks)
        if self.options.format == "iife":
            text = "(() => {\n" + text + "})();\n"
        contents = text.encode("utf-8")
        output = OutputFile(path=self._output_path(self.modules[root]), contents=contents)
        return output, {"bytes": len(contents), "inputs": contributions}

    def _output_path(self, root: ModuleRecord) -> str:
        options = self.options
        if options.outfile:
            return os.path.normpath(os.path.join(options.abs_working_dir, options.outfile))
        if options.outdir:
            if root.key == ("", STDIN_LABEL):
                stem = "stdin"
            else:
                stem = os.path.splitext(os.path.basename(root.key[1]))[0] or "out"
            return os.path.normpath(os.path.join(options.abs_working_dir, options.outdir, stem + ".js"))
        return STDOUT_PATH

    def _meta_inputs(self) -> Dict[str, Dict[str, object]]:
        inputs: Dict[str, Dict[str, object]] = {}
        for record in self.modules.values():
            imports: List[Dict[str, object]] = [
                {"path": self.modules[key].label, "kind": kind}
                for key, kind in record.dependencies
                if key in self.modules
            ]
            imports.extend({"path": spec, "kind": kind, "external": True} for spec, kind in record.externals)
            inputs[record.label] = {
                "bytes": len(record.contents.encode("utf-8")),
                "imports": imports,
            }
        return inputs

    def _label(self, namespace: str, path: str) -> str:
        if namespace in FILE_NAMESPACES:
            return self._display_path(path)
        return f"{namespace}:{path}"

    def _display_path(self, path: str) -> str:
        if path == STDOUT_PATH or not os.path.isabs(path):
            return path
        relative = os.path.relpath(path, self.options.abs_working_dir)
        return relative.replace(os.sep, "/")


__all__ = ["GraphEngine", "ModuleRecord", "loader_for", "resolve_on_disk", "scan_imports"]
