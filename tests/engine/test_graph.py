"""Tests for the in-process graph engine."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Sequence

from ezburn.engine import GraphEngine, scan_imports
from ezburn.engine import graph as graph_module
from ezburn.models import BuildResult, LoadResult, ResolveArgs
from ezburn.options import build_options
from ezburn.plugins import Plugin, PluginBuild, setup_plugins
from tests._fixtures.project_builder import ProjectBuilder


def _angle_plugin() -> Plugin:
    def setup(build: PluginBuild) -> None:
        build.on_resolve({"filter": r"^<.*>$"}, lambda args: {"path": args.path, "namespace": "<>"})
        build.on_load({"filter": r"^<entry>$"}, lambda args: {"contents": 'import dep from "<dep>"; export default dep === 123'})
        build.on_load({"filter": r"^<dep>$"}, lambda args: {"contents": "export default 123"})

    return Plugin(name="plug", setup=setup)


def _build(plugins: Sequence[Any] = (), **options: Any) -> BuildResult:
    async def _run() -> BuildResult:
        opts = build_options(plugins=list(plugins), **options)
        pipeline = await setup_plugins(opts.plugins, opts)
        return await GraphEngine().build(opts, pipeline)

    return asyncio.run(_run())


def test_virtual_entry_is_resolved_loaded_and_bundled() -> None:
    result = _build([_angle_plugin()], entry_points=["<entry>"], bundle=True, format="esm", write=False, metafile=True)

    assert result.errors == []
    assert result.output_files is not None and len(result.output_files) == 1
    text = result.output_files[0].text
    assert result.output_files[0].path == "<stdout>"
    assert text.index("export default 123") < text.index('import dep from "<dep>"')
    assert "// <>:<dep>" in text
    assert result.metafile is not None
    inputs = result.metafile["outputs"]["<stdout>"]["inputs"]
    assert list(inputs) == ["<>:<dep>", "<>:<entry>"]
    assert result.metafile["inputs"]["<>:<entry>"]["imports"] == [
        {"path": "<>:<dep>", "kind": "import-statement"}
    ]


def test_filesystem_build_writes_outfile(project: ProjectBuilder) -> None:
    project.write(
        {
            "in.ts": 'import dep from "./dep.ts"; export default dep === 123\n',
            "dep.ts": "export default 123\n",
        }
    )
    out = project.path("out.js")

    result = _build(
        entry_points=["in.ts"],
        bundle=True,
        outfile=str(out),
        format="esm",
        abs_working_dir=str(project.path()),
    )

    assert result.errors == []
    assert result.warnings == []
    assert result.output_files is None
    written = out.read_text(encoding="utf-8")
    assert written.startswith("// dep.ts\nexport default 123\n")
    assert "// in.ts" in written


def test_extensionless_and_index_imports_resolve(project: ProjectBuilder) -> None:
    project.write(
        {
            "main.js": "import './lib'\nconst util = require('./util')\n",
            "lib/index.js": "export const lib = 1\n",
            "util.ts": "export const util = 2\n",
        }
    )
    result = _build(entry_points=["main.js"], bundle=True, write=False, metafile=True, abs_working_dir=str(project.path()))

    assert result.errors == []
    assert result.metafile is not None
    assert set(result.metafile["inputs"]) == {"main.js", "lib/index.js", "util.ts"}


def test_without_bundle_imports_are_not_followed(project: ProjectBuilder) -> None:
    project.write({"in.js": "import './missing.js'\n"})
    result = _build(entry_points=["in.js"], write=False, abs_working_dir=str(project.path()))

    assert result.errors == []
    assert result.output_files is not None
    assert result.output_files[0].text == "// in.js\nimport './missing.js'\n"


def test_unresolvable_import_is_reported(project: ProjectBuilder) -> None:
    project.write({"in.js": 'import x from "./nowhere"\n'})
    result = _build(entry_points=["in.js"], bundle=True, write=False, abs_working_dir=str(project.path()))

    assert [message.text for message in result.errors] == ['Could not resolve "./nowhere"']
    assert result.output_files == []


def test_unknown_namespace_without_loader_is_reported() -> None:
    def setup(build: PluginBuild) -> None:
        build.on_resolve(r".*", lambda args: {"path": args.path, "namespace": "remote"})

    result = _build([Plugin("only-resolve", setup)], entry_points=["thing"], write=False)
    assert [message.text for message in result.errors] == ["Do not know how to load path: remote:thing"]


def test_plugin_error_is_collected_with_plugin_name() -> None:
    def setup(build: PluginBuild) -> None:
        build.on_resolve(r"^<.*>$", lambda args: {"path": args.path, "namespace": "<>"})

        def explode(args) -> None:
            raise RuntimeError("load exploded")

        build.on_load(r".*", explode)

    result = _build([Plugin("explosive", setup)], entry_points=["<entry>"], bundle=True, write=False)

    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.plugin_name == "explosive"
    assert error.text == "load exploded"
    assert error.location == "<>:<entry>"


def test_cyclic_imports_terminate() -> None:
    sources = {"<a>": 'import "<b>"\nexport const a = 1', "<b>": 'import "<a>"\nexport const b = 2'}

    def setup(build: PluginBuild) -> None:
        build.on_resolve(r"^<.*>$", lambda args: {"path": args.path, "namespace": "cycle"})
        build.on_load(r".*", lambda args: {"contents": sources[args.path]}, namespace="cycle")

    result = _build([Plugin("cycle", setup)], entry_points=["<a>"], bundle=True, write=False)

    assert result.errors == []
    text = result.output_files[0].text  # type: ignore[index]
    assert text.index("export const b") < text.index("export const a")


def test_external_imports_are_left_out(project: ProjectBuilder) -> None:
    project.write({"in.js": 'import fs from "node:fs"\nexport default fs\n'})

    def setup(build: PluginBuild) -> None:
        build.on_resolve(r"^node:", lambda args: {"path": args.path, "external": True})

    result = _build(
        [Plugin("ext", setup)],
        entry_points=["in.js"],
        bundle=True,
        write=False,
        metafile=True,
        abs_working_dir=str(project.path()),
    )

    assert result.errors == []
    assert result.metafile is not None
    assert result.metafile["inputs"]["in.js"]["imports"] == [
        {"path": "node:fs", "kind": "import-statement", "external": True}
    ]


def test_different_specifiers_resolve_concurrently() -> None:
    def setup(build: PluginBuild) -> None:
        a_started = asyncio.Event()
        b_started = asyncio.Event()

        async def resolve(args: ResolveArgs) -> dict:
            if args.path == "<a>":
                a_started.set()
                await b_started.wait()
            elif args.path == "<b>":
                b_started.set()
                await a_started.wait()
            return {"path": args.path, "namespace": "c"}

        build.on_resolve(r"^<.*>$", resolve)
        build.on_load(r".*", lambda args: {"contents": f"// {args.path}"}, namespace="c")

    async def _run() -> BuildResult:
        opts = build_options(
            plugins=[Plugin("concurrent", setup)], entry_points=["<a>", "<b>"], outdir="dist", write=False
        )
        pipeline = await setup_plugins(opts.plugins, opts)
        # Serialised resolution would deadlock here.
        return await asyncio.wait_for(GraphEngine().build(opts, pipeline), timeout=5)

    result = asyncio.run(_run())
    assert result.errors == []
    assert len(result.output_files or []) == 2


def test_stdin_build_with_minified_whitespace() -> None:
    result = _build(stdin={"contents": "let a = 1\n\n  let b = 2\n"}, write=False, minify_whitespace=True)

    assert result.errors == []
    assert result.output_files is not None
    assert result.output_files[0].text == "let a = 1\nlet b = 2\n"


def test_outdir_names_outputs_after_entry_points(project: ProjectBuilder) -> None:
    project.write({"a.js": "export const a = 1\n", "b.ts": "export const b = 2\n"})
    result = _build(
        entry_points=["a.js", "b.ts"],
        outdir="dist",
        write=False,
        metafile=True,
        abs_working_dir=str(project.path()),
    )

    assert result.errors == []
    paths = [Path(output.path) for output in result.output_files or []]
    assert paths == [project.path("dist/a.js"), project.path("dist/b.js")]
    assert result.metafile is not None
    assert list(result.metafile["outputs"]) == ["dist/a.js", "dist/b.js"]


def test_metafile_byte_counts_match_output(project: ProjectBuilder) -> None:
    project.write({"in.js": "import './dep.js'\n", "dep.js": "export {}\n"})
    result = _build(entry_points=["in.js"], bundle=True, write=False, metafile=True, abs_working_dir=str(project.path()))

    output = result.output_files[0]  # type: ignore[index]
    meta = result.metafile["outputs"]["<stdout>"]  # type: ignore[index]
    assert meta["bytes"] == len(output.contents)
    assert sum(entry["bytesInOutput"] for entry in meta["inputs"].values()) <= meta["bytes"]


def test_iife_format_wraps_output() -> None:
    result = _build(stdin={"contents": "console.log(1)"}, write=False, format="iife")
    text = result.output_files[0].text  # type: ignore[index]
    assert text.startswith("(() => {\n")
    assert text.endswith("})();\n")


def test_scan_imports_reports_kinds_in_source_order() -> None:
    source = "\n".join(
        [
            'import a from "./a"',
            "export * from './b'",
            'const c = require("./c")',
            'import("./d").then(() => {})',
            'import "./a"',
            'export { e } from "./e"',
        ]
    )
    assert scan_imports(source) == [
        ("./a", "import-statement"),
        ("./b", "import-statement"),
        ("./c", "require-call"),
        ("./d", "dynamic-import"),
        ("./e", "import-statement"),
    ]


def _single_module_plugin(name: str, load) -> Plugin:
    def setup(build: PluginBuild) -> None:
        build.on_resolve(r"^<e>$", lambda args: {"path": args.path, "namespace": "v"})
        build.on_load(r"^<e>$", load, namespace="v")

    return Plugin(name, setup)


def test_undecodable_plugin_contents_are_reported() -> None:
    result = _build(
        [_single_module_plugin("binary", lambda args: {"contents": b"\xff\xfe"})],
        entry_points=["<e>"],
        bundle=True,
        write=False,
    )

    assert len(result.errors) == 1
    assert result.errors[0].plugin_name == "binary"
    assert "UTF-8" in result.errors[0].text
    assert result.output_files == []


def test_bytes_in_load_result_instances_are_decoded() -> None:
    result = _build(
        [_single_module_plugin("bytes", lambda args: LoadResult(contents=b"export default 1"))],
        entry_points=["<e>"],
        bundle=True,
        write=False,
    )

    assert result.errors == []
    assert result.output_files[0].text == "// v:<e>\nexport default 1\n"  # type: ignore[index]


def test_unexpected_failure_while_loading_becomes_build_error(monkeypatch) -> None:
    def broken_scan(source: str):
        raise RuntimeError("scanner blew up")

    monkeypatch.setattr(graph_module, "scan_imports", broken_scan)
    result = _build(
        [_single_module_plugin("plain", lambda args: {"contents": "export default 1"})],
        entry_points=["<e>"],
        bundle=True,
        write=False,
    )

    assert [message.text for message in result.errors] == ["Failed to load v:<e>: scanner blew up"]
    assert result.output_files == []


def test_outputs_with_the_same_path_are_rejected(project: ProjectBuilder) -> None:
    project.write({"a/index.js": "export const a = 1\n", "b/index.js": "export const b = 2\n"})

    result = _build(entry_points=["a/index.js", "b/index.js"], outdir="dist", abs_working_dir=str(project.path()))

    assert [message.text for message in result.errors] == ["Two output files share the same path: dist/index.js"]
    assert result.output_files is None
    assert not project.path("dist").exists()


def test_plugin_paths_without_namespace_share_the_file_namespace(project: ProjectBuilder) -> None:
    project.write({"real.js": "export default 'from disk'\n"})
    seen: list[str] = []

    def setup(build: PluginBuild) -> None:
        build.on_resolve(r"^alias$", lambda args: {"path": str(project.path("real.js"))})

        def load(args) -> dict:
            seen.append(args.namespace)
            return {"contents": "export default 'patched'"}

        build.on_load(r"real\.js$", load, namespace="file")

    result = _build(
        [Plugin("alias", setup)],
        entry_points=["alias"],
        write=False,
        metafile=True,
        abs_working_dir=str(project.path()),
    )

    assert result.errors == []
    assert seen == ["file"]
    assert result.output_files[0].text == "// real.js\nexport default 'patched'\n"  # type: ignore[index]
    assert list(result.metafile["inputs"]) == ["real.js"]  # type: ignore[index]
