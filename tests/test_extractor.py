"""Tests for per-file signal extraction."""

import os
from pathlib import Path

from nodegraph_cli.extractor import category_for, extract, is_lightweight_text, is_program_source
from nodegraph_cli.models import Symbol
from nodegraph_cli.text_scan import extract_header_comment, looks_like_asset_path


def _abs(base: Path, rel: str) -> str:
    return os.path.normpath(str(base / rel))


class TestImports:

    def test_all_import_forms_in_order(self, temp_dir: Path):
        src = '''
import fs from "fs";
import { a } from "./a";
export { b } from "./b.js";
const c = require("./c");
async function load() {
  return import("./d.mjs");
}
'''
        result = extract(src, temp_dir / "main.js")
        assert result.imports == ["fs", "./a", "./b.js", "./c", "./d.mjs"]

    def test_duplicates_collapsed(self, temp_dir: Path):
        src = 'const a = require("./a");\nconst again = require("./a");\n'
        assert extract(src, temp_dir / "main.js").imports == ["./a"]

    def test_typescript_import_equals(self, temp_dir: Path):
        src = 'import fs = require("fs");\nimport { x } from "./x";\nconst n: number = 1;\n'
        assert extract(src, temp_dir / "main.ts").imports == ["fs", "./x"]

    def test_non_literal_require_ignored(self, temp_dir: Path):
        src = 'const name = "./a";\nconst mod = require(name);\n'
        assert extract(src, temp_dir / "main.js").imports == []


class TestMetrics:

    def test_complexity_counts_branches(self, temp_dir: Path):
        src = '''
function f(x) {
  if (x && x.y) { return 1; }
  for (let i = 0; i < 3; i++) {}
  while (false) {}
  try { g(); } catch (e) {}
  return x ? 1 : 2;
}
'''
        assert extract(src, temp_dir / "f.js").complexity == 6

    def test_switch_cases_and_or(self, temp_dir: Path):
        src = '''
switch (k) {
  case 1: break;
  case 2: break;
  default: break;
}
const v = a || b;
'''
        assert extract(src, temp_dir / "s.js").complexity == 3

    def test_lines_are_non_empty(self, temp_dir: Path):
        src = "const a = 1;\n\n   \nconst b = 2;\r\n"
        assert extract(src, temp_dir / "l.js").lines == 2

    def test_line_comment_header(self):
        src = "#!/usr/bin/env node\n// Line one\n// Line two\nconst x = 1;\n"
        assert extract_header_comment(src) == "Line one\nLine two"

    def test_block_comment_header(self):
        src = "\ufeff/**\n * Hello\n * World\n */\nconst x = 1;\n"
        assert extract_header_comment(src) == "Hello\nWorld"

    def test_no_header(self):
        assert extract_header_comment("const x = 1; // trailing\n") == ""

    def test_header_only_for_program_source(self, temp_dir: Path):
        assert extract("// not a header\n", temp_dir / "notes.css").header_comment == ""
        assert extract("// a header\n", temp_dir / "notes.js").header_comment == "a header"


class TestSymbolsAndCalls:

    def test_symbols(self, temp_dir: Path):
        src = '''
class Foo {}
function bar() {}
const baz = () => 1;
export function qux() {}
export default class Widget {}
export { bar as renamed };
'''
        symbols = extract(src, temp_dir / "sym.js").symbols
        for expected in [
            Symbol("Foo", "class"),
            Symbol("bar", "function"),
            Symbol("baz", "const-fn"),
            Symbol("qux", "export"),
            Symbol("Widget", "export"),
            Symbol("renamed", "export"),
        ]:
            assert expected in symbols

    def test_calls_attributed_to_enclosing_function(self, temp_dir: Path):
        src = '''
function outer() {
  inner();
  helper();
  inner();
}
function inner() {}
helper();
const arrow = () => {
  inner();
};
class Svc {
  run() {
    outer();
  }
}
'''
        calls = extract(src, temp_dir / "calls.js").calls_by
        assert calls["outer"] == ["inner", "helper"]
        assert calls["<toplevel>"] == ["helper"]
        assert calls["arrow"] == ["inner"]
        assert calls["run"] == ["outer"]

    def test_attribution_does_not_change_imports(self, temp_dir: Path):
        nested = 'function a() {\n  return require("./x");\n}\n'
        flat = 'const x = require("./x");\n'
        assert extract(nested, temp_dir / "n.js").imports == extract(flat, temp_dir / "f.js").imports


class TestPathSignals:

    def test_path_join_fs_and_static(self, temp_dir: Path):
        src = '''
const path = require("path");
const fs = require("fs");
const DATA = path.join(__dirname, "data");
const cfg = fs.readFileSync(path.join(__dirname, "config.json"), "utf8");
app.use(express.static(DATA));
const root = process.cwd();
const views = path.resolve(root, "views");
fs.existsSync(someVariable);
'''
        refs = extract(src, temp_dir / "server.js").file_refs_abs
        assert _abs(temp_dir, "data") in refs
        assert _abs(temp_dir, "config.json") in refs
        assert _abs(temp_dir, "views") in refs

    def test_fs_string_literal(self, temp_dir: Path):
        src = 'const fs = require("fs");\nfs.readFileSync("./seed/rows.csv");\n'
        result = extract(src, temp_dir / "seed.js")
        assert _abs(temp_dir, "seed/rows.csv") in result.file_refs_abs
        assert "./seed/rows.csv" in result.asset_refs

    def test_dynamic_arguments_decline(self, temp_dir: Path):
        src = 'const path = require("path");\nconst p = path.join(base, "x");\nconst q = path.join(__dirname, name);\n'
        refs = extract(src, temp_dir / "dyn.js").file_refs_abs
        assert _abs(temp_dir, "x") not in refs
        assert all(not r.endswith("name") for r in refs)

    def test_string_constant_becomes_path_variable(self, temp_dir: Path):
        src = 'const fs = require("fs");\nconst CONFIG = "config/app.json";\nfs.readFileSync(CONFIG);\n'
        result = extract(src, temp_dir / "cfg.js")
        assert _abs(temp_dir, "config/app.json") in result.file_refs_abs
        assert "config/app.json" in result.asset_refs


class TestLightweightFormats:

    def test_html(self, temp_dir: Path):
        src = '<img src="img/logo.png"><a href="https://example.com">x</a><link href="/css/a.css?v=1">'
        result = extract(src, temp_dir / "index.html")
        assert _abs(temp_dir, "img/logo.png") in result.file_refs_abs
        assert "/css/a.css" in result.asset_refs
        assert not any("example.com" in r for r in result.asset_refs)

    def test_css(self, temp_dir: Path):
        src = "body { background: url('../img/bg.png'); }\n.x { background: url(data:image/png;base64,AAA); }"
        result = extract(src, temp_dir / "css" / "site.css")
        assert _abs(temp_dir, "img/bg.png") in result.file_refs_abs
        assert len(result.file_refs_abs) == 1

    def test_json_path_keys(self, temp_dir: Path):
        src = '{"staticDir": "public", "nested": {"templatePath": "views/home.html"}, "name": "demo"}'
        refs = extract(src, temp_dir / "config.json").file_refs_abs
        assert _abs(temp_dir, "public") in refs
        assert _abs(temp_dir, "views/home.html") in refs
        assert _abs(temp_dir, "demo") not in refs

    def test_yaml_and_toml(self, temp_dir: Path):
        yaml_refs = extract("dataPath: data/apps.csv\n", temp_dir / "app.yml").file_refs_abs
        toml_refs = extract('[server]\nroot = "www"\n', temp_dir / "app.toml").file_refs_abs
        assert _abs(temp_dir, "data/apps.csv") in yaml_refs
        assert _abs(temp_dir, "www") in toml_refs

    def test_invalid_json_is_ignored(self, temp_dir: Path):
        result = extract('{"path": ', temp_dir / "broken.json")
        assert result.file_refs_abs == []
        assert result.lines == 1

    def test_markdown_links(self, temp_dir: Path):
        src = "See [guide](docs/guide.md#intro) and ![logo](img/logo.png) or [site](https://x.dev)."
        refs = extract(src, temp_dir / "README.md").file_refs_abs
        assert _abs(temp_dir, "docs/guide.md") in refs
        assert _abs(temp_dir, "img/logo.png") in refs
        assert len(refs) == 2


class TestDegradation:

    def test_syntax_error_keeps_text_signals(self, temp_dir: Path):
        src = '// Broken file\nconst a = require("./a");\nfunction (\nconst cfg = "config/app.json";\n'
        result = extract(src, temp_dir / "broken.js")
        assert result.imports == []
        assert result.complexity == 0
        assert result.lines == 4
        assert result.header_comment == "Broken file"
        assert "config/app.json" in result.asset_refs

    def test_empty_content(self, temp_dir: Path):
        result = extract("", temp_dir / "empty.js")
        assert result.imports == []
        assert result.lines == 0

    def test_categories(self):
        assert is_program_source("a/b.tsx")
        assert is_lightweight_text("page.HTML")
        assert category_for("image.png") == "other"
        assert not looks_like_asset_path("https://cdn.example.com/app.css")
        assert looks_like_asset_path("settings.yaml")
