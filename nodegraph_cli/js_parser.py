"""Structural extraction for JavaScript / TypeScript using Tree-sitter.

Tree-sitter gives a concrete syntax tree for every input, even broken
ones, so a file whose tree contains ERROR nodes is reported as
unparseable and the caller falls back to text-only signals.

The walk is a single pre-order pass driven by an explicit stack. An
:class:`AttributionStack` tracks the name of the function whose body is
being walked so calls can be attributed to it; it is a side channel and
never influences which references are collected.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Parser as TSParser

from .call_shapes import Arg, CallShape, PathJoinMatcher, PathScope, match_call
from .text_scan import RefCollector, looks_like_asset_path

logger = logging.getLogger(__name__)

# Language <-> file-extension mapping
LANGUAGE_MAP: Dict[str, str] = {
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
}

TOPLEVEL = "<toplevel>"
ANONYMOUS = "<anonymous>"

BRANCH_NODES = frozenset({
    "if_statement", "for_statement", "for_in_statement", "while_statement",
    "do_statement", "catch_clause", "ternary_expression", "switch_case",
})
FUNCTION_DECLARATIONS = frozenset({"function_declaration", "generator_function_declaration"})
FUNCTION_EXPRESSIONS = frozenset({"function_expression", "function", "generator_function", "arrow_function"})
CLASS_DECLARATIONS = frozenset({"class_declaration", "abstract_class_declaration"})
VARIABLE_DECLARATIONS = frozenset({"lexical_declaration", "variable_declaration"})

_PATH_JOIN = PathJoinMatcher()


class AttributionStack:
    """Names of the functions enclosing the node currently being walked."""

    def __init__(self) -> None:
        self._names: List[str] = []

    def push(self, name: str) -> None:
        self._names.append(name or ANONYMOUS)

    def pop(self) -> None:
        if self._names:
            self._names.pop()

    @property
    def current(self) -> str:
        return self._names[-1] if self._names else TOPLEVEL


class JsTreeParser:
    """Caches one Tree-sitter parser per grammar."""

    _GRAMMARS = {
        "javascript": tree_sitter_javascript.language,
        "typescript": tree_sitter_typescript.language_typescript,
        "tsx": tree_sitter_typescript.language_tsx,
    }

    def __init__(self) -> None:
        self._parsers: Dict[str, Any] = {}

    def _parser_for(self, lang: str) -> Optional[Any]:
        if lang in self._parsers:
            return self._parsers[lang]
        parser = None
        try:
            parser = TSParser(Language(self._GRAMMARS[lang]()))
            logger.debug("Loaded tree-sitter parser for %s", lang)
        except (ValueError, TypeError) as exc:
            logger.warning("Could not load tree-sitter grammar for %s: %s", lang, exc)
        self._parsers[lang] = parser
        return parser

    def parse(self, source: str, ext: str) -> Optional[Any]:
        """Return the syntax tree root, or ``None`` when the source has syntax errors."""
        lang = LANGUAGE_MAP.get(ext.lower())
        if lang is None:
            return None
        parser = self._parser_for(lang)
        if parser is None:
            return None
        tree = parser.parse(source.encode("utf-8"))
        root = tree.root_node
        if root.has_error:
            return None
        return root


_default_parser = JsTreeParser()


def extract_structure(source: str, file_path: Path, out: RefCollector) -> bool:
    """Walk the syntax tree of *source* into *out*.

    Returns ``False`` without touching *out* when the file cannot be parsed.
    """
    root = _default_parser.parse(source, file_path.suffix)
    if root is None:
        return False
    _ScriptWalker(out).walk(root)
    return True


class _ScriptWalker:
    def __init__(self, out: RefCollector) -> None:
        self.out = out
        self.scope = PathScope(base_dir=out.base_dir)
        self.callers = AttributionStack()

    def walk(self, root: Any) -> None:
        self.out.calls_by.setdefault(TOPLEVEL, [])
        stack: List[Any] = [(root, False)]
        while stack:
            node, exiting = stack.pop()
            if exiting:
                self.callers.pop()
                continue
            if self._enter(node):
                stack.append((node, True))
            for child in reversed(node.children):
                stack.append((child, False))

    # ------------------------------------------------------------------
    # Node handlers
    # ------------------------------------------------------------------

    def _enter(self, node: Any) -> bool:
        """Handle *node*; return True when it pushed an attribution frame."""
        kind = node.type

        if kind in BRANCH_NODES:
            self.out.complexity += 1
        elif kind == "binary_expression":
            op = node.child_by_field_name("operator")
            if op is not None and op.type in ("&&", "||"):
                self.out.complexity += 1
        elif kind == "import_statement":
            self._on_import(node)
        elif kind == "export_statement":
            self._on_export(node)
        elif kind == "call_expression":
            self._on_call(node)
        elif kind == "variable_declarator":
            self._on_declarator(node)
        elif kind == "string":
            self.out.add_asset_hint(string_value(node))
        elif kind == "template_string":
            for child in node.children:
                if child.type == "string_fragment":
                    self.out.add_asset_hint(_text(child))
        elif kind in CLASS_DECLARATIONS:
            name = node.child_by_field_name("name")
            if name is not None:
                self.out.add_symbol(_text(name), "class")
        elif kind in FUNCTION_DECLARATIONS:
            name_node = node.child_by_field_name("name")
            name = _text(name_node) if name_node is not None else ""
            self.out.add_symbol(name, "function")
            self.callers.push(name)
            return True
        elif kind in FUNCTION_EXPRESSIONS:
            self.callers.push(infer_function_name(node))
            return True
        elif kind == "method_definition":
            name_node = node.child_by_field_name("name")
            self.callers.push(_text(name_node) if name_node is not None else ANONYMOUS)
            return True
        return False

    def _on_import(self, node: Any) -> None:
        source = node.child_by_field_name("source")
        if source is None:
            # TypeScript: import x = require("y")
            for child in node.named_children:
                if child.type == "import_require_clause":
                    source = child.child_by_field_name("source") or next(
                        (c for c in child.named_children if c.type == "string"), None
                    )
        if source is not None:
            self.out.add_import(string_value(source))

    def _on_export(self, node: Any) -> None:
        source = node.child_by_field_name("source")
        if source is not None:
            self.out.add_import(string_value(source))

        is_default = any(child.type == "default" for child in node.children)
        declaration = node.child_by_field_name("declaration")

        if is_default:
            target = declaration or node.child_by_field_name("value")
            if target is not None and (target.type in FUNCTION_DECLARATIONS | CLASS_DECLARATIONS
                                       or target.type in ("function_expression", "function", "class")):
                name = target.child_by_field_name("name")
                self.out.add_symbol(_text(name) if name is not None else "default", "export")
            return

        if declaration is not None:
            if declaration.type in FUNCTION_DECLARATIONS:
                name = declaration.child_by_field_name("name")
                if name is not None:
                    self.out.add_symbol(_text(name), "export")
            elif declaration.type in VARIABLE_DECLARATIONS:
                for decl in declaration.named_children:
                    if decl.type != "variable_declarator":
                        continue
                    name = decl.child_by_field_name("name")
                    if name is not None and name.type == "identifier":
                        self.out.add_symbol(_text(name), "export")

        for child in node.named_children:
            if child.type != "export_clause":
                continue
            for spec in child.named_children:
                if spec.type != "export_specifier":
                    continue
                exported = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                if exported is not None:
                    self.out.add_symbol(_text(exported), "export")

    def _on_call(self, node: Any) -> None:
        fn = node.child_by_field_name("function")
        args = _call_args(node)
        arg0 = args[0] if args else None

        if fn is not None and fn.type == "import":
            if arg0 is not None and arg0.type == "string":
                self.out.add_import(string_value(arg0))
            return

        if fn is not None and fn.type == "identifier":
            if _text(fn) == "require" and arg0 is not None and arg0.type == "string":
                self.out.add_import(string_value(arg0))
                return
            self.out.add_call(self.callers.current, _text(fn))

        if arg0 is not None and arg0.type == "string":
            self.out.add_asset_hint(string_value(arg0))

        hit = match_call(call_shape(node), self.scope)
        if hit is not None:
            self.out.add_abs_ref(hit)

    def _on_declarator(self, node: Any) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None or name_node.type != "identifier":
            return
        name = _text(name_node)
        value = node.child_by_field_name("value")
        if value is None:
            return

        anchor = self.scope.capture_anchor(name, to_arg(value))
        if anchor is not None:
            self.out.add_abs_ref(anchor)

        if value.type in ("function_expression", "function", "arrow_function"):
            self.out.add_symbol(name, "const-fn")

        if value.type == "call_expression":
            joined = _PATH_JOIN.match(call_shape(value), self.scope)
            if joined is not None:
                self.scope.path_vars[name] = joined
                self.out.add_abs_ref(joined)

        if value.type == "string":
            literal = string_value(value)
            if looks_like_asset_path(literal):
                self.out.asset_refs.append(literal)
                resolved = self.out.resolve_string_path(literal)
                if resolved is not None:
                    self.scope.path_vars[name] = resolved
                    self.out.add_abs_ref(resolved)


# ---------------------------------------------------------------------------
# Tree helpers
# ---------------------------------------------------------------------------

def _text(node: Any) -> str:
    raw = node.text
    return raw.decode("utf-8", errors="replace") if raw else ""


def string_value(node: Any) -> str:
    """Contents of a ``string`` node without its quotes."""
    raw = _text(node)
    if len(raw) >= 2 and raw[0] in "\"'" and raw[-1] == raw[0]:
        return raw[1:-1]
    return raw


def _call_args(node: Any) -> List[Any]:
    args = node.child_by_field_name("arguments")
    if args is None:
        return []
    return [a for a in args.named_children if a.type != "comment"]


def call_shape(node: Any) -> CallShape:
    """Reduce a ``call_expression`` node to a :class:`CallShape`."""
    fn = node.child_by_field_name("function")
    obj, prop = "", ""
    if fn is not None and fn.type == "member_expression":
        target = fn.child_by_field_name("object")
        field = fn.child_by_field_name("property")
        obj = _text(target) if target is not None and target.type == "identifier" else "?"
        prop = _text(field) if field is not None else ""
    elif fn is not None and fn.type == "identifier":
        prop = _text(fn)
    return CallShape(obj=obj, prop=prop, args=tuple(to_arg(a) for a in _call_args(node)))


def to_arg(node: Any) -> Arg:
    if node.type == "string":
        return Arg("string", string_value(node))
    if node.type == "identifier":
        return Arg("identifier", _text(node))
    if node.type == "call_expression":
        return Arg("call", call=call_shape(node))
    return Arg("other")


def infer_function_name(node: Any) -> str:
    """Best-effort name for a function expression from its own name or its binding site."""
    own = node.child_by_field_name("name")
    if own is not None:
        return _text(own)
    parent = node.parent
    if parent is None:
        return ANONYMOUS
    if parent.type == "variable_declarator":
        name = parent.child_by_field_name("name")
        if name is not None and name.type == "identifier":
            return _text(name)
    if parent.type == "pair":
        key = parent.child_by_field_name("key")
        if key is not None:
            return string_value(key) if key.type == "string" else _text(key) or ANONYMOUS
    return ANONYMOUS
