"""Recognition of safe, statically resolvable path-building calls.

A call site is first reduced to a :class:`CallShape` (callee object,
property and a flat argument list). A small closed set of matchers then
inspects the shape; each returns an absolute path or ``None``. Any
argument that is not a string literal or a known directory anchor makes
the matcher decline instead of guessing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Set, Tuple

from .text_scan import is_non_local_ref

FS_METHODS = frozenset({
    "readFileSync", "readFile", "writeFileSync", "writeFile",
    "createReadStream", "createWriteStream", "existsSync",
    "statSync", "lstatSync", "readdirSync", "mkdirSync",
})


@dataclass(frozen=True)
class Arg:
    kind: str  # "string" | "identifier" | "call" | "other"
    value: str = ""
    call: Optional["CallShape"] = None


@dataclass(frozen=True)
class CallShape:
    obj: str
    prop: str
    args: Tuple[Arg, ...] = ()

    @property
    def callee(self) -> str:
        return f"{self.obj}.{self.prop}" if self.obj else self.prop


@dataclass
class PathScope:
    """Directory anchors and path-valued variables known at a point in a file."""

    base_dir: Path
    anchors: Set[str] = field(default_factory=lambda: {"__dirname"})
    path_vars: Dict[str, Path] = field(default_factory=dict)

    def anchor_value(self, arg: Arg) -> Optional[Path]:
        if arg.kind == "identifier":
            if arg.value in self.anchors:
                return self.base_dir
            return self.path_vars.get(arg.value)
        if arg.kind == "call" and arg.call is not None and is_cwd_call(arg.call):
            # cwd() is not evaluated; the file's directory is the deterministic stand-in
            return self.base_dir
        return None

    def capture_anchor(self, name: str, init: Arg) -> Optional[Path]:
        """Remember ``name`` as an anchor when it is bound to ``__dirname`` or ``process.cwd()``."""
        is_dirname = init.kind == "identifier" and init.value == "__dirname"
        is_cwd = init.kind == "call" and init.call is not None and is_cwd_call(init.call)
        if not (is_dirname or is_cwd):
            return None
        self.anchors.add(name)
        self.path_vars[name] = self.base_dir
        return self.base_dir


def is_cwd_call(call: CallShape) -> bool:
    return call.obj == "process" and call.prop == "cwd" and not call.args


class PathJoinMatcher:
    """``path.join(anchor, "a", "b")`` / ``path.resolve(anchor, "a")``."""

    def match(self, call: CallShape, scope: PathScope) -> Optional[Path]:
        if call.obj != "path" or call.prop not in ("join", "resolve"):
            return None
        if len(call.args) < 2:
            return None
        base = scope.anchor_value(call.args[0])
        if base is None:
            return None
        segments = []
        for arg in call.args[1:]:
            if arg.kind != "string":
                return None
            # path.join treats "/x" as a plain segment, path.resolve restarts at it
            segments.append(arg.value.lstrip("/") if call.prop == "join" else arg.value)
        return Path(os.path.normpath(os.path.join(str(base), *segments)))


class FsCallMatcher:
    """``fs.readFileSync(X)`` and friends where X is a literal, a path variable or a path call."""

    def match(self, call: CallShape, scope: PathScope) -> Optional[Path]:
        if call.obj != "fs" or call.prop not in FS_METHODS or not call.args:
            return None
        arg0 = call.args[0]
        if arg0.kind == "identifier":
            return scope.anchor_value(arg0)
        if arg0.kind == "string":
            value = arg0.value.strip()
            if is_non_local_ref(value):
                return None
            return Path(os.path.normpath(os.path.join(str(scope.base_dir), value)))
        if arg0.kind == "call" and arg0.call is not None:
            return _PATH_JOIN.match(arg0.call, scope)
        return None


class StaticServeMatcher:
    """``express.static(X)`` style static-directory mounts."""

    def match(self, call: CallShape, scope: PathScope) -> Optional[Path]:
        if not call.obj or call.prop != "static" or not call.args:
            return None
        arg0 = call.args[0]
        if arg0.kind == "identifier":
            return scope.anchor_value(arg0)
        if arg0.kind == "call" and arg0.call is not None:
            return _PATH_JOIN.match(arg0.call, scope)
        return None


_PATH_JOIN = PathJoinMatcher()

MATCHERS = (_PATH_JOIN, FsCallMatcher(), StaticServeMatcher())


def match_call(call: CallShape, scope: PathScope) -> Optional[Path]:
    """Return the path produced by the first matcher that accepts *call*."""
    for matcher in MATCHERS:
        hit = matcher.match(call, scope)
        if hit is not None:
            return hit
    return None
