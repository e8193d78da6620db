"""Live filesystem change feed for the active analysis root.

One :class:`ChangePropagator` watches at most one project subtree at a time
(the current *analysis target*) and fans out change events to any number of
subscribers. Events are hints for consumers ("something changed, maybe
re-analyze"); they never trigger analysis by themselves.

Every activation mints a new run token. Each event carries the token of the
watch that observed it, so a consumer holding a :class:`RunTokenFilter` can
drop late events from a previous target.
"""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import WATCH_IGNORED_DIRS
from .models import ActiveAnalysis, ChangeEvent
from .resolver import to_rel_id
from .targets import new_run_token

logger = logging.getLogger(__name__)

Sink = Callable[[ChangeEvent], None]

DEFAULT_SETTLE_SECONDS = 0.25
DEFAULT_QUEUE_SIZE = 256


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Subscribers
# ---------------------------------------------------------------------------

class Subscription:
    """A registered consumer of the feed.

    With a *sink* callable events are pushed synchronously from the watcher
    thread; otherwise they are buffered in a bounded queue and read through
    :meth:`get` / :meth:`events`.
    """

    def __init__(self, propagator: "ChangePropagator", sink: Optional[Sink] = None,
                 maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        self._propagator = propagator
        self._sink = sink
        self._queue: "queue.Queue[ChangeEvent]" = queue.Queue(maxsize=maxsize)
        self.closed = False

    def deliver(self, event: ChangeEvent) -> None:
        """Hand *event* to the consumer; raises when the consumer cannot take it."""
        if self._sink is not None:
            self._sink(event)
        else:
            self._queue.put_nowait(event)

    def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def events(self, timeout: float = 0.0) -> Iterator[ChangeEvent]:
        """Yield buffered events until none arrives within *timeout* seconds."""
        while True:
            event = self.get(timeout=timeout) if timeout > 0 else self._get_nowait()
            if event is None:
                return
            yield event

    def _get_nowait(self) -> Optional[ChangeEvent]:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def close(self) -> None:
        self._propagator.unsubscribe(self)


class RunTokenFilter:
    """Consumer-side guard against events from a superseded watch."""

    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token

    def observe(self, token: Optional[str]) -> None:
        self.token = token

    def accept(self, event: ChangeEvent) -> bool:
        if event.type == "analysis":
            self.observe(event.run_token)
            return True
        if event.type == "hello":
            if event.run_token:
                self.observe(event.run_token)
            return True
        if self.token is None:
            return True
        return event.run_token == self.token


# ---------------------------------------------------------------------------
# Watch
# ---------------------------------------------------------------------------

class _SettlingHandler(FileSystemEventHandler):
    """Translate watchdog events into feed events for one watch."""

    def __init__(self, watch: "_Watch") -> None:
        super().__init__()
        self.watch = watch

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self.watch.dir_added(event.src_path)
        else:
            self.watch.settle("add", event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watch.settle("change", event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self.watch.dir_removed(event.src_path)
        else:
            self.watch.emit_now("unlink", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self.watch.dir_removed(event.src_path)
            self.watch.dir_added(event.dest_path)
        else:
            self.watch.emit_now("unlink", event.src_path)
            self.watch.settle("add", event.dest_path)

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception as exc:
            self.watch.report_error(exc)


class _Watch:
    """A running observer for one root; owned by the propagator.

    The root itself is watched non-recursively and each top-level child
    directory gets its own recursive watch, so denylisted trees such as
    ``node_modules`` never get OS watches. Top-level directories created
    later are picked up as they appear.
    """

    def __init__(
        self,
        root: Path,
        analysis: ActiveAnalysis,
        publish: Sink,
        settle_seconds: float,
        ignored_dirs: Iterable[str],
        ignored_paths: Iterable[Path],
        observer_factory: Callable[[], Any],
    ) -> None:
        self.root = root
        self.analysis = analysis
        self.publish = publish
        self.settle_seconds = settle_seconds
        self.ignored_dirs = frozenset(ignored_dirs)
        self.ignored_paths = tuple(Path(p).resolve() for p in ignored_paths)
        self.handler = _SettlingHandler(self)
        self.observer = observer_factory()
        self.stopped = False
        self._pending: Dict[str, Tuple[str, threading.Timer]] = {}
        self._subtrees: Dict[Path, Any] = {}
        self._lock = threading.Lock()

    def start(self) -> bool:
        """Schedule the watches and start the observer; False when that fails."""
        try:
            self.observer.schedule(self.handler, str(self.root), recursive=False)
            for child in self._top_level_dirs():
                self._subtrees[child] = self.observer.schedule(self.handler, str(child), recursive=True)
            self.observer.start()
        except (OSError, RuntimeError) as exc:
            self.report_error(exc)
            return False
        logger.info("Watching %s (run %s, %d subtrees)", self.root, self.analysis.run_token, len(self._subtrees))
        return True

    def stop(self) -> None:
        with self._lock:
            self.stopped = True
            pending = [timer for _, timer in self._pending.values()]
            self._pending.clear()
        for timer in pending:
            timer.cancel()
        try:
            self.observer.stop()
            if self.observer.is_alive() and threading.current_thread() is not self.observer:
                self.observer.join(timeout=2.0)
        except RuntimeError as exc:
            logger.debug("Observer shutdown for %s: %s", self.root, exc)
        logger.info("Stopped watching %s", self.root)

    # -- top-level subtrees ---------------------------------------------

    def _top_level_dirs(self) -> List[Path]:
        return [
            child for child in sorted(self.root.iterdir(), key=lambda p: p.name)
            if child.is_dir() and self.node_id(child) is not None
        ]

    def dir_added(self, raw_path: Any) -> None:
        self.emit_now("addDir", raw_path)
        path = self._abs(raw_path)
        if path.parent != self.root or self.node_id(path) is None:
            return
        with self._lock:
            if self.stopped or path in self._subtrees:
                return
            self._subtrees[path] = None
        try:
            scheduled = self.observer.schedule(self.handler, str(path), recursive=True)
        except (OSError, RuntimeError) as exc:
            self.report_error(exc)
            return
        with self._lock:
            if path in self._subtrees:
                self._subtrees[path] = scheduled

    def dir_removed(self, raw_path: Any) -> None:
        path = self._abs(raw_path)
        if path.parent == self.root:
            with self._lock:
                if path not in self._subtrees:
                    # the subtree's own watch already reported it
                    return
                scheduled = self._subtrees.pop(path)
            if scheduled is not None:
                try:
                    self.observer.unschedule(scheduled)
                except (KeyError, OSError, RuntimeError) as exc:
                    logger.debug("Unscheduling %s: %s", path, exc)
        self.emit_now("unlinkDir", raw_path)

    # -- event shaping --------------------------------------------------

    def _abs(self, raw_path: Any) -> Path:
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        return path if path.is_absolute() else self.root / path

    def node_id(self, raw_path: Any) -> Optional[str]:
        """Root-relative id, or ``None`` for the root itself and ignored/outside paths."""
        path = self._abs(raw_path)
        rel = to_rel_id(self.root, path)
        if rel in (".", "") or rel == ".." or rel.startswith("../"):
            return None
        if any(part in self.ignored_dirs for part in rel.split("/")):
            return None
        for ignored in self.ignored_paths:
            if path == ignored or ignored in path.parents:
                return None
        return rel

    def settle(self, ev: str, raw_path: Any) -> None:
        """Emit *ev* for a path once writes to it have been quiet for the settle delay."""
        node_id = self.node_id(raw_path)
        if node_id is None:
            return
        with self._lock:
            if self.stopped:
                return
            previous = self._pending.pop(node_id, None)
            if previous is not None:
                previous[1].cancel()
                # a file created and then written is still reported as added
                if previous[0] == "add":
                    ev = "add"
            timer = threading.Timer(self.settle_seconds, self._flush, args=(node_id,))
            timer.daemon = True
            self._pending[node_id] = (ev, timer)
        timer.start()

    def emit_now(self, ev: str, raw_path: Any) -> None:
        node_id = self.node_id(raw_path)
        if node_id is None:
            return
        with self._lock:
            if self.stopped:
                return
            pending = self._pending.pop(node_id, None)
        if pending is not None:
            pending[1].cancel()
        self._publish_change(ev, node_id)

    def _flush(self, node_id: str) -> None:
        with self._lock:
            if self.stopped:
                return
            pending = self._pending.pop(node_id, None)
        if pending is not None:
            self._publish_change(pending[0], node_id)

    def _publish_change(self, ev: str, node_id: str) -> None:
        self.publish(ChangeEvent(
            type="fs-change",
            at=_now(),
            run_token=self.analysis.run_token,
            ev=ev,
            id=node_id,
            app_id=self.analysis.app_id,
        ))

    def report_error(self, exc: BaseException) -> None:
        logger.warning("Watcher error under %s: %s", self.root, exc)
        self.publish(ChangeEvent(
            type="fs-watch-error",
            at=_now(),
            run_token=self.analysis.run_token,
            app_id=self.analysis.app_id,
            message=str(exc),
        ))


# ---------------------------------------------------------------------------
# Propagator
# ---------------------------------------------------------------------------

class ChangePropagator:
    """Watches the active analysis root and broadcasts change events."""

    def __init__(
        self,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        ignored_dirs: Iterable[str] = WATCH_IGNORED_DIRS,
        ignored_paths: Iterable[Path] = (),
        observer_factory: Callable[[], Any] = Observer,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.settle_seconds = settle_seconds
        self.ignored_dirs = tuple(ignored_dirs)
        self.ignored_paths = tuple(ignored_paths)
        self.observer_factory = observer_factory
        self.queue_size = queue_size
        self.active: Optional[ActiveAnalysis] = None
        self._subscribers: List[Subscription] = []
        self._watch: Optional[_Watch] = None
        self._lock = threading.RLock()

    @property
    def is_watching(self) -> bool:
        with self._lock:
            return self._watch is not None

    def subscribe(self, sink: Optional[Sink] = None) -> Subscription:
        """Register a consumer and greet it with the current analysis target."""
        subscription = Subscription(self, sink=sink, maxsize=self.queue_size)
        with self._lock:
            self._subscribers.append(subscription)
            active = self.active
        hello = ChangeEvent(
            type="hello",
            at=_now(),
            run_token=active.run_token if active else None,
            analysis=active,
        )
        if not self._deliver(subscription, hello):
            self.unsubscribe(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)
            subscription.closed = True
            stale = self._detach_watch() if not self._subscribers else None
        if stale is not None:
            stale.stop()

    def activate(
        self,
        root: Optional[Path],
        run_token: Optional[str] = None,
        entry_rel: Optional[str] = None,
        app_id: Optional[str] = None,
    ) -> str:
        """Switch the watched subtree to *root* and return the new run token.

        The previous watch (and its pending settle timers) is always torn
        down first. Without subscribers no new watch is started, and a watch
        that fails to start is reported as ``fs-watch-error`` and dropped.
        """
        token = run_token or new_run_token()
        root_path = Path(root).resolve() if root else None
        analysis = ActiveAnalysis(
            run_token=token,
            started_at=_now(),
            root=str(root_path) if root_path else None,
            entry_rel=entry_rel,
            app_id=app_id,
        )
        with self._lock:
            stale = self._detach_watch()
            self.active = analysis
        if stale is not None:
            stale.stop()

        self.broadcast(ChangeEvent(type="analysis", at=analysis.started_at, run_token=token,
                                   app_id=app_id, analysis=analysis))

        with self._lock:
            if not self._subscribers or root_path is None or self.active is not analysis:
                return token
            watch = _Watch(
                root_path,
                analysis,
                self.broadcast,
                self.settle_seconds,
                self.ignored_dirs,
                self.ignored_paths,
                self.observer_factory,
            )
            self._watch = watch
        if not watch.start():
            with self._lock:
                failed = self._detach_watch() if self._watch is watch else None
            if failed is not None:
                failed.stop()
        return token

    def teardown(self) -> None:
        """Stop watching; a later :meth:`activate` starts again."""
        with self._lock:
            stale = self._detach_watch()
        if stale is not None:
            stale.stop()

    def broadcast(self, event: ChangeEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        dropped = [s for s in subscribers if not self._deliver(s, event)]
        for subscription in dropped:
            self.unsubscribe(subscription)

    @staticmethod
    def _deliver(subscription: Subscription, event: ChangeEvent) -> bool:
        try:
            subscription.deliver(event)
        except queue.Full:
            logger.debug("Dropping subscriber with a full queue")
            return False
        except Exception as exc:
            logger.debug("Dropping subscriber after sink error: %s", exc)
            return False
        return True

    def _detach_watch(self) -> Optional[_Watch]:
        watch, self._watch = self._watch, None
        return watch
