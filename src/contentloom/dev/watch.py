"""Watch router: glob-scoped filesystem watchers with a ready gate.

Each :class:`WatchScope` gets its own :class:`ScopeWatcher`. A watcher starts
in ``SCANNING`` state, records the files that already exist, then flips to
``READY`` exactly once. Only events observed after that reach the handler,
one at a time and in arrival order, through the scope's own queue.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from watchfiles import awatch

from contentloom.errors import WatchSetupError
from contentloom.globs import expand, matches

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

    from watchfiles import Change

    from contentloom.content.indexer import ContentIndexer

    EventHandler = Callable[["PathEvent"], Awaitable[object]]
    WatchBackend = Callable[..., AsyncIterator[set[tuple[Change, str]]]]

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 200

# Paths containing any of these are our own output (or a bundled app) and never
# trigger work, otherwise every write would feed back into the watcher.
GENERATED_MARKERS = ("__generated__", "@contentloom/app", "contentloom/dist")


class ChangeKind(enum.Enum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class ScopeState(enum.Enum):
    SCANNING = "scanning"
    READY = "ready"


class ScopeAction(enum.Enum):
    """What a scope's events lead to; used for logs and the start-up summary."""

    INDEX = "index content"
    CODEGEN = "regenerate client"
    RECONCILE = "full rebuild"


@dataclass(frozen=True)
class PathEvent:
    """A single filesystem change, relative to its scope's base directory."""

    path: str
    kind: ChangeKind


@dataclass(frozen=True)
class WatchScope:
    name: str
    roots: tuple[Path, ...]
    patterns: tuple[str, ...]
    action: ScopeAction
    base: Path


def is_generated_path(path: str | Path) -> bool:
    posix = Path(path).as_posix()
    return any(marker in posix for marker in GENERATED_MARKERS)


class ScopeWatcher:
    """Runs the watch loop and the event consumer for one scope."""

    def __init__(
        self,
        scope: WatchScope,
        on_event: EventHandler,
        *,
        backend: WatchBackend = awatch,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ) -> None:
        self.scope = scope
        self.on_event = on_event
        self.state = ScopeState.SCANNING
        self._backend = backend
        self._debounce_ms = debounce_ms
        self._known: set[str] = set()
        self._queue: asyncio.Queue[PathEvent | None] = asyncio.Queue()
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []

    # -- filtering ----------------------------------------------------------

    def accepts(self, path: str | Path) -> bool:
        """True when *path* is inside the scope's glob set and is not generated output."""
        if is_generated_path(path):
            return False
        return matches(self.scope.patterns, path)

    def _relative(self, path: str | Path) -> str:
        p = Path(path)
        try:
            return p.relative_to(self.scope.base).as_posix()
        except ValueError:
            return p.as_posix()

    def collapse(self, changes: Iterable[tuple[Change, str]]) -> list[PathEvent]:
        """Reduce one backend batch to at most one event per path.

        A batch is unordered, so the final on-disk state decides the kind.
        Events are returned sorted by path.
        """
        if self.state is not ScopeState.READY:
            logger.debug(
                "%s: dropping %d change(s) before ready", self.scope.name, len(set(changes))
            )
            return []
        events: list[PathEvent] = []
        for path in sorted({p for _, p in changes if self.accepts(p)}):
            rel = self._relative(path)
            if Path(path).is_file():
                kind = ChangeKind.CHANGED if rel in self._known else ChangeKind.ADDED
                self._known.add(rel)
            else:
                kind = ChangeKind.REMOVED
                self._known.discard(rel)
            events.append(PathEvent(rel, kind))
        return events

    # -- lifecycle ----------------------------------------------------------

    def _scan(self) -> set[str]:
        return {self._relative(p) for p in expand(self.scope.patterns) if not is_generated_path(p)}

    def mark_ready(self) -> None:
        if self.state is ScopeState.READY:
            return
        self.state = ScopeState.READY
        logger.debug("%s: watching %d file(s)", self.scope.name, len(self._known))

    async def start(self) -> None:
        """Check the roots, start watching, scan, then flip to ready.

        Raises
        ------
        WatchSetupError
            When one of the scope's roots does not exist.
        """
        for root in self.scope.roots:
            if not root.is_dir():
                raise WatchSetupError(f"Cannot watch {self.scope.name}: {root} does not exist")
        self._tasks.append(asyncio.create_task(self._pump(), name=f"watch-{self.scope.name}"))
        self._known = await asyncio.to_thread(self._scan)
        self.mark_ready()
        self._tasks.append(asyncio.create_task(self._consume(), name=f"handle-{self.scope.name}"))

    async def stop(self) -> None:
        self._stop.set()
        self._queue.put_nowait(None)
        for task in self._tasks:
            if task.get_name().startswith("watch-"):
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def _pump(self) -> None:
        async for changes in self._backend(
            *self.scope.roots,
            watch_filter=lambda _change, path: self.accepts(path),
            debounce=self._debounce_ms,
            stop_event=self._stop,
        ):
            for event in self.collapse(changes):
                self._queue.put_nowait(event)

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            if event is None:
                self._queue.task_done()
                return
            try:
                logger.debug("%s: %s %s", self.scope.name, event.kind.value, event.path)
                await self.on_event(event)
            except Exception:
                logger.exception("%s: failed to handle %s", self.scope.name, event.path)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()


class WatchRouter:
    """Owns the scope watchers of one dev session."""

    def __init__(
        self, *, backend: WatchBackend = awatch, debounce_ms: int = DEFAULT_DEBOUNCE_MS
    ) -> None:
        self._backend = backend
        self._debounce_ms = debounce_ms
        self.watchers: list[ScopeWatcher] = []

    async def watch(self, scope: WatchScope, on_event: EventHandler) -> ScopeWatcher:
        watcher = ScopeWatcher(
            scope, on_event, backend=self._backend, debounce_ms=self._debounce_ms
        )
        await watcher.start()
        self.watchers.append(watcher)
        return watcher

    async def close(self) -> None:
        for watcher in self.watchers:
            await watcher.stop()
        self.watchers.clear()


async def route_content_event(indexer: ContentIndexer, event: PathEvent) -> None:
    """Map one content event onto the indexer: one call per event."""
    if event.kind is ChangeKind.REMOVED:
        await indexer.delete_by_paths([event.path])
    else:
        await indexer.index_by_paths([event.path])
