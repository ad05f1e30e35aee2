from __future__ import annotations

import stat
import time
from pathlib import Path
from threading import Event, Lock
from typing import Any, Callable, Protocol, Sequence

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .models import WakeReason


WATCHED_EVENT_TYPES = frozenset({EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED})


class WatchSource(Protocol):
    def wait(self, timeout: float) -> bool:
        """Block until an event is pending or ``timeout`` elapses. True on event."""
        ...

    def drain(self) -> int: ...

    def interrupt(self) -> None: ...

    def close(self) -> None: ...


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, outer: "WatchdogSource") -> None:
        self.outer = outer

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in WATCHED_EVENT_TYPES:
            return
        if event.is_directory and event.event_type in (EVENT_TYPE_DELETED, EVENT_TYPE_MOVED):
            self.outer.mark_stale(event.src_path)
            self.outer.mark_stale(getattr(event, "dest_path", "") or "")
        self.outer.notify()


def _dir_identity(path: Path) -> tuple[int, int] | None:
    try:
        st = path.stat()
    except OSError:
        return None
    if not stat.S_ISDIR(st.st_mode):
        return None
    return st.st_dev, st.st_ino


class WatchdogSource:
    """Filesystem change source backed by a ``watchdog`` observer.

    Tier directories are watched recursively. The source root is watched
    non-recursively so a tier created after startup is noticed; it gets its
    own recursive watch on the next ``refresh()``. A tier that is deleted,
    moved away or replaced loses its watch and is scheduled again once it
    exists.
    """

    def __init__(self, root: Path, paths: Sequence[Path], observer_factory: Callable[[], Observer] = Observer) -> None:
        self.root = Path(root)
        self.paths = [Path(p) for p in paths]
        self._observer = observer_factory()
        self._handler = _ChangeHandler(self)
        self._lock = Lock()
        self._pending = 0
        self._wake = Event()
        # tier path -> (watch handle, (st_dev, st_ino) when scheduled)
        self._watches: dict[Path, tuple[Any, tuple[int, int]]] = {}
        self._stale: set[Path] = set()
        self._started = False

    def start(self) -> None:
        if self.root.is_dir():
            self._observer.schedule(self._handler, str(self.root), recursive=False)
        self.refresh()
        self._observer.start()
        self._started = True

    def watched(self) -> set[Path]:
        return set(self._watches)

    def mark_stale(self, path: str) -> None:
        if not path:
            return
        p = Path(path)
        if p in self.paths:
            with self._lock:
                self._stale.add(p)

    def refresh(self) -> None:
        with self._lock:
            stale = self._stale
            self._stale = set()

        for p in self.paths:
            ident = _dir_identity(p)
            held = self._watches.get(p)
            if held is not None:
                watch, seen = held
                if ident == seen and p not in stale:
                    continue
                del self._watches[p]
                self._unschedule(watch)
            if ident is None:
                continue
            try:
                watch = self._observer.schedule(self._handler, str(p), recursive=True)
            except OSError:
                # gone again between stat and schedule; the next drain retries
                continue
            self._watches[p] = (watch, ident)

    def _unschedule(self, watch: Any) -> None:
        # The observer reuses an emitter for an equal watch, so a dead one
        # has to be dropped before the same path can be scheduled again.
        try:
            self._observer.unschedule(watch)
        except (KeyError, OSError):
            pass

    def notify(self) -> None:
        with self._lock:
            self._pending += 1
        self._wake.set()

    def wait(self, timeout: float) -> bool:
        fired = self._wake.wait(timeout)
        with self._lock:
            return fired and self._pending > 0

    def drain(self) -> int:
        with self._lock:
            n = self._pending
            self._pending = 0
            self._wake.clear()
        self.refresh()
        return n

    def interrupt(self) -> None:
        self._wake.set()

    def close(self) -> None:
        if self._started:
            self._observer.stop()
            self._observer.join()
            self._started = False


class Trigger:
    """One blocking wait, then a debounce delay that coalesces bursts.

    Everything that arrives before the debounce ends is drained, so a
    multi-file checkout results in exactly one reconciliation pass.
    """

    def __init__(
        self,
        source: WatchSource,
        timeout_s: float,
        debounce_s: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.source = source
        self.timeout_s = timeout_s
        self.debounce_s = debounce_s
        self._sleep = sleep
        self._stopped = False

    def wait(self) -> WakeReason:
        fired = self.source.wait(self.timeout_s)
        if self._stopped:
            return WakeReason.INTERRUPTED
        if self.debounce_s > 0:
            self._sleep(self.debounce_s)
        self.source.drain()
        return WakeReason.EVENT if fired else WakeReason.TIMEOUT

    def interrupt(self) -> None:
        self._stopped = True
        self.source.interrupt()
