"""Watch mode: regenerate when .proto files change.

A watchfiles producer thread pushes change batches onto a queue. A single
consumer coalesces batches that arrive close together and runs one
regeneration at a time.
"""

from __future__ import annotations

import queue
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional, Set, Tuple

from watchfiles import Change, DefaultFilter, watch

from protoc_ts.exceptions import ProtocTsError
from protoc_ts.logging_config import get_logger

logger = get_logger(__name__)

FileChanges = Set[Tuple[Change, str]]

DEFAULT_DEBOUNCE_MS = 300


class ProtoFileFilter(DefaultFilter):
    """Only .proto files, never anything under node_modules."""

    def __call__(self, change: Change, path: str) -> bool:
        if not path.endswith(".proto"):
            return False
        if "node_modules" in Path(path).parts:
            return False
        return super().__call__(change, path)


class ChangeDebouncer:
    """Consume change batches and run ``regenerate`` once per burst.

    After the first batch of a burst, further batches are merged in until the
    queue stays quiet for ``window`` seconds. ``None`` closes the queue: any
    pending changes are still regenerated, then ``run`` returns.
    """

    def __init__(
        self,
        events: "queue.Queue[Optional[FileChanges]]",
        regenerate: Callable[[FileChanges], None],
        window: float,
    ):
        self._events = events
        self._regenerate = regenerate
        self._window = window

    def run(self) -> int:
        """Process batches until the queue is closed. Returns the number of regenerations."""
        cycles = 0
        closed = False
        while not closed:
            batch = self._events.get()
            if batch is None:
                break
            pending: FileChanges = set(batch)
            while True:
                try:
                    more = self._events.get(timeout=self._window)
                except queue.Empty:
                    break
                if more is None:
                    closed = True
                    break
                pending |= more
            cycles += 1
            self._run_cycle(pending)
        return cycles

    def _run_cycle(self, changes: FileChanges) -> None:
        try:
            self._regenerate(changes)
        except (ProtocTsError, OSError) as e:
            logger.error("Regeneration failed; still watching", error=str(e))


class ProtoWatcher:
    """Watch directories for .proto changes until ``stop`` is called."""

    def __init__(
        self,
        paths: Iterable[Path],
        regenerate: Callable[[FileChanges], None],
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        recursive: bool = True,
    ):
        self._paths = [str(p) for p in paths]
        self._debounce_ms = debounce_ms
        self._recursive = recursive
        self._events: "queue.Queue[Optional[FileChanges]]" = queue.Queue()
        self._stop_event = threading.Event()
        self._error: Optional[BaseException] = None
        self._debouncer = ChangeDebouncer(self._events, regenerate, debounce_ms / 1000)

    @property
    def paths(self):
        return list(self._paths)

    def stop(self) -> None:
        """Ask the watcher to finish; in-flight regeneration completes first."""
        self._stop_event.set()

    def run(self) -> int:
        """Block until stopped. Returns the number of regenerations performed."""
        producer = threading.Thread(target=self._produce, name="protoc-ts-watch", daemon=True)
        producer.start()
        try:
            cycles = self._debouncer.run()
        finally:
            self._stop_event.set()
            producer.join()
        if self._error is not None:
            raise self._error
        return cycles

    def _produce(self) -> None:
        try:
            for changes in watch(
                *self._paths,
                watch_filter=ProtoFileFilter(),
                debounce=self._debounce_ms,
                stop_event=self._stop_event,
                recursive=self._recursive,
                raise_interrupt=False,
            ):
                self._events.put(changes)
        except Exception as e:
            self._error = e
        finally:
            self._events.put(None)
