import queue
import threading
import time
from pathlib import Path

from watchfiles import Change

from protoc_ts.exceptions import SchemaLoadError
from protoc_ts.watcher import ChangeDebouncer, ProtoFileFilter, ProtoWatcher


def _batch(*paths, change=Change.modified):
    return {(change, p) for p in paths}


class TestChangeDebouncer:
    def test_burst_is_coalesced_into_one_cycle(self):
        events = queue.Queue()
        for p in ("a.proto", "b.proto", "a.proto"):
            events.put(_batch(p))
        events.put(None)
        seen = []
        cycles = ChangeDebouncer(events, seen.append, window=0.05).run()
        assert cycles == 1
        assert seen == [_batch("a.proto", "b.proto")]

    def test_quiet_period_separates_cycles(self):
        events = queue.Queue()
        events.put(_batch("a.proto"))
        seen = []

        def regenerate(changes):
            seen.append(changes)
            if len(seen) == 1:
                events.put(_batch("b.proto"))
                events.put(None)

        cycles = ChangeDebouncer(events, regenerate, window=0.05).run()
        assert cycles == 2
        assert seen == [_batch("a.proto"), _batch("b.proto")]

    def test_closed_queue_without_changes(self):
        events = queue.Queue()
        events.put(None)
        seen = []
        assert ChangeDebouncer(events, seen.append, window=0.05).run() == 0
        assert seen == []

    def test_failed_cycle_keeps_watching(self):
        events = queue.Queue()
        events.put(_batch("bad.proto"))
        calls = []

        def regenerate(changes):
            calls.append(changes)
            if len(calls) == 1:
                events.put(_batch("good.proto"))
                events.put(None)
                raise SchemaLoadError("bad.proto", "boom")

        assert ChangeDebouncer(events, regenerate, window=0.05).run() == 2
        assert calls[1] == _batch("good.proto")

    def test_one_cycle_in_flight(self):
        events = queue.Queue()
        active = []
        overlap = []
        lock = threading.Lock()

        def regenerate(changes):
            with lock:
                active.append(1)
                overlap.append(len(active))
            if len(overlap) == 1:
                events.put(_batch("b.proto"))
                events.put(_batch("c.proto"))
                events.put(None)
            with lock:
                active.pop()

        events.put(_batch("a.proto"))
        ChangeDebouncer(events, regenerate, window=0.05).run()
        assert max(overlap) == 1


class TestProtoFileFilter:
    def test_only_proto_files(self):
        f = ProtoFileFilter()
        assert f(Change.modified, "/work/protos/a.proto")
        assert not f(Change.modified, "/work/protos/a.txt")
        assert not f(Change.added, "/work/node_modules/pkg/a.proto")


class TestProtoWatcher:
    def test_stop_before_any_change(self, tmp_path):
        watcher = ProtoWatcher([tmp_path], lambda changes: None, debounce_ms=50)
        assert watcher.paths == [str(tmp_path)]
        timer = threading.Timer(0.2, watcher.stop)
        timer.start()
        try:
            assert watcher.run() == 0
        finally:
            timer.cancel()

    def test_regenerates_after_proto_file_is_written(self, tmp_path):
        seen = []
        regenerated = threading.Event()

        def regenerate(changes):
            seen.append(changes)
            regenerated.set()

        watcher = ProtoWatcher([tmp_path], regenerate, debounce_ms=50)
        runner = threading.Thread(target=watcher.run)
        runner.start()
        try:
            # give the notifier time to register the directory
            time.sleep(0.5)
            (tmp_path / "nested").mkdir()
            (tmp_path / "nested" / "new.proto").write_text("message New {}\n")
            (tmp_path / "notes.txt").write_text("not a schema")
            assert regenerated.wait(timeout=10)
        finally:
            watcher.stop()
            runner.join(timeout=10)
        assert not runner.is_alive()
        names = {Path(path).name for batch in seen for _, path in batch}
        assert "new.proto" in names
        assert "notes.txt" not in names
