import os
import stat
import shutil
import tempfile
from pathlib import Path

import pytest
from watchfiles import Change

from protoc_ts.exceptions import InputNotFoundError, OutputWriteError
from protoc_ts.generator.ts_file_generator import FILE_HEADER
from protoc_ts.main import (
    CliConfig,
    FileStatus,
    main,
    parse_config,
    regenerate,
    run,
    watch_paths,
    watch_recursively,
    write_atomic,
)
from protoc_ts.models import GenerationOptions


ORDER_PROTO = """\
syntax = "proto3";

package shop.orders;

/** An order placed by a customer. */
message Order {
    /// Order id.
    int64 order_id = 1;
    repeated Item items = 2;

    message Item {
        string sku = 1;
        double price = 2;
    }
}

enum OrderStatus {
    ORDER_STATUS_UNKNOWN = 0;
    ORDER_STATUS_SHIPPED = 2;
}

/** Order operations. */
service OrderService {
    rpc GetOrder (Order) returns (Order);
    rpc WatchOrders (Order) returns (stream Order);
}
"""

USER_PROTO = """\
syntax = "proto2";

package shop.users;

message User {
    required string id = 1;
    repeated string tags = 2;
}
"""

BROKEN_PROTO = """\
syntax = "proto3";

message Broken {
    string = 1;
"""


class TestFullPipeline:
    def setup_method(self):
        self.work_dir = tempfile.mkdtemp()
        self.proto_dir = os.path.join(self.work_dir, "protos")
        self.out_dir = os.path.join(self.work_dir, "generated")
        os.makedirs(self.proto_dir)
        self._write("order.proto", ORDER_PROTO)
        self._write("user.proto", USER_PROTO)

    def teardown_method(self):
        shutil.rmtree(self.work_dir)

    def _write(self, name: str, content: str) -> str:
        path = os.path.join(self.proto_dir, name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            f.write(content)
        return path

    def _read_output(self, name: str) -> str:
        with open(os.path.join(self.out_dir, name)) as f:
            return f.read()

    def _config(self, **kwargs) -> CliConfig:
        return CliConfig(proto=self.proto_dir, output=self.out_dir, **kwargs)

    def test_generates_one_file_per_proto(self):
        summary = run(self._config())
        assert summary.generated == 2
        assert summary.exit_code == 0
        assert sorted(os.listdir(self.out_dir)) == ["order.ts", "user.ts"]

    def test_generated_order_file(self):
        run(self._config())
        content = self._read_output("order.ts")
        assert content.startswith(FILE_HEADER)
        assert "/**\n * An order placed by a customer.\n */\nexport interface Order {" in content
        assert "  orderId?: string;" in content
        assert "  items?: Item[];" in content
        assert "export interface Item {\n  sku?: string;\n  price?: number;\n}" in content
        assert "  ORDER_STATUS_SHIPPED = 2," in content
        assert "export interface OrderServiceClient {" in content
        assert "  getOrder(request: Order): Promise<Order>;" in content
        assert "  watchOrders(request: Order): Observable<Order>;" in content
        assert content.index("export interface Order {") < content.index("export interface Item {")

    def test_generated_user_file(self):
        run(self._config())
        content = self._read_output("user.ts")
        assert "export interface User {\n  id: string;\n  tags?: string[];\n}" in content

    def test_one_malformed_file_does_not_stop_the_others(self):
        self._write("broken.proto", BROKEN_PROTO)
        summary = run(self._config())
        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.exit_code == 0
        assert sorted(os.listdir(self.out_dir)) == ["order.ts", "user.ts"]
        failed = [r for r in summary.results if r.status is FileStatus.FAILED]
        assert failed[0].source.name == "broken.proto"
        assert "Line" in failed[0].error

    def test_results_keep_input_order_with_jobs(self):
        self._write("broken.proto", BROKEN_PROTO)
        summary = run(self._config(jobs=4))
        assert [r.source.name for r in summary.results] == ["broken.proto", "order.proto", "user.proto"]
        assert [r.status for r in summary.results] == [FileStatus.FAILED, FileStatus.GENERATED, FileStatus.GENERATED]

    def test_all_files_failed(self):
        shutil.rmtree(self.proto_dir)
        os.makedirs(self.proto_dir)
        self._write("broken.proto", BROKEN_PROTO)
        summary = run(self._config())
        assert summary.exit_code == 1
        assert os.listdir(self.out_dir) == []

    def test_no_inputs(self):
        with pytest.raises(InputNotFoundError):
            run(CliConfig(proto=os.path.join(self.work_dir, "nothing"), output=self.out_dir))
        assert not os.path.exists(self.out_dir)

    def test_package_filter(self):
        summary = run(self._config(generation=GenerationOptions(package_filter="shop.users")))
        assert summary.generated == 1
        assert summary.skipped == 1
        assert summary.exit_code == 0
        assert os.listdir(self.out_dir) == ["user.ts"]

    def test_unresolved_filter_everywhere_still_succeeds(self):
        summary = run(self._config(generation=GenerationOptions(package_filter="nowhere")))
        assert summary.skipped == 2
        assert summary.exit_code == 0
        assert os.listdir(self.out_dir) == []

    def test_output_collision(self):
        self._write("nested/user.proto", "message Other {}\n")
        summary = run(self._config())
        statuses = {r.source.as_posix().split("protos/")[-1]: r.status for r in summary.results}
        assert statuses["nested/user.proto"] is FileStatus.GENERATED
        assert statuses["user.proto"] is FileStatus.FAILED
        assert "export interface Other" in self._read_output("user.ts")

    def test_output_dir_is_a_file(self):
        with open(os.path.join(self.work_dir, "taken"), "w") as f:
            f.write("")
        with pytest.raises(OutputWriteError):
            run(CliConfig(proto=self.proto_dir, output=os.path.join(self.work_dir, "taken")))

    def test_regenerate_removes_output_of_deleted_file(self):
        run(self._config())
        user_path = os.path.join(self.proto_dir, "user.proto")
        os.unlink(user_path)
        regenerate(self._config(), {(Change.deleted, user_path)})
        assert os.listdir(self.out_dir) == ["order.ts"]

    def test_regenerate_picks_up_new_file(self):
        run(self._config())
        added = self._write("extra.proto", "message Extra {}\n")
        regenerate(self._config(), {(Change.added, added)})
        assert "extra.ts" in os.listdir(self.out_dir)

    def test_skipped_file_removes_previous_output(self):
        run(self._config())
        assert sorted(os.listdir(self.out_dir)) == ["order.ts", "user.ts"]
        summary = run(self._config(generation=GenerationOptions(package_filter="shop.users")))
        assert summary.skipped == 1
        assert os.listdir(self.out_dir) == ["user.ts"]

    def test_skipped_file_keeps_hand_written_output(self):
        os.makedirs(self.out_dir)
        with open(os.path.join(self.out_dir, "order.ts"), "w") as f:
            f.write("export const handWritten = true;\n")
        run(self._config(generation=GenerationOptions(package_filter="shop.users")))
        assert sorted(os.listdir(self.out_dir)) == ["order.ts", "user.ts"]
        assert "handWritten" in self._read_output("order.ts")

    def test_generated_files_follow_umask(self):
        run(self._config())
        reference = os.path.join(self.work_dir, "reference.ts")
        with open(reference, "w") as f:
            f.write("")
        expected = stat.S_IMODE(os.stat(reference).st_mode)
        for name in ("order.ts", "user.ts"):
            assert stat.S_IMODE(os.stat(os.path.join(self.out_dir, name)).st_mode) == expected


class TestWriteAtomic:
    def setup_method(self):
        self.work_dir = tempfile.mkdtemp()

    def teardown_method(self):
        shutil.rmtree(self.work_dir)

    def test_replaces_content_without_leftovers(self):
        path = os.path.join(self.work_dir, "a.ts")
        write_atomic(Path(path), "first")
        write_atomic(Path(path), "second")
        with open(path) as f:
            assert f.read() == "second"
        assert os.listdir(self.work_dir) == ["a.ts"]

    def test_missing_directory(self):
        with pytest.raises(OutputWriteError):
            write_atomic(Path(self.work_dir) / "missing" / "a.ts", "x")

    def test_new_file_mode_matches_plain_write(self):
        plain = os.path.join(self.work_dir, "plain.ts")
        with open(plain, "w") as f:
            f.write("x")
        path = Path(self.work_dir) / "a.ts"
        write_atomic(path, "x")
        assert stat.S_IMODE(path.stat().st_mode) == stat.S_IMODE(os.stat(plain).st_mode)

    def test_existing_file_keeps_its_mode(self):
        path = Path(self.work_dir) / "a.ts"
        write_atomic(path, "first")
        os.chmod(path, 0o640)
        write_atomic(path, "second")
        assert stat.S_IMODE(path.stat().st_mode) == 0o640
        assert path.read_text() == "second"


class TestWatchPaths:
    def setup_method(self):
        self.work_dir = Path(tempfile.mkdtemp())
        self.proto_dir = self.work_dir / "protos"
        (self.proto_dir / "a").mkdir(parents=True)
        self.existing = self.proto_dir / "a" / "a.proto"
        self.existing.write_text("message A {}\n")

    def teardown_method(self):
        shutil.rmtree(self.work_dir)

    def test_watch_paths_glob_watches_static_prefix(self):
        config = CliConfig(proto=str(self.proto_dir / "**" / "*.proto"))
        paths = watch_paths(config, [self.existing])
        assert paths == [self.proto_dir]
        new_file = self.proto_dir / "b" / "b.proto"
        assert any(p in new_file.parents for p in paths)

    def test_watch_paths_single_level_glob(self):
        config = CliConfig(proto=str(self.proto_dir / "a" / "*.proto"))
        assert watch_paths(config, [self.existing]) == [self.proto_dir / "a"]

    def test_watch_paths_directory(self):
        config = CliConfig(proto=str(self.proto_dir))
        assert watch_paths(config, [self.existing]) == [self.proto_dir]

    def test_watch_paths_single_file(self):
        config = CliConfig(proto=str(self.existing))
        assert watch_paths(config, [self.existing]) == [self.proto_dir / "a"]

    def test_double_star_is_watched_recursively(self):
        assert watch_recursively(CliConfig(proto="protos/**/*.proto", recursive=False))
        assert not watch_recursively(CliConfig(proto="protos/*.proto", recursive=False))


class TestCommandLine:
    def setup_method(self):
        self.work_dir = tempfile.mkdtemp()
        self.proto_dir = os.path.join(self.work_dir, "protos")
        self.out_dir = os.path.join(self.work_dir, "out")
        os.makedirs(self.proto_dir)

    def teardown_method(self):
        shutil.rmtree(self.work_dir)

    def _write(self, name: str, content: str) -> None:
        with open(os.path.join(self.proto_dir, name), "w") as f:
            f.write(content)

    def test_defaults(self):
        config = parse_config([])
        assert config.proto == "./protos/**/*.proto"
        assert config.output == "./src/generated"
        assert config.recursive is True
        assert config.watch is False
        assert config.loader == "builtin"
        assert config.debounce_ms == 300
        assert config.generation == GenerationOptions()

    def test_options(self):
        config = parse_config([
            "-p", "x.proto", "-o", "out", "-c", "--no-comments", "--no-client-interfaces",
            "-f", "a.b", "--no-recursive", "--keep-case", "--alternate-comments",
            "-I", "inc1", "-I", "inc2", "-j", "3", "--debounce", "50", "-v",
        ])
        assert config.generation == GenerationOptions(
            emit_comments=False,
            emit_classes=True,
            emit_client_interfaces=False,
            package_filter="a.b",
        )
        assert config.recursive is False
        assert config.loader_options.keep_case is True
        assert config.loader_options.alternate_comment_mode is True
        assert config.loader_options.include_paths == ("inc1", "inc2")
        assert config.jobs == 3
        assert config.debounce_ms == 50
        assert config.verbosity == "verbose"

    def test_verbose_wins_over_silent(self):
        assert parse_config(["-v", "-s"]).verbosity == "verbose"
        assert parse_config(["-s"]).verbosity == "silent"
        assert parse_config([]).verbosity == "normal"

    def test_invalid_jobs(self):
        with pytest.raises(SystemExit):
            parse_config(["-j", "0"])

    def test_exit_code_two_succeeded_one_failed(self):
        self._write("a.proto", "message A { string id = 1; }\n")
        self._write("b.proto", "enum B { B_NONE = 0; }\n")
        self._write("c.proto", BROKEN_PROTO)
        assert main(["-p", self.proto_dir, "-o", self.out_dir, "-s"]) == 0
        assert sorted(os.listdir(self.out_dir)) == ["a.ts", "b.ts"]

    def test_exit_code_all_failed(self):
        self._write("c.proto", BROKEN_PROTO)
        assert main(["-p", self.proto_dir, "-o", self.out_dir, "-s"]) == 1

    def test_exit_code_no_inputs(self):
        assert main(["-p", os.path.join(self.proto_dir, "*.proto"), "-o", self.out_dir, "-s"]) == 1

    def test_classes_flag(self):
        self._write("a.proto", "message A { string id = 1; }\n")
        assert main(["-p", self.proto_dir, "-o", self.out_dir, "-s", "-c"]) == 0
        with open(os.path.join(self.out_dir, "a.ts")) as f:
            assert "export class A {" in f.read()
