from __future__ import annotations

import argparse
import contextlib
import enum
import glob
import os
import signal
import stat
import sys
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from watchfiles import Change

from protoc_ts.discovery import discover_proto_files, output_path_for
from protoc_ts.exceptions import InputNotFoundError, OutputWriteError, ProtocTsError, SchemaLoadError
from protoc_ts.generator.ts_file_generator import FILE_HEADER, generate
from protoc_ts.loaders import DEFAULT_LOADER, LOADERS, SchemaLoader, get_loader
from protoc_ts.logging_config import NORMAL, SILENT, VERBOSE, configure_logging, get_logger
from protoc_ts.models import GenerationOptions, LoaderOptions
from protoc_ts.parser.proto_transform import count_declarations
from protoc_ts.watcher import DEFAULT_DEBOUNCE_MS, FileChanges, ProtoWatcher

VERSION = "0.1.0"

DEFAULT_PROTO_PATTERN = "./protos/**/*.proto"
DEFAULT_OUTPUT_DIR = "./src/generated"

logger = get_logger(__name__)


@dataclass(frozen=True)
class CliConfig:
    """Validated command-line configuration."""

    proto: str = DEFAULT_PROTO_PATTERN
    output: str = DEFAULT_OUTPUT_DIR
    watch: bool = False
    recursive: bool = True
    jobs: int = 1
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    loader: str = DEFAULT_LOADER
    verbosity: str = NORMAL
    loader_options: LoaderOptions = field(default_factory=LoaderOptions)
    generation: GenerationOptions = field(default_factory=GenerationOptions)


class FileStatus(enum.Enum):
    GENERATED = "generated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class FileResult:
    source: Path
    output: Path
    status: FileStatus
    error: Optional[str] = None


@dataclass
class RunSummary:
    results: List[FileResult] = field(default_factory=list)

    def _count(self, status: FileStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def generated(self) -> int:
        return self._count(FileStatus.GENERATED)

    @property
    def skipped(self) -> int:
        return self._count(FileStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FileStatus.FAILED)

    @property
    def succeeded(self) -> int:
        return self.generated + self.skipped

    @property
    def exit_code(self) -> int:
        """0 when at least one file succeeded, 1 when none did."""
        return 0 if self.succeeded > 0 else 1


# -- file output --


def ensure_output_dir(output_dir: Path) -> None:
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputWriteError(output_dir, str(e)) from e
    if not os.access(output_dir, os.W_OK):
        raise OutputWriteError(output_dir, "directory is not writable")


@lru_cache(maxsize=None)
def default_file_mode() -> int:
    """Mode a plain ``open(path, "w")`` would create under the process umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _target_mode(path: Path) -> int:
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return default_file_mode()


def write_atomic(path: Path, content: str) -> None:
    """Write via a temp file in the same directory so readers never see partial output.

    A new file gets the umask-derived mode; an existing file keeps its mode.
    """
    try:
        mode = _target_mode(path)
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            # mkstemp always creates 0600
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise
    except OSError as e:
        raise OutputWriteError(path, str(e)) from e


def remove_stale_output(path: Path) -> bool:
    """Delete ``path`` if it is a file this tool generated. Returns True when removed."""
    marker = FILE_HEADER.splitlines()[0]
    try:
        with open(path, encoding="utf-8") as f:
            first_line = f.readline().rstrip("\n")
    except FileNotFoundError:
        return False
    except (OSError, UnicodeDecodeError) as e:
        raise OutputWriteError(path, str(e)) from e
    if first_line != marker:
        return False
    try:
        path.unlink()
    except OSError as e:
        raise OutputWriteError(path, str(e)) from e
    logger.info("Removed stale generated file", output=str(path))
    return True


# -- generation pipeline --


def generate_file(
    proto_file: Path,
    output_file: Path,
    config: CliConfig,
    loader: SchemaLoader,
) -> FileResult:
    """Load one schema file and write its TypeScript output.

    Load failures are returned as FAILED results; write failures raise
    OutputWriteError.
    """
    logger.debug("Loading proto file", source=str(proto_file))
    try:
        root = loader(proto_file, config.loader_options)
    except SchemaLoadError as e:
        return FileResult(proto_file, output_file, FileStatus.FAILED, e.reason)

    logger.debug("Generating types", source=str(proto_file), declarations=count_declarations(root))
    content = generate(root, config.generation)
    if not content:
        logger.warning(
            "Package filter matched nothing; no output written",
            source=str(proto_file),
            package_filter=config.generation.package_filter,
        )
        remove_stale_output(output_file)
        return FileResult(proto_file, output_file, FileStatus.SKIPPED)

    write_atomic(output_file, content)
    logger.info("Generated types", source=str(proto_file), output=str(output_file))
    return FileResult(proto_file, output_file, FileStatus.GENERATED)


def _plan_outputs(files: Sequence[Path], output_dir: Path) -> Dict[Path, Optional[Path]]:
    """Map each input to its output; None marks an input whose output is already taken."""
    claimed: Dict[Path, Path] = {}
    plan: Dict[Path, Optional[Path]] = {}
    for f in files:
        out = output_path_for(f, output_dir)
        if out in claimed:
            plan[f] = None
        else:
            claimed[out] = f
            plan[f] = out
    return plan


def report_summary(summary: RunSummary) -> None:
    for r in summary.results:
        if r.status is FileStatus.FAILED:
            logger.error("Error processing file", source=str(r.source), error=r.error)
    log = logger.info if summary.exit_code == 0 else logger.error
    log(
        "Generation finished",
        succeeded=summary.succeeded,
        failed=summary.failed,
        skipped=summary.skipped,
    )


def run(config: CliConfig) -> RunSummary:
    """Discover inputs, generate every file and return the run summary.

    Raises InputNotFoundError when nothing matches and OutputWriteError when
    output cannot be written; per-file parse failures are only recorded.
    """
    files = discover_proto_files(config.proto, recursive=config.recursive)
    if not files:
        raise InputNotFoundError(config.proto)
    logger.info("Found proto files", count=len(files), pattern=config.proto)

    output_dir = Path(config.output)
    ensure_output_dir(output_dir)

    # read the umask before worker threads start writing
    default_file_mode()
    loader = get_loader(config.loader)
    plan = _plan_outputs(files, output_dir)
    results: Dict[Path, FileResult] = {}

    with ThreadPoolExecutor(max_workers=max(1, config.jobs)) as pool:
        futures = {}
        for proto_file, output_file in plan.items():
            if output_file is None:
                taken = output_path_for(proto_file, output_dir)
                results[proto_file] = FileResult(
                    proto_file, taken, FileStatus.FAILED, f"output {taken} already generated from another file"
                )
                continue
            futures[proto_file] = pool.submit(generate_file, proto_file, output_file, config, loader)
        for proto_file, future in futures.items():
            results[proto_file] = future.result()

    summary = RunSummary([results[f] for f in files])
    report_summary(summary)
    return summary


# -- watch mode --


def _static_prefix(pattern: str) -> Path:
    """Leading path segments of a glob pattern that contain no wildcards."""
    parts: List[str] = []
    for part in Path(pattern).parts:
        if glob.has_magic(part):
            break
        parts.append(part)
    return Path(*parts) if parts else Path(".")


def watch_paths(config: CliConfig, files: Sequence[Path]) -> List[Path]:
    """Directories to watch so that edits, additions and deletions are all seen.

    A directory is watched as is; a glob pattern is watched from its static
    prefix so files in new subdirectories are picked up; a single file is
    watched through its parent.
    """
    target = Path(config.proto)
    if target.is_dir():
        return [target]
    if glob.has_magic(config.proto):
        base = _static_prefix(config.proto)
        if base.is_dir():
            return [base]
    return sorted({f.parent for f in files}, key=lambda p: p.as_posix())


def watch_recursively(config: CliConfig) -> bool:
    return config.recursive or "**" in config.proto


def regenerate(config: CliConfig, changes: FileChanges) -> None:
    """Handle one coalesced batch of changes with a fresh run."""
    output_dir = Path(config.output)
    for change, path in sorted(changes, key=lambda c: c[1]):
        logger.info("Proto file changed", change=change.name, path=path)
        if change == Change.deleted:
            remove_stale_output(output_path_for(Path(path), output_dir))
    try:
        run(config)
    except InputNotFoundError as e:
        logger.warning("No proto files found", pattern=e.pattern)


def watch_and_regenerate(config: CliConfig, files: Sequence[Path]) -> int:
    watcher = ProtoWatcher(
        watch_paths(config, files),
        lambda changes: regenerate(config, changes),
        debounce_ms=config.debounce_ms,
        recursive=watch_recursively(config),
    )

    def _stop(signum, frame):
        watcher.stop()

    previous = {sig: signal.signal(sig, _stop) for sig in (signal.SIGINT, signal.SIGTERM)}
    logger.info("Watching for changes...", paths=[str(p) for p in watcher.paths])
    logger.info("Press Ctrl+C to stop watching")
    try:
        watcher.run()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    logger.info("Stopped watching proto files")
    return 0


# -- command line --


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="protoc-ts",
        description="Generate TypeScript definitions from protobuf files",
    )
    parser.add_argument(
        "-p", "--proto",
        default=DEFAULT_PROTO_PATTERN,
        help="Path to proto file, directory, or glob pattern (default: %(default)s)",
    )
    parser.add_argument(
        "-o", "--output",
        default=DEFAULT_OUTPUT_DIR,
        help="Output directory for generated files (default: %(default)s)",
    )
    parser.add_argument("-w", "--watch", action="store_true", help="Watch mode for file changes")
    parser.add_argument("-c", "--classes", action="store_true", help="Generate classes instead of interfaces")
    parser.add_argument(
        "--no-comments", dest="comments", action="store_false",
        help="Disable comments in generated files",
    )
    parser.add_argument(
        "--no-client-interfaces", dest="client_interfaces", action="store_false",
        help="Do not generate client interfaces",
    )
    parser.add_argument("-f", "--package-filter", help="Only generate types for this package")
    parser.add_argument(
        "-r", "--recursive",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Recursively search directories for .proto files (default: on)",
    )
    parser.add_argument("--keep-case", action="store_true", help="Keep field names as written in the proto file")
    parser.add_argument(
        "--alternate-comments", action="store_true",
        help="Treat every comment as documentation, not only /** */ and ///",
    )
    parser.add_argument(
        "-I", "--include", action="append", default=[], metavar="DIR",
        help="Additional directory to search for imports (repeatable)",
    )
    parser.add_argument(
        "--loader", choices=sorted(LOADERS), default=DEFAULT_LOADER,
        help="Schema loader: builtin parser or protoc descriptor sets (default: %(default)s)",
    )
    parser.add_argument("-j", "--jobs", type=int, default=1, help="Files generated in parallel (default: 1)")
    parser.add_argument(
        "--debounce", type=int, default=DEFAULT_DEBOUNCE_MS, metavar="MS",
        help="Watch mode quiet period before regenerating (default: %(default)s)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging (wins over --silent)")
    parser.add_argument("-s", "--silent", action="store_true", help="Disable all logging except errors")
    parser.add_argument("--version", action="version", version=f"protoc-ts {VERSION}")
    return parser


def parse_config(argv: Optional[Sequence[str]] = None) -> CliConfig:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.jobs < 1:
        parser.error("--jobs must be at least 1")
    if args.debounce < 0:
        parser.error("--debounce must not be negative")

    verbosity = NORMAL
    if args.verbose:
        verbosity = VERBOSE
    elif args.silent:
        verbosity = SILENT

    return CliConfig(
        proto=args.proto,
        output=args.output,
        watch=args.watch,
        recursive=args.recursive,
        jobs=args.jobs,
        debounce_ms=args.debounce,
        loader=args.loader,
        verbosity=verbosity,
        loader_options=LoaderOptions(
            keep_case=args.keep_case,
            alternate_comment_mode=args.alternate_comments,
            include_paths=tuple(args.include),
        ),
        generation=GenerationOptions(
            emit_comments=args.comments,
            emit_classes=args.classes,
            emit_client_interfaces=args.client_interfaces,
            package_filter=args.package_filter,
        ),
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = parse_config(argv)
    configure_logging(config.verbosity)

    try:
        summary = run(config)
    except ProtocTsError as e:
        logger.error("Run aborted", error=str(e))
        return 1

    if not config.watch:
        return summary.exit_code

    files = [r.source for r in summary.results]
    return watch_and_regenerate(config, files)


if __name__ == "__main__":
    sys.exit(main())
