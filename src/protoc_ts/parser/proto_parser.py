from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Set

from protoc_ts.exceptions import SchemaLoadError
from protoc_ts.logging_config import get_logger
from protoc_ts.models import LoaderOptions, Namespace

from .proto_ast import ProtoFile
from .proto_ast_parser import ProtoParser
from .proto_tokenizer import tokenize_proto
from .proto_transform import SchemaTreeBuilder

logger = get_logger(__name__)


def parse_proto_text(
    text: str,
    source: str = "<input>",
    alternate_comment_mode: bool = False,
) -> ProtoFile:
    """Tokenize and parse proto source text into a ProtoFile AST."""
    tokens = tokenize_proto(text, alternate_comment_mode=alternate_comment_mode)
    return ProtoParser(tokens, source=source).parse()


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SchemaLoadError(path, f"cannot read file: {e}") from e


def _resolve_import(import_path: str, importer: Path, include_paths: List[Path]) -> Optional[Path]:
    for base in [importer.parent, *include_paths]:
        candidate = base / import_path
        if candidate.is_file():
            return candidate
    return None


def load_schema(path, options: Optional[LoaderOptions] = None) -> Namespace:
    """Load a .proto file and its imports into one schema tree.

    The requested file is added first, then each import depth-first in
    declaration order. Every file is loaded once. Imports that cannot be found
    (for example well-known google/protobuf types) are skipped.
    """
    options = options or LoaderOptions()
    main_path = Path(path)
    include_paths = [Path(p) for p in options.include_paths]
    builder = SchemaTreeBuilder(options)
    seen: Set[Path] = set()

    def load(file_path: Path) -> None:
        key = file_path.resolve()
        if key in seen:
            return
        seen.add(key)

        ast = parse_proto_text(
            _read(file_path),
            source=str(file_path),
            alternate_comment_mode=options.alternate_comment_mode,
        )
        builder.add_file(ast, str(file_path))

        for import_path in ast.imports:
            resolved = _resolve_import(import_path, file_path, include_paths)
            if resolved is None:
                logger.debug("Import not found, skipping", importer=str(file_path), import_path=import_path)
                continue
            load(resolved)

    if not main_path.is_file():
        raise SchemaLoadError(main_path, "file not found")
    load(main_path)
    return builder.build()
