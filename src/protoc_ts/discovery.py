from __future__ import annotations

import glob
from pathlib import Path
from typing import List

PROTO_SUFFIX = ".proto"
IGNORED_DIRS = {"node_modules"}


def _is_ignored(path: Path) -> bool:
    return any(part in IGNORED_DIRS for part in path.parts)


def discover_proto_files(pattern: str, recursive: bool = True) -> List[Path]:
    """Find .proto files for a file path, a directory or a glob pattern.

    Directories are searched for ``**/*.proto`` (or ``*.proto`` when
    ``recursive`` is False). The result is de-duplicated and sorted so that
    repeated runs see the same order.
    """
    target = Path(pattern)
    if target.is_file():
        candidates = [target]
    elif target.is_dir():
        candidates = list(target.rglob(f"*{PROTO_SUFFIX}") if recursive else target.glob(f"*{PROTO_SUFFIX}"))
    else:
        candidates = [Path(p) for p in glob.glob(pattern, recursive=True)]

    seen = set()
    results: List[Path] = []
    for p in candidates:
        if not p.is_file() or p.suffix != PROTO_SUFFIX or _is_ignored(p):
            continue
        key = p.resolve()
        if key in seen:
            continue
        seen.add(key)
        results.append(p)
    return sorted(results, key=lambda p: p.as_posix())


def output_path_for(proto_file: Path, output_dir: Path) -> Path:
    """<output_dir>/<stem>.ts"""
    return output_dir / f"{proto_file.stem}.ts"
