from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader


@lru_cache(maxsize=None)
def get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def doc_comment(text: Optional[str], indent: str = "") -> Optional[str]:
    """Render comment text as a JSDoc block, or None when there is no text.

    Closing sequences inside the text are escaped so the block stays intact.
    """
    if not text or not text.strip():
        return None
    lines = text.strip().replace("*/", "*\\/").split("\n")
    body = "\n".join(f"{indent} * {line.rstrip()}".rstrip() for line in lines)
    return f"{indent}/**\n{body}\n{indent} */"
