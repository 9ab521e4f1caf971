"""Walk a schema tree and assemble one TypeScript document."""

from __future__ import annotations

from typing import Callable, Dict, List

from protoc_ts.generator.ts_declaration_generator import emit_enum, emit_message
from protoc_ts.generator.ts_service_generator import emit_service
from protoc_ts.logging_config import get_logger
from protoc_ts.models import (
    GenerationOptions,
    Message,
    Namespace,
    NodeKind,
    SchemaNode,
    resolve_namespace,
)

logger = get_logger(__name__)

FILE_HEADER = (
    "// This file is auto-generated by protoc-ts\n"
    "\n"
    "import { Observable } from 'rxjs';\n"
    "\n"
)


def _visit_namespace(node: Namespace, opts: GenerationOptions) -> List[str]:
    fragments: List[str] = []
    for child in node.children:
        fragments.extend(visit(child, opts))
    return fragments


def _visit_message(node: Message, opts: GenerationOptions) -> List[str]:
    fragments = [emit_message(node, opts)]
    for child in node.nested:
        fragments.extend(visit(child, opts))
    return fragments


_HANDLERS: Dict[NodeKind, Callable[..., List[str]]] = {
    NodeKind.NAMESPACE: _visit_namespace,
    NodeKind.MESSAGE: _visit_message,
    NodeKind.ENUM: lambda node, opts: [emit_enum(node, opts)],
    NodeKind.SERVICE: lambda node, opts: [emit_service(node, opts)],
}


def visit(node: SchemaNode, opts: GenerationOptions) -> List[str]:
    """Return the declarations for ``node`` and its subtree in pre-order."""
    try:
        handler = _HANDLERS[node.kind]
    except (KeyError, AttributeError):
        raise TypeError(f"Not a schema node: {node!r}") from None
    return handler(node, opts)


def generate(root: Namespace, opts: GenerationOptions) -> str:
    """Generate the TypeScript document for a schema tree.

    When ``opts.package_filter`` does not resolve to a namespace the result is
    an empty string.
    """
    start = root
    if opts.package_filter:
        resolved = resolve_namespace(root, opts.package_filter)
        if resolved is None:
            logger.info("Package filter did not match", package_filter=opts.package_filter)
            return ""
        start = resolved

    fragments = visit(start, opts)
    return FILE_HEADER + "".join(fragment + "\n" for fragment in fragments)
