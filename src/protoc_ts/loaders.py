from __future__ import annotations

from typing import Callable, Dict

from protoc_ts.models import Namespace
from protoc_ts.parser.descriptor_loader import load_schema_via_descriptor
from protoc_ts.parser.proto_parser import load_schema

# A loader takes (path, LoaderOptions) and returns the schema tree root.
SchemaLoader = Callable[..., Namespace]

LOADERS: Dict[str, SchemaLoader] = {
    "builtin": load_schema,
    "protoc": load_schema_via_descriptor,
}

DEFAULT_LOADER = "builtin"


def get_loader(name: str) -> SchemaLoader:
    try:
        return LOADERS[name]
    except KeyError:
        raise ValueError(f"Unknown loader {name!r}. Choose from: {', '.join(sorted(LOADERS))}") from None
