from __future__ import annotations

import re
from typing import Dict

# Proto scalar type -> TypeScript type. 64-bit integers are strings so that
# values above Number.MAX_SAFE_INTEGER survive.
TYPE_MAPPING: Dict[str, str] = {
    "double": "number",
    "float": "number",
    "int32": "number",
    "uint32": "number",
    "sint32": "number",
    "fixed32": "number",
    "sfixed32": "number",
    "int64": "string",
    "uint64": "string",
    "sint64": "string",
    "fixed64": "string",
    "sfixed64": "string",
    "bool": "boolean",
    "string": "string",
    "bytes": "Uint8Array",
}

# TypeScript only allows these as index signature key types.
_INDEX_KEY_TYPES = {"string", "number"}


def array_of(ts_type: str) -> str:
    return f"{ts_type}[]"


def map_type(schema_type_name: str, repeated: bool = False) -> str:
    """Map a proto type name to a TypeScript type.

    Names outside the scalar table (message and enum references, or anything
    unknown) are returned unchanged.
    """
    base = TYPE_MAPPING.get(schema_type_name, schema_type_name)
    return array_of(base) if repeated else base


def map_entry_type(key_type: str, value_type: str) -> str:
    """TypeScript type for a ``map<key_type, value_type>`` field."""
    key = map_type(key_type)
    if key not in _INDEX_KEY_TYPES:
        key = "string"
    return f"{{ [key: {key}]: {map_type(value_type)} }}"


def method_type_name(type_name: str) -> str:
    """Request/response type of an RPC: last dotted segment, mapped."""
    return map_type(type_name.split(".")[-1])


def to_lower_camel(name: str) -> str:
    """SayHello -> sayHello. Only the first character changes."""
    return name[:1].lower() + name[1:]


_UNDERSCORE_LOWER = re.compile(r"_([a-z])")


def camel_case(name: str) -> str:
    """Convert a proto field name to lowerCamelCase: order_id -> orderId."""
    if not name:
        return name
    return name[0] + _UNDERSCORE_LOWER.sub(lambda m: m.group(1).upper(), name[1:])
