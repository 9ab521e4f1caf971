"""AST node definitions for protobuf (.proto) files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class ProtoField:
    """A field declaration: [label] Type name = number [options];

    ``key_type`` is set for ``map<key_type, type_name> name = number;``.
    """

    type_name: str
    field_name: str
    field_number: int
    label: Optional[str] = None
    key_type: Optional[str] = None
    comment: Optional[str] = None

    @property
    def is_repeated(self) -> bool:
        return self.label == "repeated"

    @property
    def is_required(self) -> bool:
        return self.label == "required"


@dataclass
class ProtoEnumValue:
    name: str
    number: int
    comment: Optional[str] = None


@dataclass
class ProtoEnum:
    name: str
    values: List[ProtoEnumValue] = field(default_factory=list)
    comment: Optional[str] = None


@dataclass
class ProtoMessage:
    """A message definition, possibly containing nested messages and enums."""

    name: str
    fields: List[ProtoField] = field(default_factory=list)
    nested: List[Union[ProtoMessage, ProtoEnum]] = field(default_factory=list)
    comment: Optional[str] = None


@dataclass
class ProtoRpc:
    name: str
    input_type: str
    output_type: str
    client_streaming: bool = False
    server_streaming: bool = False
    comment: Optional[str] = None


@dataclass
class ProtoService:
    name: str
    rpcs: List[ProtoRpc] = field(default_factory=list)
    comment: Optional[str] = None


ProtoDefinition = Union[ProtoMessage, ProtoEnum, ProtoService]


@dataclass
class ProtoFile:
    """Top-level parsed representation of a .proto file.

    ``definitions`` keeps messages, enums and services in source order.
    """

    syntax: Optional[str] = None
    package: Optional[str] = None
    imports: List[str] = field(default_factory=list)
    definitions: List[ProtoDefinition] = field(default_factory=list)
