"""Schema tree model shared by the loaders and the TypeScript generators."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Optional, Tuple, Union


class NodeKind(enum.Enum):
    NAMESPACE = enum.auto()
    MESSAGE = enum.auto()
    ENUM = enum.auto()
    SERVICE = enum.auto()


@dataclass(frozen=True)
class Field:
    """A message member. ``key_type`` is set for ``map<key_type, type_name>``."""

    name: str
    type_name: str
    repeated: bool = False
    required: bool = False
    comment: Optional[str] = None
    key_type: Optional[str] = None

    @property
    def is_map(self) -> bool:
        return self.key_type is not None


@dataclass(frozen=True)
class Method:
    name: str
    request_type: str
    response_type: str
    request_stream: bool = False
    response_stream: bool = False
    comment: Optional[str] = None


@dataclass(frozen=True)
class EnumValue:
    name: str
    number: int
    comment: Optional[str] = None


@dataclass(frozen=True)
class Message:
    """A message declaration.

    ``nested`` holds the messages and enums declared inside the message body,
    in source order.
    """

    kind: ClassVar[NodeKind] = NodeKind.MESSAGE

    name: str
    fields: Tuple[Field, ...] = ()
    comment: Optional[str] = None
    nested: Tuple[SchemaNode, ...] = ()


@dataclass(frozen=True)
class Enum:
    kind: ClassVar[NodeKind] = NodeKind.ENUM

    name: str
    values: Tuple[EnumValue, ...] = ()
    comment: Optional[str] = None

    @property
    def values_map(self) -> Dict[str, int]:
        return {v.name: v.number for v in self.values}


@dataclass(frozen=True)
class Service:
    kind: ClassVar[NodeKind] = NodeKind.SERVICE

    name: str
    methods: Tuple[Method, ...] = ()
    comment: Optional[str] = None


@dataclass(frozen=True)
class Namespace:
    """A package segment. The root of a schema tree is a namespace named ``""``."""

    kind: ClassVar[NodeKind] = NodeKind.NAMESPACE

    name: str
    children: Tuple[SchemaNode, ...] = ()

    def child_namespace(self, name: str) -> Optional[Namespace]:
        for child in self.children:
            if child.kind is NodeKind.NAMESPACE and child.name == name:
                return child
        return None


SchemaNode = Union[Namespace, Message, Enum, Service]


def resolve_namespace(root: Namespace, dotted_path: str) -> Optional[Namespace]:
    """Descend one namespace per dotted segment.

    Returns None when any segment is missing, including the case where a
    prefix of the path resolves but the full path does not.
    """
    current: Optional[Namespace] = root
    for segment in dotted_path.split("."):
        if current is None or not segment:
            return None
        current = current.child_namespace(segment)
    return current


@dataclass(frozen=True)
class GenerationOptions:
    """Options for TypeScript generation.

    emit_comments: copy doc comments into JSDoc blocks.
    emit_classes: emit ``export class`` instead of ``export interface`` for messages.
    emit_client_interfaces: emit the ``<Service>Client`` interface.
    package_filter: dotted package path restricting output to one subtree.
    """

    emit_comments: bool = True
    emit_classes: bool = False
    emit_client_interfaces: bool = True
    package_filter: Optional[str] = None

    def __post_init__(self):
        if self.package_filter is not None and not self.package_filter.strip():
            object.__setattr__(self, "package_filter", None)


@dataclass(frozen=True)
class LoaderOptions:
    """Options for turning .proto files into a schema tree.

    keep_case: keep field names as written instead of converting them to
        lowerCamelCase.
    alternate_comment_mode: treat plain ``//`` and ``/* */`` comments as doc
        comments, not only ``///`` and ``/** */``.
    include_paths: extra directories searched when resolving imports.
    """

    keep_case: bool = False
    alternate_comment_mode: bool = False
    include_paths: Tuple[str, ...] = field(default_factory=tuple)
