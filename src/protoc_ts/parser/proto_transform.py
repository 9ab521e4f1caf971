"""Transform proto AST nodes into the schema tree model."""

from __future__ import annotations

from typing import List, Optional, Union

from protoc_ts.exceptions import SchemaLoadError
from protoc_ts.models import (
    Enum,
    EnumValue,
    Field,
    LoaderOptions,
    Message,
    Method,
    Namespace,
    NodeKind,
    SchemaNode,
    Service,
)
from protoc_ts.type_mapper import camel_case

from .proto_ast import ProtoEnum, ProtoField, ProtoFile, ProtoMessage, ProtoService


class _NamespaceBuilder:
    """Mutable namespace used while one or more files are merged into a tree."""

    def __init__(self, name: str, full_name: str = ""):
        self.name = name
        self.full_name = full_name
        self.children: List[Union[_NamespaceBuilder, SchemaNode]] = []

    def namespace(self, name: str, source_file: str) -> _NamespaceBuilder:
        for child in self.children:
            if child.name != name:
                continue
            if isinstance(child, _NamespaceBuilder):
                return child
            raise SchemaLoadError(
                source_file,
                f"Package segment {name!r} conflicts with a declaration in '{self.full_name}'",
            )
        full_name = f"{self.full_name}.{name}" if self.full_name else name
        child = _NamespaceBuilder(name, full_name)
        self.children.append(child)
        return child

    def add(self, node: SchemaNode, source_file: str) -> None:
        if any(child.name == node.name for child in self.children):
            where = self.full_name or "<root>"
            raise SchemaLoadError(source_file, f"Duplicate name {node.name!r} in '{where}'")
        self.children.append(node)

    def build(self) -> Namespace:
        children = []
        for child in self.children:
            if isinstance(child, _NamespaceBuilder):
                children.append(child.build())
            else:
                children.append(child)
        return Namespace(name=self.name, children=tuple(children))


class SchemaTreeBuilder:
    """Merge parsed files into one schema tree.

    Files are added in load order; namespaces shared by several files are
    merged and keep the position of their first appearance.
    """

    def __init__(self, options: Optional[LoaderOptions] = None):
        self._options = options or LoaderOptions()
        self._root = _NamespaceBuilder("")

    def add_file(self, ast: ProtoFile, source_file: str) -> None:
        target = self._root
        if ast.package:
            for segment in ast.package.split("."):
                target = target.namespace(segment, source_file)
        for definition in ast.definitions:
            target.add(self._transform_definition(definition), source_file)

    def build(self) -> Namespace:
        return self._root.build()

    def _transform_definition(self, node) -> SchemaNode:
        if isinstance(node, ProtoMessage):
            return self._transform_message(node)
        if isinstance(node, ProtoEnum):
            return _transform_enum(node)
        if isinstance(node, ProtoService):
            return _transform_service(node)
        raise TypeError(f"Unsupported proto definition: {node!r}")

    def _transform_message(self, node: ProtoMessage) -> Message:
        fields = tuple(self._transform_field(f) for f in node.fields)
        nested = tuple(self._transform_definition(n) for n in node.nested)
        return Message(name=node.name, fields=fields, comment=node.comment, nested=nested)

    def _transform_field(self, f: ProtoField) -> Field:
        name = f.field_name if self._options.keep_case else camel_case(f.field_name)
        return Field(
            name=name,
            type_name=f.type_name.lstrip("."),
            repeated=f.is_repeated,
            required=f.is_required,
            comment=f.comment,
            key_type=f.key_type,
        )


def _transform_enum(node: ProtoEnum) -> Enum:
    values = tuple(EnumValue(v.name, v.number, v.comment) for v in node.values)
    return Enum(name=node.name, values=values, comment=node.comment)


def _transform_service(node: ProtoService) -> Service:
    methods = tuple(
        Method(
            name=rpc.name,
            request_type=rpc.input_type,
            response_type=rpc.output_type,
            request_stream=rpc.client_streaming,
            response_stream=rpc.server_streaming,
            comment=rpc.comment,
        )
        for rpc in node.rpcs
    )
    return Service(name=node.name, methods=methods, comment=node.comment)


def transform_proto(
    ast: ProtoFile,
    source_file: str,
    options: Optional[LoaderOptions] = None,
) -> Namespace:
    """Transform a single ProtoFile AST into a schema tree rooted at ``""``."""
    builder = SchemaTreeBuilder(options)
    builder.add_file(ast, source_file)
    return builder.build()


def count_declarations(node: SchemaNode) -> int:
    """Number of messages, enums and services in a subtree."""
    if node.kind is NodeKind.NAMESPACE:
        return sum(count_declarations(child) for child in node.children)
    if node.kind is NodeKind.MESSAGE:
        return 1 + sum(count_declarations(child) for child in node.nested)
    return 1
