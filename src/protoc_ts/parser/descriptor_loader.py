"""Load a schema tree through ``protoc`` and a FileDescriptorSet."""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from google.protobuf import descriptor_pb2 as d2

from protoc_ts.exceptions import SchemaLoadError
from protoc_ts.models import LoaderOptions, Namespace

from .proto_ast import (
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoMessage,
    ProtoRpc,
    ProtoService,
)
from .proto_transform import SchemaTreeBuilder

# Field numbers used in SourceCodeInfo location paths.
_FILE_MESSAGE = 4
_FILE_ENUM = 5
_FILE_SERVICE = 6
_MESSAGE_FIELD = 2
_MESSAGE_NESTED = 3
_MESSAGE_ENUM = 4
_ENUM_VALUE = 2
_SERVICE_METHOD = 2

_LABELS = {
    d2.FieldDescriptorProto.LABEL_REPEATED: "repeated",
    d2.FieldDescriptorProto.LABEL_REQUIRED: "required",
}

_REFERENCE_TYPES = (
    d2.FieldDescriptorProto.TYPE_MESSAGE,
    d2.FieldDescriptorProto.TYPE_ENUM,
    d2.FieldDescriptorProto.TYPE_GROUP,
)

Comments = Dict[Tuple[int, ...], str]


def run_protoc(proto_path: Path, include_paths: List[str]) -> d2.FileDescriptorSet:
    """Invoke protoc and return the FileDescriptorSet for ``proto_path`` and its imports."""
    protoc = shutil.which("protoc")
    if protoc is None:
        raise SchemaLoadError(proto_path, "'protoc' not found. Install the Protocol Buffers compiler and ensure it is in PATH.")

    # de-dup while preserving order
    seen = set()
    inc_args: List[str] = []
    for inc in [str(proto_path.parent.resolve()), *include_paths]:
        if inc and inc not in seen:
            seen.add(inc)
            inc_args.extend(["-I", inc])

    with tempfile.TemporaryDirectory() as td:
        desc_path = os.path.join(td, "descriptor_set.pb")
        cmd = [
            protoc,
            "--include_imports",
            "--include_source_info",
            f"--descriptor_set_out={desc_path}",
            *inc_args,
            str(proto_path.resolve()),
        ]
        try:
            subprocess.run(cmd, check=True, capture_output=True)
        except subprocess.CalledProcessError as e:
            raise SchemaLoadError(proto_path, f"protoc failed: {e.stderr.decode('utf-8', errors='ignore').strip()}") from e

        fds = d2.FileDescriptorSet()
        with open(desc_path, "rb") as f:
            fds.ParseFromString(f.read())
    return fds


def _comments(file_desc: d2.FileDescriptorProto) -> Comments:
    result: Comments = {}
    for location in file_desc.source_code_info.location:
        text = location.leading_comments.strip() or location.trailing_comments.strip()
        if text:
            result[tuple(location.path)] = "\n".join(line.strip() for line in text.split("\n"))
    return result


def _local_type_name(type_name: str, package: str) -> str:
    """.pkg.Outer.Inner -> Outer.Inner when pkg is the file's own package."""
    name = type_name.lstrip(".")
    if package and name.startswith(package + "."):
        return name[len(package) + 1:]
    return name


def _scalar_name(fd: d2.FieldDescriptorProto) -> str:
    return d2.FieldDescriptorProto.Type.Name(fd.type)[len("TYPE_"):].lower()


class _FileConverter:
    def __init__(self, file_desc: d2.FileDescriptorProto):
        self._file = file_desc
        self._package = file_desc.package
        self._comments = _comments(file_desc)

    def convert(self) -> ProtoFile:
        definitions = []
        for i, m in enumerate(self._file.message_type):
            if not m.options.map_entry:
                definitions.append(self._message(m, (_FILE_MESSAGE, i), m.name))
        for i, e in enumerate(self._file.enum_type):
            definitions.append(self._enum(e, (_FILE_ENUM, i)))
        for i, s in enumerate(self._file.service):
            definitions.append(self._service(s, (_FILE_SERVICE, i)))
        return ProtoFile(
            syntax=self._file.syntax or None,
            package=self._package or None,
            imports=list(self._file.dependency),
            definitions=definitions,
        )

    def _type_name(self, fd: d2.FieldDescriptorProto) -> str:
        if fd.type in _REFERENCE_TYPES:
            return _local_type_name(fd.type_name, self._package)
        return _scalar_name(fd)

    def _message(self, desc: d2.DescriptorProto, path: Tuple[int, ...], local_name: str) -> ProtoMessage:
        map_entries = {
            f"{local_name}.{n.name}": n for n in desc.nested_type if n.options.map_entry
        }
        message = ProtoMessage(name=desc.name, comment=self._comments.get(path))

        for i, fd in enumerate(desc.field):
            comment = self._comments.get(path + (_MESSAGE_FIELD, i))
            entry = map_entries.get(_local_type_name(fd.type_name, self._package)) if fd.type_name else None
            if entry is not None:
                key_fd, value_fd = entry.field[0], entry.field[1]
                message.fields.append(ProtoField(
                    type_name=self._type_name(value_fd),
                    field_name=fd.name,
                    field_number=fd.number,
                    key_type=self._type_name(key_fd),
                    comment=comment,
                ))
                continue
            message.fields.append(ProtoField(
                type_name=self._type_name(fd),
                field_name=fd.name,
                field_number=fd.number,
                label=_LABELS.get(fd.label),
                comment=comment,
            ))

        # Nested messages come before nested enums; protoc does not keep
        # their relative source order.
        for i, nested in enumerate(desc.nested_type):
            if nested.options.map_entry:
                continue
            message.nested.append(
                self._message(nested, path + (_MESSAGE_NESTED, i), f"{local_name}.{nested.name}")
            )
        for i, e in enumerate(desc.enum_type):
            message.nested.append(self._enum(e, path + (_MESSAGE_ENUM, i)))
        return message

    def _enum(self, desc: d2.EnumDescriptorProto, path: Tuple[int, ...]) -> ProtoEnum:
        values = [
            ProtoEnumValue(v.name, v.number, self._comments.get(path + (_ENUM_VALUE, i)))
            for i, v in enumerate(desc.value)
        ]
        return ProtoEnum(name=desc.name, values=values, comment=self._comments.get(path))

    def _service(self, desc: d2.ServiceDescriptorProto, path: Tuple[int, ...]) -> ProtoService:
        rpcs = [
            ProtoRpc(
                name=m.name,
                input_type=_local_type_name(m.input_type, self._package),
                output_type=_local_type_name(m.output_type, self._package),
                client_streaming=m.client_streaming,
                server_streaming=m.server_streaming,
                comment=self._comments.get(path + (_SERVICE_METHOD, i)),
            )
            for i, m in enumerate(desc.method)
        ]
        return ProtoService(name=desc.name, rpcs=rpcs, comment=self._comments.get(path))


def descriptor_to_proto_file(file_desc: d2.FileDescriptorProto) -> ProtoFile:
    return _FileConverter(file_desc).convert()


def descriptor_set_to_tree(
    fds: d2.FileDescriptorSet,
    target_name: Optional[str] = None,
    options: Optional[LoaderOptions] = None,
) -> Namespace:
    """Build a schema tree from a descriptor set, target file first.

    ``target_name`` is matched against the end of each file name; when it is
    None the files are added in set order.
    """
    files = list(fds.file)
    if target_name is not None:
        target = next(
            (f for f in files if f.name == target_name or f.name.endswith("/" + target_name)),
            None,
        )
        if target is None:
            names = ", ".join(f.name for f in files)
            raise SchemaLoadError(target_name, f"not found in descriptor set. Found: {names}")
        files.remove(target)
        files.insert(0, target)

    builder = SchemaTreeBuilder(options)
    for file_desc in files:
        builder.add_file(descriptor_to_proto_file(file_desc), file_desc.name)
    return builder.build()


def load_schema_via_descriptor(path, options: Optional[LoaderOptions] = None) -> Namespace:
    """Load a .proto file by running protoc, including its imports."""
    options = options or LoaderOptions()
    proto_path = Path(path)
    if not proto_path.is_file():
        raise SchemaLoadError(proto_path, "file not found")
    fds = run_protoc(proto_path, list(options.include_paths))
    return descriptor_set_to_tree(fds, proto_path.name, options)
