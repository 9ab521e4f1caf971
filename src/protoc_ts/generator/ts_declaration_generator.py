from __future__ import annotations

from typing import Dict, List

from protoc_ts.generator.ts_common import doc_comment, get_template_env
from protoc_ts.models import Enum, Field, GenerationOptions, Message
from protoc_ts.type_mapper import map_entry_type, map_type

MEMBER_INDENT = "  "


def field_ts_type(f: Field) -> str:
    """TypeScript type of a message member."""
    if f.is_map:
        return map_entry_type(f.key_type, f.type_name)
    return map_type(f.type_name, f.repeated)


def _build_field(f: Field, opts: GenerationOptions) -> Dict:
    return {
        "name": f.name,
        "ts_type": field_ts_type(f),
        "optional": not f.required,
        "comment": doc_comment(f.comment, MEMBER_INDENT) if opts.emit_comments else None,
    }


def emit_message(msg: Message, opts: GenerationOptions) -> str:
    """Generate an ``export interface`` (or ``export class``) for a message.

    Nested declarations are not rendered here; the tree walker emits them
    after their parent.
    """
    template = get_template_env().get_template("message.ts.j2")
    fields: List[Dict] = [_build_field(f, opts) for f in msg.fields]
    return template.render(
        comment=doc_comment(msg.comment) if opts.emit_comments else None,
        keyword="class" if opts.emit_classes else "interface",
        name=msg.name,
        fields=fields,
    )


def emit_enum(e: Enum, opts: GenerationOptions) -> str:
    """Generate an ``export enum`` keeping every explicit value number."""
    template = get_template_env().get_template("enum.ts.j2")
    values = [
        {
            "name": v.name,
            "number": v.number,
            "comment": doc_comment(v.comment, MEMBER_INDENT) if opts.emit_comments else None,
        }
        for v in e.values
    ]
    return template.render(
        comment=doc_comment(e.comment) if opts.emit_comments else None,
        name=e.name,
        values=values,
    )
