from __future__ import annotations

from typing import Dict, List, Optional

from protoc_ts.generator.ts_common import doc_comment, get_template_env
from protoc_ts.models import GenerationOptions, Method, Service
from protoc_ts.type_mapper import method_type_name, to_lower_camel

MEMBER_INDENT = "  "


def return_type(method: Method) -> str:
    """Observable for server-streaming methods, Promise otherwise.

    Client streaming does not change the shape; the request parameter keeps
    the request message type.
    """
    response = method_type_name(method.response_type)
    if method.response_stream:
        return f"Observable<{response}>"
    return f"Promise<{response}>"


def _build_method(method: Method, opts: GenerationOptions) -> Dict:
    return {
        "name": to_lower_camel(method.name),
        "request_type": method_type_name(method.request_type),
        "return_type": return_type(method),
        "comment": doc_comment(method.comment, MEMBER_INDENT) if opts.emit_comments else None,
    }


def _render_interface(
    interface_name: str,
    comment: Optional[str],
    methods: List[Dict],
) -> str:
    template = get_template_env().get_template("service.ts.j2")
    return template.render(
        interface_name=interface_name,
        comment=comment,
        methods=methods,
    )


def emit_client_interface(svc: Service, opts: GenerationOptions) -> str:
    methods = [_build_method(m, opts) for m in svc.methods]
    comment = doc_comment(svc.comment) if opts.emit_comments else None
    return _render_interface(f"{svc.name}Client", comment, methods)


def emit_server_interface(svc: Service, opts: GenerationOptions) -> str:
    methods = [_build_method(m, opts) for m in svc.methods]
    comment = None
    if opts.emit_comments and svc.comment:
        comment = doc_comment(f"Controller interface for {svc.name} service")
    return _render_interface(f"{svc.name}Interface", comment, methods)


def emit_service(svc: Service, opts: GenerationOptions) -> str:
    """Generate the client interface (when enabled) followed by the server one."""
    parts: List[str] = []
    if opts.emit_client_interfaces:
        parts.append(emit_client_interface(svc, opts))
    parts.append(emit_server_interface(svc, opts))
    return "\n".join(parts)
