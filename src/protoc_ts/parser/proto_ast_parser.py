"""Recursive descent parser for protobuf (.proto) files.

Consumes a token stream from proto_tokenizer and produces proto AST nodes.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from protoc_ts.exceptions import SchemaLoadError

from .proto_ast import (
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoFile,
    ProtoMessage,
    ProtoRpc,
    ProtoService,
)
from .proto_tokenizer import KEYWORD_TYPES, ProtoToken, ProtoTokenType

_LABELS = {
    ProtoTokenType.REPEATED: "repeated",
    ProtoTokenType.OPTIONAL: "optional",
    ProtoTokenType.REQUIRED: "required",
}


class ProtoParseError(SchemaLoadError):
    """Raised when the parser encounters unexpected input."""

    def __init__(self, message: str, token: ProtoToken | None = None, source: str | None = None):
        if token:
            message = f"Line {token.line}:{token.col}: {message}"
        super().__init__(source or "<input>", message)


class ProtoParser:
    """Recursive descent parser for .proto files."""

    def __init__(self, tokens: List[ProtoToken], source: Optional[str] = None):
        self._tokens = tokens
        self._pos = 0
        self._source = source

    # -- public API --

    def parse(self) -> ProtoFile:
        """Parse the full token stream into a ProtoFile AST."""
        result = ProtoFile()

        while not self._at_end():
            tt = self._peek().type

            if tt in (ProtoTokenType.SYNTAX, ProtoTokenType.EDITION):
                result.syntax = self._parse_syntax()
            elif tt == ProtoTokenType.PACKAGE:
                self._advance()
                result.package = self._expect_name().value.lstrip(".")
                self._expect(ProtoTokenType.SEMICOLON)
            elif tt == ProtoTokenType.IMPORT:
                result.imports.append(self._parse_import())
            elif tt == ProtoTokenType.OPTION:
                self._skip_statement()
            elif tt == ProtoTokenType.MESSAGE:
                result.definitions.append(self._parse_message())
            elif tt == ProtoTokenType.ENUM:
                result.definitions.append(self._parse_enum())
            elif tt == ProtoTokenType.SERVICE:
                result.definitions.append(self._parse_service())
            elif tt == ProtoTokenType.EXTEND:
                self._skip_block()
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            else:
                tok = self._peek()
                raise self._error(f"Unexpected top-level token {tok.value!r}", tok)

        return result

    # -- file-level statements --

    def _parse_syntax(self) -> str:
        """Parse: (SYNTAX | EDITION) EQUALS STRING_LIT SEMICOLON"""
        self._advance()
        self._expect(ProtoTokenType.EQUALS)
        value = self._expect(ProtoTokenType.STRING_LIT).value
        self._expect(ProtoTokenType.SEMICOLON)
        return value

    def _parse_import(self) -> str:
        """Parse: IMPORT [public | weak] STRING_LIT SEMICOLON"""
        self._expect(ProtoTokenType.IMPORT)
        if self._peek().type == ProtoTokenType.IDENT and self._peek().value in ("public", "weak"):
            self._advance()
        path = self._expect(ProtoTokenType.STRING_LIT).value
        self._expect(ProtoTokenType.SEMICOLON)
        return path

    # -- message parsing --

    def _parse_message(self) -> ProtoMessage:
        """Parse: MESSAGE IDENT LBRACE body RBRACE"""
        keyword = self._expect(ProtoTokenType.MESSAGE)
        name_tok = self._expect_name()
        self._expect(ProtoTokenType.LBRACE)
        message = ProtoMessage(name=name_tok.value, comment=keyword.comment)
        self._parse_message_body(message)
        self._expect(ProtoTokenType.RBRACE)
        return message

    def _parse_message_body(self, message: ProtoMessage) -> None:
        """Parse the contents between { and } of a message."""
        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
            tt = self._peek().type

            if tt == ProtoTokenType.MESSAGE:
                message.nested.append(self._parse_message())
            elif tt == ProtoTokenType.ENUM:
                message.nested.append(self._parse_enum())
            elif tt == ProtoTokenType.ONEOF:
                message.fields.extend(self._parse_oneof())
            elif tt == ProtoTokenType.MAP:
                message.fields.append(self._parse_map_field())
            elif tt in _LABELS or tt == ProtoTokenType.IDENT:
                message.fields.append(self._parse_field())
            elif tt in (
                ProtoTokenType.OPTION,
                ProtoTokenType.RESERVED,
                ProtoTokenType.EXTENSIONS,
            ):
                self._skip_statement()
            elif tt == ProtoTokenType.EXTEND:
                self._skip_block()
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            else:
                tok = self._peek()
                raise self._error(f"Unexpected token {tok.value!r} in message body", tok)

    def _parse_field(self) -> ProtoField:
        """Parse: [label] IDENT(type) IDENT(name) EQUALS NUMBER [options] SEMICOLON"""
        first = self._peek()
        label = None
        if first.type in _LABELS:
            label = _LABELS[first.type]
            self._advance()

        type_tok = self._expect(ProtoTokenType.IDENT)
        name_tok = self._expect_name()
        self._expect(ProtoTokenType.EQUALS)
        num_tok = self._expect(ProtoTokenType.NUMBER)
        end_tok = self._finish_member()

        return ProtoField(
            type_name=type_tok.value,
            field_name=name_tok.value,
            field_number=self._to_int(num_tok),
            label=label,
            comment=first.comment or end_tok.trailing_comment,
        )

    def _parse_map_field(self) -> ProtoField:
        """Parse: MAP LANGLE key COMMA value RANGLE IDENT EQUALS NUMBER [options] SEMICOLON"""
        first = self._expect(ProtoTokenType.MAP)
        self._expect(ProtoTokenType.LANGLE)
        key_tok = self._expect(ProtoTokenType.IDENT)
        self._expect(ProtoTokenType.COMMA)
        value_tok = self._expect(ProtoTokenType.IDENT)
        self._expect(ProtoTokenType.RANGLE)
        name_tok = self._expect_name()
        self._expect(ProtoTokenType.EQUALS)
        num_tok = self._expect(ProtoTokenType.NUMBER)
        end_tok = self._finish_member()

        return ProtoField(
            type_name=value_tok.value,
            field_name=name_tok.value,
            field_number=self._to_int(num_tok),
            key_type=key_tok.value,
            comment=first.comment or end_tok.trailing_comment,
        )

    def _parse_oneof(self) -> List[ProtoField]:
        """Parse: ONEOF IDENT LBRACE { field | option } RBRACE

        Members become plain fields; they are optional by construction.
        """
        self._expect(ProtoTokenType.ONEOF)
        self._expect_name()
        self._expect(ProtoTokenType.LBRACE)
        fields: List[ProtoField] = []
        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
            tt = self._peek().type
            if tt == ProtoTokenType.OPTION:
                self._skip_statement()
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            elif tt == ProtoTokenType.MAP:
                fields.append(self._parse_map_field())
            else:
                fields.append(self._parse_field())
        self._expect(ProtoTokenType.RBRACE)
        return fields

    # -- enum parsing --

    def _parse_enum(self) -> ProtoEnum:
        """Parse: ENUM IDENT LBRACE { IDENT EQUALS NUMBER [options] SEMICOLON } RBRACE"""
        keyword = self._expect(ProtoTokenType.ENUM)
        name_tok = self._expect_name()
        self._expect(ProtoTokenType.LBRACE)
        enum = ProtoEnum(name=name_tok.value, comment=keyword.comment)

        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
            tt = self._peek().type
            if tt in (ProtoTokenType.OPTION, ProtoTokenType.RESERVED):
                self._skip_statement()
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            else:
                value_tok = self._expect_name()
                self._expect(ProtoTokenType.EQUALS)
                num_tok = self._expect(ProtoTokenType.NUMBER)
                end_tok = self._finish_member()
                enum.values.append(
                    ProtoEnumValue(
                        name=value_tok.value,
                        number=self._to_int(num_tok),
                        comment=value_tok.comment or end_tok.trailing_comment,
                    )
                )

        self._expect(ProtoTokenType.RBRACE)
        return enum

    # -- service parsing --

    def _parse_service(self) -> ProtoService:
        """Parse: SERVICE IDENT LBRACE { rpc | option } RBRACE"""
        keyword = self._expect(ProtoTokenType.SERVICE)
        name_tok = self._expect_name()
        self._expect(ProtoTokenType.LBRACE)
        service = ProtoService(name=name_tok.value, comment=keyword.comment)

        while not self._at_end() and self._peek().type != ProtoTokenType.RBRACE:
            tt = self._peek().type
            if tt == ProtoTokenType.RPC:
                service.rpcs.append(self._parse_rpc())
            elif tt == ProtoTokenType.OPTION:
                self._skip_statement()
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            else:
                tok = self._peek()
                raise self._error(f"Unexpected token {tok.value!r} in service body", tok)

        self._expect(ProtoTokenType.RBRACE)
        return service

    def _parse_rpc(self) -> ProtoRpc:
        """Parse: RPC IDENT LPAREN [STREAM] type RPAREN RETURNS LPAREN [STREAM] type RPAREN (body | SEMICOLON)"""
        keyword = self._expect(ProtoTokenType.RPC)
        name_tok = self._expect_name()
        client_streaming, input_type = self._parse_rpc_type()
        self._expect(ProtoTokenType.RETURNS)
        server_streaming, output_type = self._parse_rpc_type()

        if self._peek().type == ProtoTokenType.LBRACE:
            end_tok = self._skip_braces()
            if self._peek().type == ProtoTokenType.SEMICOLON:
                end_tok = self._advance()
        else:
            end_tok = self._expect(ProtoTokenType.SEMICOLON)

        return ProtoRpc(
            name=name_tok.value,
            input_type=input_type,
            output_type=output_type,
            client_streaming=client_streaming,
            server_streaming=server_streaming,
            comment=keyword.comment or end_tok.trailing_comment,
        )

    def _parse_rpc_type(self) -> Tuple[bool, str]:
        self._expect(ProtoTokenType.LPAREN)
        streaming = False
        if self._peek().type == ProtoTokenType.STREAM and self._peek_at(1).type != ProtoTokenType.RPAREN:
            self._advance()
            streaming = True
        type_tok = self._expect_name()
        self._expect(ProtoTokenType.RPAREN)
        return streaming, type_tok.value.lstrip(".")

    # -- skip helpers --

    def _finish_member(self) -> ProtoToken:
        """Skip optional [options] and consume the closing semicolon."""
        if self._peek().type == ProtoTokenType.LBRACKET:
            self._skip_brackets()
        return self._expect(ProtoTokenType.SEMICOLON)

    def _skip_statement(self) -> None:
        """Skip tokens until (and including) the next semicolon outside braces."""
        depth = 0
        while not self._at_end():
            tok = self._advance()
            if tok.type == ProtoTokenType.LBRACE:
                depth += 1
            elif tok.type == ProtoTokenType.RBRACE:
                depth -= 1
            elif tok.type == ProtoTokenType.SEMICOLON and depth <= 0:
                return

    def _skip_block(self) -> None:
        """Skip a keyword + IDENT + braced block (e.g. extend)."""
        self._advance()  # keyword
        while not self._at_end() and self._peek().type != ProtoTokenType.LBRACE:
            self._advance()
        self._skip_braces()

    def _skip_braces(self) -> ProtoToken:
        """Consume a balanced { ... } group and return the closing brace."""
        tok = self._expect(ProtoTokenType.LBRACE)
        depth = 1
        while depth > 0:
            if self._at_end():
                raise self._error("Unexpected end of file inside block", self._peek())
            tok = self._advance()
            if tok.type == ProtoTokenType.LBRACE:
                depth += 1
            elif tok.type == ProtoTokenType.RBRACE:
                depth -= 1
        return tok

    def _skip_brackets(self) -> None:
        self._expect(ProtoTokenType.LBRACKET)
        depth = 1
        while depth > 0:
            if self._at_end():
                raise self._error("Unexpected end of file inside field options", self._peek())
            tok = self._advance()
            if tok.type == ProtoTokenType.LBRACKET:
                depth += 1
            elif tok.type == ProtoTokenType.RBRACKET:
                depth -= 1

    # -- token helpers --

    def _peek(self) -> ProtoToken:
        return self._tokens[self._pos]

    def _peek_at(self, offset: int) -> ProtoToken:
        index = min(self._pos + offset, len(self._tokens) - 1)
        return self._tokens[index]

    def _advance(self) -> ProtoToken:
        tok = self._tokens[self._pos]
        if tok.type != ProtoTokenType.EOF:
            self._pos += 1
        return tok

    def _expect(self, expected: ProtoTokenType) -> ProtoToken:
        tok = self._peek()
        if tok.type != expected:
            raise self._error(
                f"Expected {expected.name}, got {tok.type.name} ({tok.value!r})",
                tok,
            )
        return self._advance()

    def _expect_name(self) -> ProtoToken:
        """Accept an identifier, including words that are keywords elsewhere."""
        tok = self._peek()
        if tok.type != ProtoTokenType.IDENT and tok.type not in KEYWORD_TYPES:
            raise self._error(f"Expected a name, got {tok.type.name} ({tok.value!r})", tok)
        return self._advance()

    def _to_int(self, tok: ProtoToken) -> int:
        text = tok.value
        sign = 1
        if text[:1] in "+-":
            sign = -1 if text[0] == "-" else 1
            text = text[1:]
        try:
            if text.lower().startswith("0x"):
                return sign * int(text, 16)
            if len(text) > 1 and text.startswith("0"):
                return sign * int(text, 8)
            return sign * int(text)
        except ValueError:
            raise self._error(f"Invalid integer {tok.value!r}", tok) from None

    def _at_end(self) -> bool:
        return self._tokens[self._pos].type == ProtoTokenType.EOF

    def _error(self, message: str, token: ProtoToken) -> ProtoParseError:
        return ProtoParseError(message, token, self._source)
