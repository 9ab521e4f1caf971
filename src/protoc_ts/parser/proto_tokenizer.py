"""Tokenizer for protobuf (.proto) files."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional


class ProtoTokenType(Enum):
    # Keywords
    SYNTAX = auto()
    EDITION = auto()
    PACKAGE = auto()
    IMPORT = auto()
    OPTION = auto()
    MESSAGE = auto()
    ENUM = auto()
    SERVICE = auto()
    RPC = auto()
    RETURNS = auto()
    STREAM = auto()
    REPEATED = auto()
    OPTIONAL = auto()
    REQUIRED = auto()
    ONEOF = auto()
    MAP = auto()
    RESERVED = auto()
    EXTENSIONS = auto()
    EXTEND = auto()

    # Delimiters
    LBRACE = auto()
    RBRACE = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LANGLE = auto()
    RANGLE = auto()
    SEMICOLON = auto()
    EQUALS = auto()
    COMMA = auto()

    # Literals
    IDENT = auto()
    NUMBER = auto()
    STRING_LIT = auto()

    # Special
    EOF = auto()


_KEYWORDS = {
    "syntax": ProtoTokenType.SYNTAX,
    "edition": ProtoTokenType.EDITION,
    "package": ProtoTokenType.PACKAGE,
    "import": ProtoTokenType.IMPORT,
    "option": ProtoTokenType.OPTION,
    "message": ProtoTokenType.MESSAGE,
    "enum": ProtoTokenType.ENUM,
    "service": ProtoTokenType.SERVICE,
    "rpc": ProtoTokenType.RPC,
    "returns": ProtoTokenType.RETURNS,
    "stream": ProtoTokenType.STREAM,
    "repeated": ProtoTokenType.REPEATED,
    "optional": ProtoTokenType.OPTIONAL,
    "required": ProtoTokenType.REQUIRED,
    "oneof": ProtoTokenType.ONEOF,
    "map": ProtoTokenType.MAP,
    "reserved": ProtoTokenType.RESERVED,
    "extensions": ProtoTokenType.EXTENSIONS,
    "extend": ProtoTokenType.EXTEND,
}

KEYWORD_TYPES = frozenset(_KEYWORDS.values())

_PUNCTUATION = {
    "{": ProtoTokenType.LBRACE,
    "}": ProtoTokenType.RBRACE,
    "(": ProtoTokenType.LPAREN,
    ")": ProtoTokenType.RPAREN,
    "[": ProtoTokenType.LBRACKET,
    "]": ProtoTokenType.RBRACKET,
    "<": ProtoTokenType.LANGLE,
    ">": ProtoTokenType.RANGLE,
    ";": ProtoTokenType.SEMICOLON,
    "=": ProtoTokenType.EQUALS,
    ",": ProtoTokenType.COMMA,
}


@dataclass
class ProtoToken:
    type: ProtoTokenType
    value: str
    line: int
    col: int
    # Doc comment ending on the line directly above this token.
    comment: Optional[str] = None
    # Doc comment following this token on the same line.
    trailing_comment: Optional[str] = None


def _clean_line_comment(raw: str) -> str:
    return raw.lstrip("/").strip()


def _clean_block_comment(raw: str) -> str:
    body = raw[2:-2] if raw.endswith("*/") else raw[2:]
    lines = []
    for line in body.split("\n"):
        line = line.strip()
        if line.startswith("*"):
            line = line.lstrip("*").strip()
        lines.append(line)
    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_."


def tokenize_proto(text: str, alternate_comment_mode: bool = False) -> List[ProtoToken]:
    """Tokenize a protobuf source string into a list of tokens.

    Doc comments are ``///`` lines and ``/** */`` blocks, or every comment when
    ``alternate_comment_mode`` is set. They are attached to tokens rather than
    emitted as tokens.
    """
    tokens: List[ProtoToken] = []
    i = 0
    line = 1
    col = 1
    n = len(text)

    pending_comment: Optional[str] = None
    pending_end_line = 0

    def emit(tok_type: ProtoTokenType, value: str, tok_line: int, tok_col: int) -> None:
        nonlocal pending_comment
        tok = ProtoToken(tok_type, value, tok_line, tok_col)
        if pending_comment is not None and pending_end_line >= tok_line - 1:
            tok.comment = pending_comment
        pending_comment = None
        tokens.append(tok)

    def record_comment(raw: str, is_line: bool, start_line: int, end_line: int) -> None:
        nonlocal pending_comment, pending_end_line
        if is_line:
            is_doc = alternate_comment_mode or raw.startswith("///")
            cleaned = _clean_line_comment(raw)
        else:
            is_doc = alternate_comment_mode or (raw.startswith("/**") and not raw.startswith("/**/"))
            cleaned = _clean_block_comment(raw)
        if not is_doc:
            pending_comment = None
            return

        last = tokens[-1] if tokens else None
        if last is not None and last.line == start_line:
            # Comment after code on the same line.
            last.trailing_comment = cleaned
            return

        if is_line and pending_comment is not None and pending_end_line == start_line - 1:
            pending_comment = f"{pending_comment}\n{cleaned}"
        else:
            pending_comment = cleaned
        pending_end_line = end_line

    while i < n:
        ch = text[i]

        # Whitespace
        if ch in (" ", "\t", "\r", "\f", "\v"):
            i += 1
            col += 1
            continue

        if ch == "\n":
            i += 1
            line += 1
            col = 1
            continue

        # Single-line comment
        if ch == "/" and i + 1 < n and text[i + 1] == "/":
            start = i
            while i < n and text[i] != "\n":
                i += 1
            col += i - start
            record_comment(text[start:i], True, line, line)
            continue

        # Multi-line comment
        if ch == "/" and i + 1 < n and text[i + 1] == "*":
            start = i
            start_line = line
            i += 2
            col += 2
            while i < n:
                if text[i] == "\n":
                    line += 1
                    col = 1
                elif text[i] == "*" and i + 1 < n and text[i + 1] == "/":
                    i += 2
                    col += 2
                    break
                else:
                    col += 1
                i += 1
            record_comment(text[start:i], False, start_line, line)
            continue

        # Single-character tokens
        if ch in _PUNCTUATION:
            emit(_PUNCTUATION[ch], ch, line, col)
            i += 1
            col += 1
            continue

        # String literal
        if ch in ('"', "'"):
            quote = ch
            start_col = col
            i += 1
            col += 1
            start = i
            while i < n and text[i] != quote and text[i] != "\n":
                if text[i] == "\\":
                    i += 1
                    col += 1
                i += 1
                col += 1
            value = text[start:i]
            if i < n and text[i] == quote:
                i += 1  # consume closing quote
                col += 1
            emit(ProtoTokenType.STRING_LIT, value, line, start_col)
            continue

        # Number: decimal, hex, octal, negative, float
        if ch.isdigit() or (ch in "-+." and i + 1 < n and text[i + 1].isdigit()):
            start = i
            start_col = col
            i += 1
            col += 1
            while i < n and (text[i].isalnum() or text[i] == "."):
                i += 1
                col += 1
            emit(ProtoTokenType.NUMBER, text[start:i], line, start_col)
            continue

        # Identifier / keyword, including dotted and fully-qualified names
        if _is_ident_start(ch) or (ch == "." and i + 1 < n and _is_ident_start(text[i + 1])):
            start = i
            start_col = col
            i += 1
            col += 1
            while i < n and _is_ident_char(text[i]):
                i += 1
                col += 1
            word = text[start:i]
            emit(_KEYWORDS.get(word, ProtoTokenType.IDENT), word, line, start_col)
            continue

        # Skip any other character (e.g. ':' inside option aggregates)
        i += 1
        col += 1

    tokens.append(ProtoToken(ProtoTokenType.EOF, "", line, col))
    return tokens
