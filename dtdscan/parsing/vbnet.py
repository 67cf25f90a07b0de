"""
Visual Basic .NET parser.

A line-aware tokenizer and recursive-descent parser producing ASTNode
trees. It covers declarations, statement blocks and expressions well enough
to locate object creations and the declarations their arguments refer to.
Unsupported syntax is recovered from one logical line at a time and
recorded as an ``error`` node.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from dtdscan.analysis.types import VB_KEYWORD_TYPES, TypeSystem
from dtdscan.parsing.base import ASTNode, ParsedFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Token:
    kind: str  # name, string, char, number, date, op, newline, eof
    text: str
    line: int
    column: int
    end_line: int
    end_column: int
    escaped: bool = False

    @property
    def word(self) -> str:
        """Lowercased text of an unescaped name, used for keyword checks."""
        if self.kind == "name" and not self.escaped:
            return self.text.lower()
        return ""


OPERATORS = sorted(
    [
        "<<=", ">>=", ":=", "<=", ">=", "<>", "+=", "-=", "*=", "/=", "\\=", "^=", "&=",
        "<<", ">>", "?.", "(", ")", "{", "}", ",", ".", "=", "<", ">", "+", "-", "*",
        "/", "\\", "^", "&", "!", "?", "#", "@",
    ],
    key=len,
    reverse=True,
)

_IDENTIFIER = re.compile(r"[^\W\d]\w*")
_NUMBER = re.compile(r"(?:\d[\d_]*(?:\.\d+)?|\.\d+)(?:[eE][+-]?\d+)?(?:[A-Za-z]{1,2}|[%&@!#])?")
_BASED_NUMBER = re.compile(r"&[HhOoBb][0-9A-Fa-f_]+[A-Za-z%&]*")
_DATE = re.compile(r"#[0-9/:\-\. ]+(?:[AaPp][Mm])?\s*#")
_CONTINUATION = re.compile(r"_[ \t]*(?:'[^\n]*)?\r?\n")

RESERVED = {
    "addhandler", "addressof", "and", "andalso", "as", "byref", "byval", "call", "case",
    "catch", "class", "const", "continue", "declare", "delegate", "dim", "do", "each",
    "else", "elseif", "end", "endif", "enum", "erase", "event", "exit", "finally", "for",
    "friend", "function", "gettype", "gosub", "goto", "handles", "if", "implements",
    "imports", "in", "inherits", "interface", "is", "isnot", "let", "lib", "like", "loop",
    "mod", "module", "mustinherit", "mustoverride", "namespace", "narrowing", "new",
    "next", "not", "notinheritable", "notoverridable", "of", "operator", "option",
    "optional", "or", "orelse", "overloads", "overridable", "overrides", "paramarray",
    "partial", "private", "property", "protected", "public", "raiseevent", "readonly",
    "redim", "removehandler", "return", "select", "shadows", "shared", "static", "step",
    "stop", "structure", "sub", "synclock", "then", "throw", "to", "try", "typeof",
    "using", "wend", "when", "while", "widening", "with", "withevents", "writeonly", "xor",
}

MODIFIERS = {
    "public", "private", "protected", "friend", "shared", "shadows", "overrides",
    "overridable", "notoverridable", "mustoverride", "overloads", "readonly", "writeonly",
    "partial", "static", "dim", "const", "withevents", "default", "mustinherit",
    "notinheritable", "async", "iterator", "widening", "narrowing", "custom",
}

BINARY_WORDS = {"and", "andalso", "or", "orelse", "xor", "mod", "is", "isnot", "like"}
BINARY_OPS = {"+", "-", "*", "/", "\\", "^", "&", "=", "<>", "<", ">", "<=", ">=", "<<", ">>"}
ASSIGNMENT_OPS = {"=", "+=", "-=", "*=", "/=", "\\=", "^=", "&=", "<<=", ">>="}

BLOCK_TERMINATORS = {"end", "else", "elseif", "endif", "catch", "finally", "case", "loop", "next", "wend"}
MEMBER_END_WORDS = {
    "sub", "function", "property", "get", "set", "class", "module", "namespace",
    "structure", "interface", "operator", "event", "addhandler", "removehandler",
    "raiseevent", "enum",
}
TYPE_BLOCKS = {"class", "module", "structure", "interface"}

CONVERSIONS = {
    "cstr": "System.String",
    "cint": "System.Int32",
    "clng": "System.Int64",
    "cshort": "System.Int16",
    "cbyte": "System.Byte",
    "cbool": "System.Boolean",
    "cdbl": "System.Double",
    "csng": "System.Single",
    "cdec": "System.Decimal",
    "cdate": "System.DateTime",
    "cchar": "System.Char",
    "cobj": "System.Object",
}
CASTS = {"ctype", "directcast", "trycast"}


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    line = 1
    line_start = 0
    n = len(source)

    def emit(kind: str, text: str, start: int, escaped: bool = False) -> None:
        column = start - line_start + 1
        tokens.append(Token(kind, text, line, column, line, column + len(text), escaped))

    while i < n:
        ch = source[i]
        if ch in " \t\f\v\r\ufeff":
            i += 1
            continue
        if ch == "\n":
            emit("newline", "\n", i)
            i += 1
            line += 1
            line_start = i
            continue
        if ch in "'\u2018\u2019":
            while i < n and source[i] != "\n":
                i += 1
            continue
        if ch == "_" and (i == line_start or source[i - 1] in " \t"):
            match = _CONTINUATION.match(source, i)
            if match:
                i = match.end()
                line += 1
                line_start = i
                continue
        if ch == "#" and not source[line_start:i].strip():
            # preprocessor directive (#Region, #If ...)
            while i < n and source[i] != "\n":
                i += 1
            continue
        if ch in "\"\u201c\u201d" or (ch == "$" and i + 1 < n and source[i + 1] == "\""):
            j = i + 2 if ch == "$" else i + 1
            while j < n and source[j] != "\n":
                if source[j] in "\"\u201c\u201d":
                    if j + 1 < n and source[j + 1] == '"':
                        j += 2
                        continue
                    j += 1
                    break
                j += 1
            kind = "string"
            if j < n and source[j] in "cC" and ch != "$":
                j += 1
                kind = "char"
            emit(kind, source[i:j], i)
            i = j
            continue
        if ch == "&":
            match = _BASED_NUMBER.match(source, i)
            if match:
                emit("number", match.group(), i)
                i = match.end()
                continue
        if ch.isdigit() or (ch == "." and i + 1 < n and source[i + 1].isdigit()):
            match = _NUMBER.match(source, i)
            emit("number", match.group(), i)
            i = match.end()
            continue
        if ch == "#":
            match = _DATE.match(source, i)
            if match:
                emit("date", match.group(), i)
                i = match.end()
                continue
        if ch == "[":
            end = source.find("]", i)
            newline = source.find("\n", i)
            if end > i + 1 and (newline == -1 or end < newline):
                column = i - line_start + 1
                text = source[i + 1:end]
                tokens.append(Token("name", text, line, column, line, column + end + 1 - i, True))
                i = end + 1
                continue
        match = _IDENTIFIER.match(source, i)
        if match:
            word = match.group()
            if word.lower() == "rem":
                while i < n and source[i] != "\n":
                    i += 1
                continue
            emit("name", word, i)
            i = match.end()
            continue
        if ch == ":" and not source.startswith(":=", i):
            # statement separator
            emit("newline", ":", i)
            i += 1
            continue
        for op in OPERATORS:
            if source.startswith(op, i):
                emit("op", op, i)
                i += len(op)
                break
        else:
            emit("op", ch, i)
            i += 1
    column = i - line_start + 1
    tokens.append(Token("newline", "", line, column, line, column))
    tokens.append(Token("eof", "", line, column, line, column))
    return tokens


class _ParseFailure(Exception):
    def __init__(self, message: str, token: Token):
        super().__init__(f"line {token.line}, column {token.column}: {message}")
        self.token = token


class VisualBasicParser:
    """
    Parser for Visual Basic .NET source code.

    Produces a ``compilation_unit`` ASTNode. Lines and columns are 1-based
    and count characters, matching what compilers report.
    """

    def __init__(self, source: str, path: str = "<unknown>"):
        self.source = source
        self.path = path
        self.tokens = tokenize(source)
        self.pos = 0
        self.errors: List[str] = []
        self._last = self.tokens[0]
        self._open: List[str] = []

    # -- token helpers ---------------------------------------------------

    def peek(self, offset: int = 0) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != "eof":
            self.pos += 1
        if token.kind != "newline":
            self._last = token
        return token

    def at_word(self, *words: str) -> bool:
        return self.peek().word in words

    def at_op(self, *ops: str) -> bool:
        token = self.peek()
        return token.kind == "op" and token.text in ops

    def accept_word(self, word: str) -> Optional[Token]:
        if self.at_word(word):
            return self.advance()
        return None

    def accept_op(self, op: str) -> Optional[Token]:
        if self.at_op(op):
            return self.advance()
        return None

    def expect_word(self, word: str) -> Token:
        if not self.at_word(word):
            raise _ParseFailure(f"expected '{word}'", self.peek())
        return self.advance()

    def expect_op(self, op: str) -> Token:
        if not self.at_op(op):
            raise _ParseFailure(f"expected '{op}'", self.peek())
        return self.advance()

    def expect_name(self) -> Token:
        token = self.peek()
        if token.kind != "name":
            raise _ParseFailure("expected a name", token)
        return self.advance()

    def at_statement_end(self) -> bool:
        return self.peek().kind in ("newline", "eof")

    def skip_newlines(self) -> None:
        while self.peek().kind == "newline":
            self.advance()

    def skip_to_eol(self) -> None:
        while not self.at_statement_end():
            self.advance()

    def _skip_balanced(self) -> None:
        """Skip a parenthesized group starting at '('."""
        depth = 0
        while self.peek().kind != "eof":
            token = self.advance()
            if token.kind == "op" and token.text == "(":
                depth += 1
            elif token.kind == "op" and token.text == ")":
                depth -= 1
                if depth == 0:
                    return

    def _skip_attributes(self) -> None:
        while self.at_op("<") and self.peek(1).kind == "name":
            depth = 0
            while self.peek().kind != "eof":
                token = self.advance()
                if token.kind == "op" and token.text == "<":
                    depth += 1
                elif token.kind == "op" and token.text == ">":
                    depth -= 1
                    if depth == 0:
                        break
            self.skip_newlines()

    def _node(self, node_type: str, start: Token, value: Optional[str] = None,
              children: Optional[List[ASTNode]] = None, **attributes) -> ASTNode:
        end = self._last
        if (end.line, end.column) < (start.line, start.column):
            end = start
        return ASTNode(
            type=node_type,
            value=value,
            start_line=start.line,
            start_column=start.column,
            end_line=end.end_line,
            end_column=end.end_column,
            children=[c for c in (children or []) if c is not None],
            attributes=attributes,
        )

    def _error_line(self, message: str) -> ASTNode:
        start = self.peek()
        self.errors.append(f"{self.path}:{start.line}:{start.column}: {message}")
        logger.debug("%s:%d: %s", self.path, start.line, message)
        self.skip_to_eol()
        return self._node("error", start, value=message)

    def _at_outer_end(self) -> bool:
        if self.peek().kind == "eof":
            return True
        return self.at_word("end") and (
            self.peek(1).word in self._open or self.peek(1).word in MEMBER_END_WORDS
        )

    def _accept_end(self, kind: str) -> bool:
        if self.at_word("end") and self.peek(1).word == kind:
            self.advance()
            self.advance()
            return True
        return False

    # -- compilation unit and declarations -------------------------------

    def parse(self) -> ASTNode:
        start = self.peek()
        children = self._parse_members(None)
        while self.peek().kind != "eof":
            children.append(self._error_line("unexpected statement at file level"))
            self.skip_newlines()
            children.extend(self._parse_members(None))
        root = self._node("compilation_unit", start, children=children)
        root.start_line, root.start_column = 1, 1
        return root

    def _parse_members(self, container: Optional[str]) -> List[ASTNode]:
        members: List[ASTNode] = []
        while True:
            self.skip_newlines()
            token = self.peek()
            if token.kind == "eof":
                return members
            if token.word == "end" and (container is None or self.peek(1).word == container
                                        or self._at_outer_end()):
                return members
            try:
                member = self._parse_member(container)
            except _ParseFailure as exc:
                members.append(self._error_line(str(exc)))
                continue
            if member is not None:
                members.append(member)
            if not self.at_statement_end():
                members.append(self._error_line("unexpected tokens after declaration"))

    def _parse_member(self, container: Optional[str]) -> Optional[ASTNode]:
        self._skip_attributes()
        start = self.peek()
        word = start.word
        if word == "imports":
            self.advance()
            if self.peek(1).kind == "op" and self.peek(1).text == "=":
                self.skip_to_eol()
                return None
            name = self._parse_dotted_name()
            return self._node("imports", start, value=name)
        if word == "option":
            self.skip_to_eol()
            return None
        if word == "namespace":
            self.advance()
            name = self._parse_dotted_name()
            self._open.append("namespace")
            try:
                children = self._parse_members("namespace")
                if not self._accept_end("namespace"):
                    self._error_line("expected 'End Namespace'")
            finally:
                self._open.pop()
            return self._node("namespace", start, value=name, children=children)
        if word in ("inherits", "implements"):
            self.advance()
            base = self._parse_type()
            while self.accept_op(","):
                self._parse_type()
            return self._node(word, start, value=base)

        modifiers = set()
        while self.peek().word in MODIFIERS:
            # "Custom" and "Async" only modify when a declaration keyword follows
            if self.peek().word in ("custom", "async", "iterator") and self.peek(1).kind != "name":
                break
            modifiers.add(self.advance().word)
        word = self.peek().word
        no_body = "mustoverride" in modifiers or container == "interface"
        if word in TYPE_BLOCKS:
            return self._parse_type_block(start)
        if word == "enum":
            return self._parse_enum(start)
        if word in ("sub", "function", "operator"):
            return self._parse_method(start, modifiers, no_body)
        if word == "property":
            return self._parse_property(start, modifiers, no_body)
        if word == "event":
            return self._parse_event(start, modifiers)
        if word in ("delegate", "declare"):
            self.advance()
            self.advance()
            name = self.peek().text if self.peek().kind == "name" else None
            self.skip_to_eol()
            return self._node(f"{word}_declaration", start, value=name)
        if self.peek().kind == "name" and word not in RESERVED and modifiers:
            declarators, children = self._parse_declarators()
            return self._node("field", start, value=declarators[0]["name"] if declarators else None,
                              children=children, declarators=declarators, modifiers=sorted(modifiers))
        raise _ParseFailure("unexpected declaration", self.peek())

    def _parse_dotted_name(self) -> str:
        parts = [self.expect_name().text]
        while self.accept_op("."):
            parts.append(self.expect_name().text)
        return ".".join(parts)

    def _parse_type_block(self, start: Token) -> ASTNode:
        kind = self.advance().word
        name = self.expect_name().text
        if self.at_op("(") and self.peek(1).word == "of":
            self._skip_balanced()
        self._open.append(kind)
        try:
            children = self._parse_members(kind)
            if not self._accept_end(kind):
                self._error_line(f"expected 'End {kind.title()}'")
        finally:
            self._open.pop()
        bases = [c.value for c in children if c.type == "inherits"]
        return self._node(kind, start, value=name, children=children,
                          base=bases[0] if bases else None)

    def _parse_enum(self, start: Token) -> ASTNode:
        self.advance()
        name = self.expect_name().text
        self.skip_to_eol()
        members = []
        while True:
            self.skip_newlines()
            if self.peek().kind == "eof" or self._accept_end("enum") or self._at_outer_end():
                break
            self._skip_attributes()
            if self.peek().kind == "name":
                members.append(self.advance().text)
            self.skip_to_eol()
        return self._node("enum", start, value=name, members=members)

    def _parse_method(self, start: Token, modifiers: set, no_body: bool) -> ASTNode:
        kind = self.advance().word
        name_token = self.advance()
        name = ".ctor" if name_token.word == "new" else name_token.text
        if self.at_op("(") and self.peek(1).word == "of":
            self._skip_balanced()
        parameters = self._parse_parameters() if self.at_op("(") else []
        return_type = None
        if self.accept_word("as"):
            return_type = self._parse_type()
        # Handles / Implements clauses
        self.skip_to_eol()
        children: List[ASTNode] = []
        if not no_body:
            children = self._parse_body(kind)
        return self._node("method", start, value=name, children=children, kind=kind,
                          parameters=parameters, return_type=return_type,
                          modifiers=sorted(modifiers))

    def _parse_property(self, start: Token, modifiers: set, no_body: bool) -> ASTNode:
        self.advance()
        name = self.expect_name().text
        parameters = self._parse_parameters() if self.at_op("(") else []
        type_name = None
        children: List[ASTNode] = []
        if self.accept_word("as"):
            self._skip_attributes()
            if self.at_word("new"):
                creation = self._parse_postfix(self._parse_new())
                type_name = creation.attributes.get("type_name")
                children.append(creation)
            else:
                type_name = self._parse_type()
        if self.accept_op("="):
            self.skip_newlines()
            children.append(self.parse_expression())
        self.skip_to_eol()
        if not no_body and self._next_is_accessor():
            self._open.append("property")
            try:
                children.extend(self._parse_accessors("property", name, type_name))
            finally:
                self._open.pop()
        return self._node("property", start, value=name, children=children, type_name=type_name,
                          parameters=parameters, modifiers=sorted(modifiers))

    def _next_is_accessor(self) -> bool:
        offset = 0
        depth = 0
        while True:
            token = self.peek(offset)
            if token.kind == "eof":
                return False
            if token.kind == "op" and token.text == "<":
                depth += 1
            elif token.kind == "op" and token.text == ">" and depth:
                depth -= 1
            elif token.kind != "newline" and not depth:
                break
            offset += 1
        while self.peek(offset).word in MODIFIERS:
            offset += 1
        return self.peek(offset).word in ("get", "set")

    def _parse_accessors(self, owner: str, name: str, type_name: Optional[str]) -> List[ASTNode]:
        accessors: List[ASTNode] = []
        while True:
            self.skip_newlines()
            if self._accept_end(owner):
                return accessors
            if self.peek().kind == "eof" or (self.at_word("end") and self.peek(1).word in self._open[:-1]):
                self._error_line(f"expected 'End {owner.title()}'")
                return accessors
            self._skip_attributes()
            start = self.peek()
            while self.peek().word in MODIFIERS:
                self.advance()
            word = self.peek().word
            if word not in ("get", "set", "addhandler", "removehandler", "raiseevent"):
                accessors.append(self._error_line("expected an accessor"))
                continue
            self.advance()
            parameters = self._parse_parameters() if self.at_op("(") else []
            self.skip_to_eol()
            body = self._parse_body(word)
            accessors.append(self._node("accessor", start, value=word, children=body,
                                        owner=name, owner_type=type_name, parameters=parameters))

    def _parse_event(self, start: Token, modifiers: set) -> ASTNode:
        self.advance()
        name = self.expect_name().text
        type_name = None
        if self.at_op("("):
            self._skip_balanced()
        if self.accept_word("as"):
            type_name = self._parse_type()
        self.skip_to_eol()
        children: List[ASTNode] = []
        if "custom" in modifiers:
            self._open.append("event")
            try:
                children = self._parse_accessors("event", name, type_name)
            finally:
                self._open.pop()
        return self._node("event", start, value=name, children=children, type_name=type_name)

    def _parse_parameters(self) -> List[Tuple[str, Optional[str]]]:
        self.expect_op("(")
        parameters: List[Tuple[str, Optional[str]]] = []
        self.skip_newlines()
        if self.accept_op(")"):
            return parameters
        while True:
            self.skip_newlines()
            self._skip_attributes()
            while self.peek().word in ("optional", "byval", "byref", "paramarray"):
                self.advance()
            name = self.expect_name().text
            array = False
            if self.at_op("(") and self.peek(1).kind == "op" and self.peek(1).text == ")":
                self.advance()
                self.advance()
                array = True
            self.accept_op("?")
            type_name = None
            if self.accept_word("as"):
                type_name = self._parse_type()
                if array:
                    type_name += "()"
            if self.accept_op("="):
                self.parse_expression()
            parameters.append((name, type_name))
            self.skip_newlines()
            if self.accept_op(","):
                continue
            self.expect_op(")")
            return parameters

    def _parse_type(self, allow_array: bool = True) -> str:
        self._skip_attributes()
        text = self._parse_dotted_name()
        if self.at_op("(") and self.peek(1).word == "of":
            self.advance()
            self.advance()
            arguments = [self._parse_type()]
            while self.accept_op(","):
                arguments.append(self._parse_type())
            self.expect_op(")")
            text += "(Of " + ", ".join(arguments) + ")"
        if allow_array:
            while self.at_op("(") and self._is_rank_specifier():
                self._skip_balanced()
                text += "()"
        self.accept_op("?")
        return text

    def _is_rank_specifier(self) -> bool:
        offset = 1
        while self.peek(offset).kind == "op" and self.peek(offset).text == ",":
            offset += 1
        token = self.peek(offset)
        return token.kind == "op" and token.text == ")"

    def _parse_declarators(self) -> Tuple[List[dict], List[ASTNode]]:
        """
        Parse ``a, b As T = expr, c As New T(args)``.

        An ``As`` clause applies to every name since the previous one.
        """
        declarators: List[dict] = []
        children: List[ASTNode] = []
        pending: List[Tuple[str, bool]] = []
        while True:
            name = self.expect_name().text
            array = False
            if self.at_op("("):
                self._skip_balanced()
                array = True
            self.accept_op("?")
            pending.append((name, array))
            if self.accept_op(","):
                continue
            type_name = None
            creation = None
            initializer = None
            if self.accept_word("as"):
                if self.at_word("new"):
                    creation = self._parse_postfix(self._parse_new())
                    type_name = creation.attributes.get("type_name")
                else:
                    type_name = self._parse_type()
            if self.accept_op("="):
                self.skip_newlines()
                initializer = self.parse_expression()
            for declared, is_array in pending:
                declared_type = type_name
                if is_array and type_name:
                    declared_type = type_name + "()"
                declarators.append({
                    "name": declared,
                    "type": declared_type,
                    "initializer": initializer if len(pending) == 1 else None,
                })
            pending = []
            children.extend(node for node in (creation, initializer) if node is not None)
            if self.accept_op(","):
                continue
            return declarators, children

    # -- statements ------------------------------------------------------

    def _parse_body(self, kind: str) -> List[ASTNode]:
        """Parse statements up to and including ``End <kind>``."""
        self._open.append(kind)
        try:
            statements: List[ASTNode] = []
            while True:
                statements.extend(self.parse_block({"end"}))
                if self._accept_end(kind):
                    return statements
                if self._at_outer_end():
                    self._error_line(f"expected 'End {kind.title()}'")
                    return statements
                statements.append(self._error_line(f"unexpected '{self.peek().text}'"))
        finally:
            self._open.pop()

    def parse_block(self, stops: set) -> List[ASTNode]:
        statements: List[ASTNode] = []
        while True:
            self.skip_newlines()
            token = self.peek()
            if token.kind == "eof" or token.word in stops:
                return statements
            if token.word in BLOCK_TERMINATORS:
                statements.append(self._error_line(f"unexpected '{token.text}'"))
                continue
            try:
                statement = self._parse_statement()
            except _ParseFailure as exc:
                statements.append(self._error_line(str(exc)))
                continue
            if statement is not None:
                statements.append(statement)
            if not self.at_statement_end():
                statements.append(self._error_line("unexpected tokens after statement"))

    def _block(self, start: Token, statements: List[ASTNode]) -> ASTNode:
        return self._node("block", start, children=statements)

    def _parse_statement(self) -> Optional[ASTNode]:
        start = self.peek()
        word = start.word
        if word in ("dim", "const", "static"):
            while self.peek().word in ("dim", "const", "static"):
                self.advance()
            declarators, children = self._parse_declarators()
            return self._node("local_declaration", start, children=children, declarators=declarators)
        handler = self._statement_handlers().get(word)
        if handler is not None:
            return handler(start)
        if word in ("exit", "continue", "goto", "stop", "resume", "on", "error", "end"):
            self.skip_to_eol()
            return self._node("jump", start, value=word)
        if word in ("return", "throw", "yield"):
            self.advance()
            value = None if self.at_statement_end() or self.at_word("else") else self.parse_expression()
            return self._node(word, start, children=[value])
        if word in ("call", "raiseevent"):
            self.advance()
            return self._node("expression_statement", start, children=[self.parse_expression()])
        if word in ("addhandler", "removehandler"):
            self.advance()
            event = self.parse_expression()
            self.expect_op(",")
            handler_expr = self.parse_expression()
            return self._node("expression_statement", start, children=[event, handler_expr])
        if word in ("redim", "erase"):
            self.advance()
            self.accept_word("preserve")
            targets = [self.parse_expression()]
            while self.accept_op(","):
                targets.append(self.parse_expression())
            return self._node("expression_statement", start, children=targets)
        target = self.parse_expression(allow_equals=False)
        if self.peek().kind == "op" and self.peek().text in ASSIGNMENT_OPS:
            self.advance()
            self.skip_newlines()
            value = self.parse_expression()
            return self._node("assignment", start, children=[target, value])
        return self._node("expression_statement", start, children=[target])

    def _statement_handlers(self) -> dict:
        return {
            "if": self._parse_if,
            "try": self._parse_try,
            "for": self._parse_for,
            "while": self._parse_while,
            "do": self._parse_do,
            "using": self._parse_using,
            "with": self._parse_simple_block,
            "synclock": self._parse_simple_block,
            "select": self._parse_select,
        }

    def _parse_if(self, start: Token) -> ASTNode:
        self.advance()
        children = [self.parse_expression()]
        self.accept_word("then")
        if not self.at_statement_end():
            # single-line If
            children.append(self._parse_statement())
            if self.accept_word("else"):
                children.append(self._parse_statement())
            return self._node("if", start, children=children)
        self._open.append("if")
        try:
            clause = start
            while True:
                statements = self.parse_block({"end", "else", "elseif", "endif"})
                children.append(self._block(clause, statements))
                clause = self.peek()
                if self.at_word("elseif") or (self.at_word("else") and self.peek(1).word == "if"):
                    if self.advance().word == "else":
                        self.advance()
                    children.append(self.parse_expression())
                    self.accept_word("then")
                    continue
                if self.accept_word("else"):
                    continue
                if self._accept_end("if") or self.accept_word("endif"):
                    break
                self._error_line("expected 'End If'")
                break
        finally:
            self._open.pop()
        return self._node("if", start, children=children)

    def _parse_try(self, start: Token) -> ASTNode:
        self.advance()
        stops = {"catch", "finally", "end"}
        self._open.append("try")
        try:
            children = [self._block(start, self.parse_block(stops))]
            while True:
                clause = self.peek()
                if self.accept_word("catch"):
                    variable = None
                    type_name = None
                    clause_children: List[ASTNode] = []
                    if self.peek().kind == "name" and not self.at_word("when"):
                        variable = self.expect_name().text
                        if self.accept_word("as"):
                            type_name = self._parse_type()
                    if self.accept_word("when"):
                        clause_children.append(self.parse_expression())
                    clause_children.append(self._block(clause, self.parse_block(stops)))
                    children.append(self._node("catch", clause, children=clause_children,
                                               variable=variable, type_name=type_name))
                elif self.accept_word("finally"):
                    block = self._block(clause, self.parse_block(stops))
                    children.append(self._node("finally", clause, children=[block]))
                elif self._accept_end("try"):
                    break
                else:
                    self._error_line("expected 'End Try'")
                    break
        finally:
            self._open.pop()
        return self._node("try", start, children=children)

    def _parse_loop_body(self, closer: Callable[[], bool]) -> List[ASTNode]:
        statements: List[ASTNode] = []
        while True:
            statements.extend(self.parse_block({"end", "next", "loop", "wend"}))
            if closer():
                return statements
            if self._at_outer_end() or self.at_word("end"):
                self._error_line("unterminated loop")
                return statements
            statements.append(self._error_line(f"unexpected '{self.peek().text}'"))

    def _close_next(self) -> bool:
        if not self.accept_word("next"):
            return False
        self.skip_to_eol()
        return True

    def _parse_for(self, start: Token) -> ASTNode:
        self.advance()
        each = bool(self.accept_word("each"))
        variable = self.expect_name().text
        type_name = None
        if self.accept_word("as"):
            type_name = self._parse_type()
        header: List[ASTNode] = []
        if each:
            self.expect_word("in")
            header.append(self.parse_expression())
        else:
            self.expect_op("=")
            header.append(self.parse_expression())
            self.expect_word("to")
            header.append(self.parse_expression())
            if self.accept_word("step"):
                header.append(self.parse_expression())
        self._open.append("for")
        try:
            body = self._parse_loop_body(self._close_next)
        finally:
            self._open.pop()
        return self._node("for_each" if each else "for", start,
                          children=header + [self._block(start, body)],
                          variable=variable, type_name=type_name)

    def _parse_while(self, start: Token) -> ASTNode:
        self.advance()
        condition = self.parse_expression()

        def close() -> bool:
            return self._accept_end("while") or bool(self.accept_word("wend"))

        self._open.append("while")
        try:
            body = self._parse_loop_body(close)
        finally:
            self._open.pop()
        return self._node("while", start, children=[condition, self._block(start, body)])

    def _parse_do(self, start: Token) -> ASTNode:
        self.advance()
        children: List[ASTNode] = []
        if self.accept_word("while") or self.accept_word("until"):
            children.append(self.parse_expression())

        def close() -> bool:
            if not self.accept_word("loop"):
                return False
            if self.accept_word("while") or self.accept_word("until"):
                children.append(self.parse_expression())
            return True

        self._open.append("do")
        try:
            body = self._parse_loop_body(close)
        finally:
            self._open.pop()
        return self._node("do", start, children=[self._block(start, body)] + children)

    def _parse_using(self, start: Token) -> ASTNode:
        self.advance()
        declarators: List[dict] = []
        following = self.peek(1)
        if self.peek().kind == "name" and (
                following.word == "as" or (following.kind == "op" and following.text == "=")):
            declarators, header = self._parse_declarators()
        else:
            header = [self.parse_expression()]
        body = self._parse_body("using")
        return self._node("using", start, children=header + [self._block(start, body)],
                          declarators=declarators)

    def _parse_simple_block(self, start: Token) -> ASTNode:
        kind = self.advance().word
        header = self.parse_expression()
        body = self._parse_body(kind)
        return self._node(kind, start, children=[header, self._block(start, body)])

    def _parse_select(self, start: Token) -> ASTNode:
        self.advance()
        self.accept_word("case")
        children = [self.parse_expression()]
        self._open.append("select")
        try:
            while True:
                self.skip_newlines()
                clause = self.peek()
                if self.accept_word("case"):
                    # Case labels hold constants only
                    self.skip_to_eol()
                    statements = self.parse_block({"case", "end"})
                    children.append(self._node("case", clause, children=[self._block(clause, statements)]))
                    continue
                if self._accept_end("select"):
                    break
                if self._at_outer_end():
                    self._error_line("expected 'End Select'")
                    break
                children.append(self._error_line(f"unexpected '{clause.text}'"))
        finally:
            self._open.pop()
        return self._node("select", start, children=children)

    # -- expressions -----------------------------------------------------

    def parse_expression(self, allow_equals: bool = True) -> ASTNode:
        left = self._parse_unary()
        while True:
            token = self.peek()
            is_binary = (token.kind == "op" and token.text in BINARY_OPS) or token.word in BINARY_WORDS
            if not is_binary or (not allow_equals and token.kind == "op" and token.text == "="):
                return left
            self.advance()
            self.skip_newlines()
            right = self._parse_unary()
            left = ASTNode(
                type="binary",
                value=token.text,
                start_line=left.start_line,
                start_column=left.start_column,
                end_line=right.end_line,
                end_column=right.end_column,
                children=[left, right],
            )

    def _parse_unary(self) -> ASTNode:
        start = self.peek()
        if start.word in ("not", "addressof", "await") or (start.kind == "op" and start.text in ("-", "+")):
            self.advance()
            operand = self._parse_unary()
            return self._node(start.word or start.text, start, children=[operand])
        if start.word == "typeof":
            self.advance()
            operand = self._parse_postfix(self._parse_primary())
            if not (self.accept_word("is") or self.accept_word("isnot")):
                raise _ParseFailure("expected 'Is' after TypeOf", self.peek())
            type_name = self._parse_type()
            return self._node("typeof", start, children=[operand], type_name=type_name)
        return self._parse_postfix(self._parse_primary())

    def _parse_primary(self) -> ASTNode:
        start = self.peek()
        word = start.word
        if start.kind == "string":
            self.advance()
            return self._node("literal", start, value=start.text, literal_type="System.String")
        if start.kind == "char":
            self.advance()
            return self._node("literal", start, value=start.text, literal_type="System.Char")
        if start.kind == "date":
            self.advance()
            return self._node("literal", start, value=start.text, literal_type="System.DateTime")
        if start.kind == "number":
            self.advance()
            return self._node("literal", start, value=start.text, literal_type=_number_type(start.text))
        if word in ("true", "false"):
            self.advance()
            return self._node("literal", start, value=start.text, literal_type="System.Boolean")
        if word == "nothing":
            self.advance()
            return self._node("literal", start, value=start.text, literal_type=None)
        if word in ("me", "myclass", "mybase"):
            self.advance()
            return self._node("me", start, value=start.text)
        if word == "new":
            return self._parse_new()
        if word in ("sub", "function") or (word in ("async", "iterator") and self.peek(1).word in ("sub", "function")):
            return self._parse_lambda(start)
        if word in CASTS or word in CONVERSIONS or word == "gettype" or (
                word == "if" and self.peek(1).kind == "op" and self.peek(1).text == "("):
            return self._parse_intrinsic(start)
        if start.kind == "op" and start.text == "(":
            self.advance()
            self.skip_newlines()
            inner = self.parse_expression()
            self.skip_newlines()
            self.expect_op(")")
            return self._node("parenthesized", start, children=[inner])
        if start.kind == "op" and start.text == "{":
            items = self._parse_braced_list()
            return self._node("array_literal", start, children=items)
        if start.kind == "op" and start.text in (".", "!"):
            # member access on the With target
            self.advance()
            name = self.expect_name().text
            return self._node("member_access", start, value=name, target=None, qualified=None)
        if start.kind == "name" and (start.escaped or word not in RESERVED):
            self.advance()
            return self._node("name", start, value=start.text)
        raise _ParseFailure(f"unexpected '{start.text}' in expression", start)

    def _parse_postfix(self, expression: ASTNode) -> ASTNode:
        start = Token("name", "", expression.start_line, expression.start_column,
                      expression.start_line, expression.start_column)
        while True:
            if self.at_op(".", "?.", "!") and (self.peek().text != "!" or self.peek(1).kind == "name"):
                self.advance()
                self.skip_newlines()
                name = self.expect_name().text
                qualified = None
                if expression.type == "name" or (expression.type == "member_access"
                                                 and expression.attributes.get("qualified")):
                    prefix = expression.value if expression.type == "name" else expression.attributes["qualified"]
                    qualified = f"{prefix}.{name}"
                expression = self._node("member_access", start, value=name, children=[expression],
                                        target=expression, qualified=qualified)
                continue
            if self.at_op("("):
                if self.peek(1).word == "of":
                    self._skip_balanced()
                    continue
                arguments = self._parse_arguments()
                expression = self._node("invocation", start,
                                        children=[expression] + [a for a in arguments if a is not None],
                                        target=expression, arguments=arguments)
                continue
            return expression

    def _parse_arguments(self) -> List[Optional[ASTNode]]:
        self.expect_op("(")
        arguments: List[Optional[ASTNode]] = []
        self.skip_newlines()
        if self.accept_op(")"):
            return arguments
        while True:
            self.skip_newlines()
            if self.at_op(",", ")"):
                arguments.append(None)
            else:
                if self.peek().kind == "name" and self.peek(1).kind == "op" and self.peek(1).text == ":=":
                    self.advance()
                    self.advance()
                    self.skip_newlines()
                arguments.append(self.parse_expression())
                self.skip_newlines()
            if self.accept_op(","):
                continue
            self.expect_op(")")
            return arguments

    def _parse_braced_list(self) -> List[ASTNode]:
        self.expect_op("{")
        items: List[ASTNode] = []
        self.skip_newlines()
        if self.accept_op("}"):
            return items
        while True:
            self.skip_newlines()
            items.append(self.parse_expression())
            self.skip_newlines()
            if self.accept_op(","):
                continue
            self.expect_op("}")
            return items

    def _parse_member_initializers(self) -> List[ASTNode]:
        self.expect_op("{")
        values: List[ASTNode] = []
        while True:
            self.skip_newlines()
            self.accept_word("key")
            self.expect_op(".")
            self.expect_name()
            self.expect_op("=")
            self.skip_newlines()
            values.append(self.parse_expression())
            self.skip_newlines()
            if self.accept_op(","):
                continue
            self.expect_op("}")
            return values

    def _parse_new(self) -> ASTNode:
        start = self.expect_word("new")
        if self.accept_word("with"):
            # anonymous type: nothing to name
            values = self._parse_member_initializers()
            return self._node("object_creation", start, children=values, type_name=None, arguments=[])
        type_name = self._parse_type(allow_array=False)
        arguments: List[Optional[ASTNode]] = []
        if self.at_op("("):
            arguments = self._parse_arguments()
        children = [a for a in arguments if a is not None]
        if self.at_op("{"):
            items = self._parse_braced_list()
            return self._node("array_creation", start, value=type_name, children=children + items,
                              type_name=type_name + "()")
        # the construction's own span ends at its argument list
        creation_end = self._last
        if self.accept_word("with"):
            children.extend(self._parse_member_initializers())
        elif self.accept_word("from"):
            children.extend(self._parse_braced_list())
        node = self._node("object_creation", start, value=type_name, children=children,
                          type_name=type_name, arguments=arguments)
        node.end_line, node.end_column = creation_end.end_line, creation_end.end_column
        return node

    def _parse_lambda(self, start: Token) -> ASTNode:
        modifiers = []
        while self.peek().word in ("async", "iterator"):
            modifiers.append(self.advance().word)
        kind = self.advance().word
        parameters = self._parse_parameters() if self.at_op("(") else []
        return_type = None
        if self.accept_word("as"):
            return_type = self._parse_type()
        if self.at_statement_end():
            body = self._parse_body(kind)
            multiline = True
        else:
            body = [self.parse_expression() if kind == "function" else self._parse_statement()]
            multiline = False
        return self._node("lambda", start, children=body, kind=kind, parameters=parameters,
                          return_type=return_type, multiline=multiline, modifiers=modifiers)

    def _parse_intrinsic(self, start: Token) -> ASTNode:
        word = self.advance().word
        self.expect_op("(")
        self.skip_newlines()
        if word == "gettype":
            self._parse_type()
            self.skip_newlines()
            self.expect_op(")")
            return self._node("conversion", start, type_name="System.Type")
        operands = [self.parse_expression()]
        self.skip_newlines()
        if word in CASTS:
            self.expect_op(",")
            self.skip_newlines()
            type_name = self._parse_type()
            self.skip_newlines()
            self.expect_op(")")
            return self._node("conversion", start, children=operands, type_name=type_name)
        if word in CONVERSIONS:
            self.expect_op(")")
            return self._node("conversion", start, children=operands, type_name=CONVERSIONS[word])
        # If(condition, a, b) / If(a, b)
        while self.accept_op(","):
            self.skip_newlines()
            operands.append(self.parse_expression())
            self.skip_newlines()
        self.expect_op(")")
        result = operands[1] if len(operands) == 3 else operands[0]
        return self._node("ternary", start, children=operands, result=result)


def _number_type(text: str) -> str:
    lowered = text.lower()
    if lowered.startswith("&"):
        return "System.Int64" if lowered.endswith(("l", "&")) else "System.Int32"
    if lowered.endswith(("f", "!")):
        return "System.Single"
    if lowered.endswith(("d", "@")):
        return "System.Decimal"
    if lowered.endswith(("r", "#")) or "." in lowered or "e" in lowered:
        return "System.Double"
    if lowered.endswith(("l", "&")):
        return "System.Int64"
    if lowered.endswith("s"):
        return "System.Int16"
    return "System.Int32"


def parse_vbnet(source: str, path: str = "<unknown>") -> ParsedFile:
    """Parse Visual Basic source and collect its imports and declared types."""
    parser = VisualBasicParser(source, path)
    root = parser.parse()
    type_system = TypeSystem(keyword_types=VB_KEYWORD_TYPES, ignore_case=True)
    parsed = ParsedFile(path=path, language="vbnet", source=source, root=root,
                        type_system=type_system, errors=list(parser.errors))
    _collect_declarations(root, type_system)
    return parsed


def _collect_declarations(root: ASTNode, types: TypeSystem) -> None:
    pending_bases = []

    def visit(node: ASTNode, namespace: str) -> None:
        if node.type == "imports" and node.value:
            types.add_import(node.value)
            return
        if node.type == "namespace":
            namespace = f"{namespace}.{node.value}" if namespace else node.value
            types.add_import(namespace)
        elif node.type in TYPE_BLOCKS or node.type == "enum":
            full_name = f"{namespace}.{node.value}" if namespace else node.value
            types.declare_type(full_name, is_enum=node.type == "enum")
            if node.attributes.get("base"):
                pending_bases.append((full_name, node.attributes["base"]))
            namespace = full_name
        else:
            return
        for child in node.children:
            visit(child, namespace)

    for child in root.children:
        visit(child, "")
    for full_name, base in pending_bases:
        types.set_base(full_name, types.resolve(base).full_name)
