"""Tokenizer and recursive-descent parser for the binding expression language.

The grammar is a pure subset of JavaScript expressions: literals, names,
member/index access, unary ``! - +``, arithmetic, comparison, ``&&``/``||``,
and the ``?:`` conditional. Calls and assignments are rejected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator, List, Union

from modal_keys.errors import EvaluationError


class ExpressionSyntaxError(EvaluationError):
    """Raised when an expression cannot be parsed."""

    def __init__(self, message: str, *, source: str, offset: int | None = None) -> None:
        where = f" at offset {offset}" if offset is not None else ""
        super().__init__(f"{message}{where} in `{source}`", source=source)
        self.offset = offset


class AssignmentError(ExpressionSyntaxError):
    """Raised when an expression tries to assign a value."""

    def __init__(self, *, source: str, offset: int | None = None) -> None:
        super().__init__("expressions may not set values", source=source, offset=offset)


@dataclass(frozen=True, slots=True)
class Literal:
    value: Any


@dataclass(frozen=True, slots=True)
class Name:
    name: str


@dataclass(frozen=True, slots=True)
class Member:
    target: "Node"
    name: str


@dataclass(frozen=True, slots=True)
class Index:
    target: "Node"
    index: "Node"


@dataclass(frozen=True, slots=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True, slots=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True, slots=True)
class Logical:
    """N-ary ``&&`` / ``||`` chain."""

    op: str
    operands: tuple["Node", ...]


@dataclass(frozen=True, slots=True)
class Conditional:
    test: "Node"
    then: "Node"
    otherwise: "Node"


Node = Union[Literal, Name, Member, Index, Unary, Binary, Logical, Conditional]


@dataclass(frozen=True, slots=True)
class Token:
    kind: str
    value: Any
    offset: int


_TOKEN = re.compile(
    r"""
    (?P<space>\s+)
  | (?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<assign>\+\+|--|[-+*/%]=|=(?![=~]))
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[!<>+\-*/%?:.\[\](),])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}
_KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None}


def _unescape(body: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def tokenize(source: str) -> Iterator[Token]:
    position = 0
    while position < len(source):
        match = _TOKEN.match(source, position)
        if match is None:
            raise ExpressionSyntaxError(
                f"unexpected character {source[position]!r}",
                source=source,
                offset=position,
            )
        kind = match.lastgroup or ""
        text = match.group()
        if kind == "assign":
            raise AssignmentError(source=source, offset=position)
        if kind == "number":
            value: Any = float(text) if any(c in text for c in ".eE") else int(text)
            yield Token("number", value, position)
        elif kind == "string":
            yield Token("string", _unescape(text[1:-1]), position)
        elif kind in {"name", "op"}:
            yield Token(kind, text, position)
        position = match.end()
    yield Token("eof", None, len(source))


_EQUALITY = ("==", "!=", "===", "!==")
_RELATIONAL = ("<", "<=", ">", ">=")


class Parser:
    """Precedence-climbing parser producing :data:`Node` trees."""

    def __init__(self, source: str) -> None:
        self.source = source
        self._tokens: List[Token] = list(tokenize(source))
        self._index = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _accept(self, *ops: str) -> Token | None:
        token = self._current
        if token.kind == "op" and token.value in ops:
            return self._advance()
        return None

    def _expect(self, op: str) -> Token:
        token = self._accept(op)
        if token is None:
            raise self._error(f"expected '{op}'")
        return token

    def _error(self, message: str) -> ExpressionSyntaxError:
        token = self._current
        found = "end of input" if token.kind == "eof" else repr(token.value)
        return ExpressionSyntaxError(
            f"{message}, found {found}", source=self.source, offset=token.offset
        )

    def parse(self) -> Node:
        if self._current.kind == "eof":
            raise self._error("empty expression")
        node = self._conditional()
        if self._current.kind != "eof":
            raise self._error("unexpected token")
        return node

    def _conditional(self) -> Node:
        test = self._logical("||", self._and)
        if self._accept("?"):
            then = self._conditional()
            self._expect(":")
            otherwise = self._conditional()
            return Conditional(test, then, otherwise)
        return test

    def _and(self) -> Node:
        return self._logical("&&", self._equality)

    def _logical(self, op: str, operand) -> Node:
        operands = [operand()]
        while self._accept(op):
            operands.append(operand())
        if len(operands) == 1:
            return operands[0]
        return Logical(op, tuple(operands))

    def _binary(self, ops: tuple[str, ...], operand) -> Node:
        node = operand()
        while True:
            token = self._accept(*ops)
            if token is None:
                return node
            node = Binary(token.value, node, operand())

    def _equality(self) -> Node:
        return self._binary(_EQUALITY, self._relational)

    def _relational(self) -> Node:
        return self._binary(_RELATIONAL, self._additive)

    def _additive(self) -> Node:
        return self._binary(("+", "-"), self._multiplicative)

    def _multiplicative(self) -> Node:
        return self._binary(("*", "/", "%"), self._unary)

    def _unary(self) -> Node:
        token = self._accept("!", "-", "+")
        if token is not None:
            return Unary(token.value, self._unary())
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while True:
            if self._accept("."):
                token = self._advance()
                if token.kind != "name":
                    self._index -= 1
                    raise self._error("expected property name")
                node = Member(node, token.value)
            elif self._accept("["):
                index = self._conditional()
                self._expect("]")
                node = Index(node, index)
            elif self._current.kind == "op" and self._current.value == "(":
                raise self._error("function calls are not allowed")
            else:
                return node

    def _primary(self) -> Node:
        token = self._current
        if token.kind in {"number", "string"}:
            self._advance()
            return Literal(token.value)
        if token.kind == "name":
            self._advance()
            if token.value in _KEYWORDS:
                return Literal(_KEYWORDS[token.value])
            return Name(token.value)
        if self._accept("("):
            node = self._conditional()
            self._expect(")")
            return node
        raise self._error("expected a value")


def parse(source: str) -> Node:
    """Parse ``source`` into an expression tree."""

    return Parser(source).parse()


def _sort_key(node: Node) -> str:
    return repr(node)


def normalize(node: Node) -> Node:
    """Canonical form used for structural hashing of when-clauses.

    Nested chains of the same logical operator are flattened and their
    operands sorted and deduplicated, so ``a && b`` and ``b && a`` compare
    equal. The result is only meant for comparison, never for evaluation.
    """

    if isinstance(node, Logical):
        flattened: list[Node] = []
        for operand in node.operands:
            child = normalize(operand)
            if isinstance(child, Logical) and child.op == node.op:
                flattened.extend(child.operands)
            else:
                flattened.append(child)
        unique = {_sort_key(child): child for child in flattened}
        ordered = tuple(unique[key] for key in sorted(unique))
        if len(ordered) == 1:
            return ordered[0]
        return Logical(node.op, ordered)
    if isinstance(node, Unary):
        return Unary(node.op, normalize(node.operand))
    if isinstance(node, Binary):
        return Binary(node.op, normalize(node.left), normalize(node.right))
    if isinstance(node, Member):
        return Member(normalize(node.target), node.name)
    if isinstance(node, Index):
        return Index(normalize(node.target), normalize(node.index))
    if isinstance(node, Conditional):
        return Conditional(
            normalize(node.test), normalize(node.then), normalize(node.otherwise)
        )
    return node


def quote(value: str) -> str:
    """Render ``value`` as a single-quoted string literal."""

    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


__all__ = [
    "ExpressionSyntaxError",
    "AssignmentError",
    "Literal",
    "Name",
    "Member",
    "Index",
    "Unary",
    "Binary",
    "Logical",
    "Conditional",
    "Node",
    "Token",
    "tokenize",
    "Parser",
    "parse",
    "normalize",
    "quote",
]
