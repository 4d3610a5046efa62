"""Sandboxed evaluation of parsed expressions over a fixed set of values."""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from modal_keys.errors import EvaluationError
from modal_keys.host.types import Position, Range, Selection
from modal_keys.runtime import telemetry
from modal_keys.runtime.reporting import ErrorQueue, Notifier

from .parser import (
    Binary,
    Conditional,
    Index,
    Literal,
    Logical,
    Member,
    Name,
    Node,
    Unary,
    parse,
)

_READABLE_TYPES = (Position, Range, Selection)
_KEY_SEGMENT = re.compile(r"\{([^{}]*?key[^{}]*?)\}")


def truthy(value: Any) -> bool:
    """JavaScript truthiness: ``None``, ``False``, ``0``, ``NaN`` and ``""`` are falsy."""

    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def to_text(value: Any) -> str:
    if value is None:
        return "undefined"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _number(value: Any, source: str) -> float | int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value) if value.strip() else 0
        except ValueError:
            return math.nan
    if value is None:
        return math.nan
    raise EvaluationError(f"cannot use {type(value).__name__} as a number", source=source)


def _tidy(value: float | int) -> float | int:
    if isinstance(value, float) and value.is_integer() and abs(value) < 2**53:
        return int(value)
    return value


class _Interpreter:
    def __init__(self, source: str, values: Mapping[str, Any], *, strict: bool) -> None:
        self.source = source
        self.values = values
        self.strict = strict

    def fail(self, message: str) -> EvaluationError:
        return EvaluationError(f"{message} in `{self.source}`", source=self.source)

    def run(self, node: Node) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Name):
            return self.lookup(node.name)
        if isinstance(node, Member):
            return self.member(self.run(node.target), node.name)
        if isinstance(node, Index):
            return self.index(self.run(node.target), self.run(node.index))
        if isinstance(node, Unary):
            return self.unary(node.op, self.run(node.operand))
        if isinstance(node, Logical):
            return self.logical(node)
        if isinstance(node, Conditional):
            branch = node.then if truthy(self.run(node.test)) else node.otherwise
            return self.run(branch)
        if isinstance(node, Binary):
            return self.binary(node.op, self.run(node.left), self.run(node.right))
        raise self.fail(f"unsupported node {type(node).__name__}")  # pragma: no cover

    def lookup(self, name: str) -> Any:
        if name in self.values:
            return self.values[name]
        alias = name.lstrip("_")
        if alias != name and alias in self.values:
            return self.values[alias]
        if self.strict:
            raise self.fail(f"undefined identifier '{name}'")
        return None

    def member(self, target: Any, name: str) -> Any:
        if target is None:
            if self.strict:
                raise self.fail(f"cannot read property '{name}' of undefined")
            return None
        if isinstance(target, Mapping):
            return target.get(name)
        if name == "length" and isinstance(target, (str, list, tuple)):
            return len(target)
        if isinstance(target, _READABLE_TYPES) and not name.startswith("_"):
            return getattr(target, name, None)
        return None

    def index(self, target: Any, key: Any) -> Any:
        if target is None:
            if self.strict:
                raise self.fail("cannot index undefined")
            return None
        if isinstance(target, Mapping):
            return target.get(key if isinstance(key, str) else to_text(key))
        if isinstance(target, (str, list, tuple)):
            if isinstance(key, str):
                return self.member(target, key)
            if isinstance(key, (int, float)) and float(key).is_integer():
                position = int(key)
                if 0 <= position < len(target):
                    return target[position]
            return None
        if isinstance(key, str):
            return self.member(target, key)
        return None

    def unary(self, op: str, value: Any) -> Any:
        if op == "!":
            return not truthy(value)
        number = _number(value, self.source)
        return _tidy(-number if op == "-" else +number)

    def logical(self, node: Logical) -> Any:
        result: Any = None
        for operand in node.operands:
            result = self.run(operand)
            if node.op == "&&" and not truthy(result):
                return result
            if node.op == "||" and truthy(result):
                return result
        return result

    def binary(self, op: str, left: Any, right: Any) -> Any:
        if op in ("==", "==="):
            return self.equal(left, right)
        if op in ("!=", "!=="):
            return not self.equal(left, right)
        if op == "+" and (isinstance(left, str) or isinstance(right, str)):
            return to_text(left) + to_text(right)
        if op in ("<", "<=", ">", ">="):
            return self.compare(op, left, right)
        a = _number(left, self.source)
        b = _number(right, self.source)
        if op == "+":
            return _tidy(a + b)
        if op == "-":
            return _tidy(a - b)
        if op == "*":
            return _tidy(a * b)
        if b == 0:
            if op == "/" and a != 0 and not math.isnan(a):
                return math.copysign(math.inf, a) * math.copysign(1, b)
            return math.nan
        if op == "/":
            return _tidy(a / b)
        return _tidy(math.fmod(a, b))

    @staticmethod
    def equal(left: Any, right: Any) -> bool:
        if isinstance(left, bool) != isinstance(right, bool):
            return False
        return left == right

    def compare(self, op: str, left: Any, right: Any) -> bool:
        if not (isinstance(left, str) and isinstance(right, str)):
            left = _number(left, self.source)
            right = _number(right, self.source)
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right


def evaluate(node: Node, values: Mapping[str, Any], *, source: str = "", strict: bool = True) -> Any:
    """Evaluate an already parsed ``node`` against ``values``."""

    return _Interpreter(source, values, strict=strict).run(node)


class EvalContext:
    """Compile-once cache plus a capped queue of evaluation failures."""

    def __init__(
        self, *, error_limit: int = 3, logger_name: str | None = "modal_keys.expressions"
    ) -> None:
        self._cache: Dict[str, Node] = {}
        self.errors = ErrorQueue(error_limit)
        self._logger_name = logger_name

    def compile(self, source: str) -> Node:
        node = self._cache.get(source)
        if node is None:
            node = parse(source)
            self._cache[source] = node
        return node

    def __contains__(self, source: str) -> bool:
        return source in self._cache

    def evaluate(self, source: str, values: Mapping[str, Any], *, strict: bool = True) -> Any:
        """Evaluate ``source``, raising :class:`EvaluationError` on failure."""

        node = self.compile(source)
        try:
            return evaluate(node, values, source=source, strict=strict)
        except EvaluationError:
            raise
        except (TypeError, ValueError, ArithmeticError) as exc:
            raise EvaluationError(f"{exc} in `{source}`", source=source) from exc

    def eval_str(self, source: str, values: Mapping[str, Any], *, strict: bool = True) -> Any:
        """Evaluate ``source``; failures are queued and yield ``None``."""

        try:
            return self.evaluate(source, values, strict=strict)
        except EvaluationError as exc:
            self.errors.push(str(exc))
            telemetry.log(
                "debug",
                "expressions::error",
                data={"source": source, "error": str(exc)},
                logger_name=self._logger_name,
            )
            return None

    def eval_expressions_in_string(self, text: str, values: Mapping[str, Any]) -> str:
        """Replace each ``{...key...}`` segment of ``text`` with its value.

        Segments that fail to evaluate are queued and left verbatim.
        """

        def substitute(match: re.Match[str]) -> str:
            result = self.eval_str(match.group(1), values)
            if result is None:
                return match.group(0)
            return to_text(result)

        return _KEY_SEGMENT.sub(substitute, text)

    def report_errors(self, notifier: Notifier) -> list[str]:
        return self.errors.report(notifier)


def reify_strings(obj: Any, transform: Callable[[str], Any]) -> Any:
    """Apply ``transform`` to every string nested inside ``obj``."""

    if isinstance(obj, str):
        return transform(obj)
    if isinstance(obj, Mapping):
        return {key: reify_strings(value, transform) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [reify_strings(value, transform) for value in obj]
    return obj


def expression_values(
    *,
    view: Any = None,
    mode: str,
    count: Optional[int],
    captured: Optional[str],
    prefix: str = "",
    extra: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the fixed variable set exposed to runtime expressions."""

    values: Dict[str, Any] = {
        "file": None,
        "line": None,
        "col": None,
        "char": None,
        "language": None,
        "selection": None,
        "selections": (),
        "selectionstr": None,
        "wordstr": None,
        "mode": mode,
        "count": count,
        "captured": captured,
        "prefix": prefix,
    }
    if view is not None:
        selections: Sequence[Selection] = tuple(view.selections)
        primary = selections[0]
        active = primary.active
        line_text = view.line_at(active.line)
        word = view.word_range_at(active)
        values.update(
            file=view.file_name,
            line=active.line,
            col=active.character,
            char=line_text[active.character : active.character + 1],
            language=view.language_id,
            selection=primary,
            selections=selections,
            selectionstr=view.get_text(primary.as_range()),
            wordstr=view.get_text(word) if word is not None else "",
        )
    if extra:
        values.update(extra)
    return values


__all__ = [
    "EvalContext",
    "evaluate",
    "expression_values",
    "reify_strings",
    "to_text",
    "truthy",
]
