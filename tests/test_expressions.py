from __future__ import annotations

import pytest

from modal_keys.buffer import MemoryTextView
from modal_keys.errors import EvaluationError
from modal_keys.expressions import (
    AssignmentError,
    EvalContext,
    ExpressionSyntaxError,
    expression_values,
    normalize,
    parse,
    reify_strings,
    truthy,
)
from modal_keys.host import Position, Selection
from modal_keys.runtime import RecordingNotifier


def make_context(**kwargs) -> EvalContext:
    return EvalContext(**kwargs)


def test_arithmetic_logic_and_conditionals() -> None:
    context = make_context()
    values = {"count": 3, "mode": "normal", "captured": None}

    assert context.evaluate("count * 2 + 1", values) == 7
    assert context.evaluate("mode == 'normal' && count > 2", values) is True
    assert context.evaluate("captured || 'x'", values) == "x"
    assert context.evaluate("count > 5 ? 'big' : 'small'", values) == "small"
    assert context.evaluate("'a' + count", values) == "a3"
    assert context.evaluate("!captured", values) is True
    assert context.evaluate("7 % 4", values) == 3


def test_double_underscore_names_alias_plain_names() -> None:
    context = make_context()
    assert context.evaluate("(__count || 1)", {"count": None}) == 1
    assert context.evaluate("__mode", {"mode": "visual"}) == "visual"


def test_member_and_index_access() -> None:
    context = make_context()
    values = {
        "modalkeys": {"prefix": "g", "mode": "normal"},
        "selection": Selection.cursor(Position(2, 5)),
        "word": "hello",
    }

    assert context.evaluate("modalkeys.prefix == 'g'", values) is True
    assert context.evaluate("modalkeys['mode']", values) == "normal"
    assert context.evaluate("selection.active.line", values) == 2
    assert context.evaluate("word.length", values) == 5
    assert context.evaluate("word[1]", values) == "e"


def test_assignments_are_rejected() -> None:
    for source in ("a = 1", "count += 1", "count++", "x -= 2"):
        with pytest.raises(AssignmentError) as excinfo:
            parse(source)
        assert "expressions may not set values" in str(excinfo.value)


def test_calls_and_garbage_are_syntax_errors() -> None:
    with pytest.raises(ExpressionSyntaxError):
        parse("alert(1)")
    with pytest.raises(ExpressionSyntaxError):
        parse("a &&")
    with pytest.raises(ExpressionSyntaxError):
        parse("")


def test_compile_is_cached_by_source() -> None:
    context = make_context()
    assert "count + 1" not in context
    context.evaluate("count + 1", {"count": 1})
    first = context.compile("count + 1")
    assert "count + 1" in context
    assert context.compile("count + 1") is first


def test_failures_yield_undefined_and_are_capped() -> None:
    context = make_context(error_limit=3)
    notifier = RecordingNotifier()

    for index in range(5):
        assert context.eval_str(f"missing_{index} + 1", {}) is None

    assert len(context.errors) == 3
    assert context.errors.dropped == 2
    surfaced = context.report_errors(notifier)
    assert len(surfaced) == 3
    assert len(notifier.of_level("error")) == 3
    assert not context.errors


def test_strict_and_lenient_lookup() -> None:
    context = make_context()
    with pytest.raises(EvaluationError):
        context.evaluate("unknown.value", {})
    assert context.evaluate("unknown.value", {}, strict=False) is None


def test_truthiness_follows_javascript() -> None:
    assert not truthy(0)
    assert not truthy("")
    assert not truthy(None)
    assert not truthy(float("nan"))
    assert truthy("0")
    assert truthy([])


def test_normalize_sorts_and_flattens_logical_operands() -> None:
    assert normalize(parse("a && b")) == normalize(parse("b && a"))
    assert normalize(parse("(a && b) && c")) == normalize(parse("c && (b && a)"))
    assert normalize(parse("a && a")) == normalize(parse("a"))
    assert normalize(parse("a || b")) != normalize(parse("a && b"))


def test_expressions_in_strings_are_substituted() -> None:
    context = make_context()
    values = {"key": "j", "define": {"mult": 2}}

    assert context.eval_expressions_in_string("move {key}", values) == "move j"
    assert context.eval_expressions_in_string("{key + key}!", values) == "jj!"
    # segments without `key` are not expressions
    assert context.eval_expressions_in_string("{x}", values) == "{x}"
    # failing segments are left in place and queued
    assert context.eval_expressions_in_string("{key.(}", values) == "{key.(}"
    assert len(context.errors) == 1


def test_reify_strings_walks_nested_values() -> None:
    data = {"a": "x", "b": ["y", {"c": "z"}], "d": 1}
    assert reify_strings(data, str.upper) == {"a": "X", "b": ["Y", {"c": "Z"}], "d": 1}


def test_expression_values_read_the_view() -> None:
    view = MemoryTextView("hello world\nsecond", file_name="notes.txt")
    view.selections = [Selection(Position(0, 0), Position(0, 5))]

    values = expression_values(view=view, mode="visual", count=2, captured="ab")

    assert values["file"] == "notes.txt"
    assert values["line"] == 0
    assert values["col"] == 5
    assert values["char"] == " "
    assert values["selectionstr"] == "hello"
    assert values["wordstr"] == "hello"
    assert values["mode"] == "visual"
    assert values["count"] == 2
    assert values["captured"] == "ab"
