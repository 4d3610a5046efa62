from __future__ import annotations

import pytest

from modal_keys.bindings import (
    DO_COMMAND,
    PREFIX_COMMAND,
    BindingCompiler,
    BindingSpec,
    CompiledBinding,
    DispatchTable,
    compile_bindings,
    parse_binding_spec,
)
from modal_keys.bindings.compiler import join_when, merge_items, when_key
from modal_keys.bindings.keys import ALL_KEYS
from modal_keys.errors import SchemaError
from modal_keys.runtime import RecordingNotifier


def make_spec(items, **tree) -> BindingSpec:
    bind = {"name": "Test", "description": "", "items": items}
    bind.update(tree)
    return parse_binding_spec({"header": {"version": "1.0"}, "bind": bind})


def compile_items(items, **tree):
    compiler = BindingCompiler()
    return compiler, compiler.compile(make_spec(items, **tree))


def context(mode: str = "normal", prefix: str = "", **flags) -> dict:
    return {"modalkeys": {"mode": mode, "prefix": prefix, **flags}}


def test_prefix_sequences_compile_to_single_keystrokes() -> None:
    _, result = compile_items(
        [
            {"key": "g g", "mode": "normal", "do": "top"},
            {"key": "g u", "mode": "normal", "do": "lower"},
        ]
    )

    assert result.to_json() == [
        {
            "key": "g",
            "command": DO_COMMAND,
            "when": "((modalkeys.mode == 'normal')) && (modalkeys.prefix == 'g')",
            "args": {"do": "top", "resetTransient": True},
        },
        {
            "key": "u",
            "command": DO_COMMAND,
            "when": "((modalkeys.mode == 'normal')) && (modalkeys.prefix == 'g')",
            "args": {"do": "lower", "resetTransient": True},
        },
        {
            "key": "g",
            "command": PREFIX_COMMAND,
            "when": "((modalkeys.mode == 'normal')) && ((modalkeys.prefix == ''))",
            "args": {"key": "g"},
        },
    ]
    assert result.errors == []


def test_longer_sequences_chain_prefixes() -> None:
    _, result = compile_items([{"key": "c i w", "mode": "normal", "do": "changeWord"}])
    table = DispatchTable(result.bindings)

    first = table.lookup("c", context())
    second = table.lookup("i", context(prefix="c"))
    final = table.lookup("w", context(prefix="c i"))

    assert first is not None and first.is_prefix and first.args["key"] == "c"
    assert second is not None and second.is_prefix and second.args["key"] == "i"
    assert final is not None and final.command == DO_COMMAND
    assert final.args["do"] == "changeWord"
    assert table.lookup("w", context(prefix="c")) is None


def test_equivalent_prefix_guards_are_registered_once() -> None:
    _, result = compile_items(
        [
            {"key": "x y", "when": "a && b", "do": "first"},
            {"key": "x z", "when": "b && a", "do": "second"},
            {"key": "x w", "when": "a", "do": "third"},
        ]
    )
    prefixes = [binding for binding in result.bindings if binding.is_prefix]
    assert len(prefixes) == 2
    assert when_key(["a && b"]) == when_key(["b", "a"])


def test_modes_become_when_clauses() -> None:
    _, result = compile_items(
        [
            {"key": "a", "mode": ["normal", "visual"], "do": "both"},
            {"key": "b", "mode": "!insert", "do": "notInsert"},
            {"key": "c", "do": "anywhere"},
        ]
    )
    table = DispatchTable(result.bindings)

    assert table.lookup("a", context("visual")) is not None
    assert table.lookup("a", context("insert")) is None
    assert table.lookup("b", context("normal")) is not None
    assert table.lookup("b", context("insert")) is None
    assert table.lookup("c", context("insert")) is not None
    assert "(modalkeys.mode != 'insert')" in result.bindings[1].when


def test_allowed_prefixes_gate_single_keys() -> None:
    _, result = compile_items(
        [
            {"key": "j", "mode": "normal", "allowedPrefixes": ["g"], "do": "down"},
            {"key": "k", "mode": "normal", "allowedPrefixes": "<all-prefixes>", "do": "up"},
            {"key": "l", "mode": "normal", "do": "right"},
        ]
    )
    table = DispatchTable(result.bindings)

    assert table.lookup("j", context(prefix="")) is not None
    assert table.lookup("j", context(prefix="g")) is not None
    assert table.lookup("j", context(prefix="d")) is None
    assert table.lookup("k", context(prefix="d")) is not None
    assert table.lookup("l", context(prefix="g")) is None


def test_allowed_prefixes_carry_through_a_chain() -> None:
    _, result = compile_items(
        [
            {"key": "g x", "mode": "normal", "do": "gx"},
            {"key": "d w", "mode": "normal", "allowedPrefixes": ["g"], "do": "deleteWord"},
        ]
    )
    table = DispatchTable(result.bindings)

    assert table.lookup("d", context(prefix="g")) is not None
    assert table.lookup("d", context(prefix="x")) is None
    assert table.lookup("w", context(prefix="d")) is not None
    assert table.lookup("w", context(prefix="g d")) is not None
    assert table.lookup("w", context(prefix="x d")) is None


def test_all_prefixes_on_a_chain_is_dropped() -> None:
    _, result = compile_items(
        [
            {"key": "z z", "mode": "normal", "allowedPrefixes": "<all-prefixes>", "do": "center"},
            {"key": "j", "mode": "normal", "do": "down"},
        ]
    )

    assert [binding.key for binding in result.bindings] == ["j"]
    assert len(result.errors) == 1
    assert "multi-key binding 'z z'" in result.errors[0]


def test_defaults_merge_down_the_tree() -> None:
    spec = make_spec(
        [{"key": "h", "do": {"cursorMove": {"value": 2}}}],
        default={"mode": "normal", "when": "a", "do": {"cursorMove": {"to": "left"}}},
        motion={
            "name": "Motions",
            "description": "",
            "default": {"when": "b", "mode": "visual"},
            "items": [{"key": "l", "do": "cursorRight"}],
        },
    )
    compiler = BindingCompiler()
    tree = compiler.expand_defaults(spec.bind)

    (top,) = tree.items
    assert top.modes == ("normal",)
    assert top.when_clauses == ("a",)
    assert top.do == {"cursorMove": {"to": "left", "value": 2}}

    ((_, child),) = tree.children
    (nested,) = child.items
    assert nested.modes == ("visual",)
    assert nested.when_clauses == ("a", "b")
    assert nested.do == "cursorRight"
    assert [item.key for item in compiler.list_bindings(tree)] == ["h", "l"]


def test_merge_items_concatenates_when() -> None:
    merged = merge_items({"when": "a", "mode": "normal"}, {"when": ["b", "c"], "mode": "visual"})
    assert merged == {"when": ("a", "b", "c"), "mode": "visual"}


def test_items_invalid_after_defaults_raise_schema_error() -> None:
    spec = make_spec([{"key": "h"}, {"key": "j", "do": "down"}])
    with pytest.raises(SchemaError) as excinfo:
        BindingCompiler().compile(spec)
    (diagnostic,) = excinfo.value.diagnostics
    assert diagnostic.path == "bind.items.0.do"
    assert diagnostic.code == "missing"


def test_all_keys_expand_with_key_substitution() -> None:
    _, result = compile_items(
        [
            {
                "key": "<all-keys>",
                "mode": "insert",
                "name": "type {key}",
                "do": {"type": {"text": "{key}"}},
            }
        ]
    )

    assert len(result.bindings) == len(ALL_KEYS)
    by_key = {binding.key: binding for binding in result.bindings}
    assert by_key["q"].args["do"] == {"type": {"text": "q"}}
    assert by_key["q"].name == "type q"
    assert by_key["/"].args["do"] == {"type": {"text": "/"}}


def test_key_lists_and_definitions_expand() -> None:
    spec = parse_binding_spec(
        {
            "header": {"version": "1"},
            "bind": {
                "name": "Test",
                "description": "",
                "items": [
                    {
                        "key": ["h", "l"],
                        "mode": "normal",
                        "do": {"command": "move", "args": {"by": "{key + suffix}"}},
                    }
                ],
            },
            "define": {"suffix": "!"},
        }
    )
    result = BindingCompiler().compile(spec)

    assert [binding.key for binding in result.bindings] == ["h", "l"]
    assert result.bindings[1].args["do"]["args"] == {"by": "l!"}


def test_conflicting_docs_drop_the_later_item() -> None:
    compiler, result = compile_items(
        [
            {"key": "a", "mode": "normal", "when": "x", "name": "left", "do": "l1"},
            {"key": "a", "mode": "normal", "when": "y", "do": "l2"},
            {"key": "a", "mode": "normal", "when": "z", "name": "right", "do": "l3"},
        ]
    )

    assert [binding.args["do"] for binding in result.bindings] == ["l1", "l2"]
    assert [binding.name for binding in result.bindings] == ["left", "left"]
    (error,) = result.errors
    assert "Multiple values of `name`" in error
    assert "'left' and 'right'" in error

    notifier = RecordingNotifier()
    assert compiler.report_errors(notifier) == [error]
    assert notifier.of_level("error") == [error]


def test_ignore_bindings_skip_doc_checks() -> None:
    _, result = compile_items(
        [
            {"key": "a", "mode": "normal", "name": "first", "do": "one"},
            {"key": "a", "mode": "normal", "when": "q", "name": "other", "do": "modalkeys.ignore"},
        ]
    )
    assert len(result.bindings) == 2
    assert result.errors == []


def test_reset_transient_is_carried_into_args() -> None:
    _, result = compile_items(
        [{"key": "shift+'", "mode": "normal", "resetTransient": False, "do": "noop"}]
    )
    (binding,) = result.bindings
    assert binding.reset_transient is False
    assert binding.to_json()["args"] == {"do": "noop", "resetTransient": False}


def test_compiled_bindings_hold_one_keystroke() -> None:
    with pytest.raises(ValueError):
        CompiledBinding(key="g g", command=DO_COMMAND, when=None, args={})
    binding = CompiledBinding(key="g", command=DO_COMMAND, when=None, args={"do": "x"})
    with pytest.raises(TypeError):
        binding.args["do"] = "y"  # type: ignore[index]
    assert "when" not in binding.to_json()


def test_join_when_wraps_each_clause() -> None:
    assert join_when([]) is None
    assert join_when(["a", "b || c"]) == "(a) && (b || c)"


def test_compile_bindings_reports_through_notifier() -> None:
    spec = make_spec(
        [
            {"key": "a", "mode": "normal", "name": "one", "do": "x"},
            {"key": "a", "mode": "normal", "when": "b", "name": "two", "do": "y"},
        ]
    )
    notifier = RecordingNotifier()
    bindings = compile_bindings(spec, notifier=notifier)
    assert len(bindings) == 1
    assert len(notifier.of_level("error")) == 1
