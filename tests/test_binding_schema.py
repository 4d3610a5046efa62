from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from modal_keys.bindings import (
    BindingItem,
    StrictBindingItem,
    load_binding_data,
    parse_binding_file,
    parse_binding_spec,
)
from modal_keys.bindings.keys import (
    expand_all_keys,
    is_allowed_key,
    normalize_key,
    split_press,
)
from modal_keys.bindings.schema import coerce_version
from modal_keys.errors import SchemaError


def make_spec(**bind) -> dict:
    tree = {"name": "Test", "description": "test bindings", "items": []}
    tree.update(bind)
    return {"header": {"version": "1.0"}, "bind": tree}


def test_key_tokens_follow_the_allow_list() -> None:
    assert is_allowed_key("ctrl+shift+a")
    assert is_allowed_key("g g")
    assert is_allowed_key("Cmd+[KeyA]")
    assert is_allowed_key("f12")
    assert is_allowed_key("shift+<all-keys>")
    assert not is_allowed_key("hyper+a")
    assert not is_allowed_key("f20")
    assert not is_allowed_key("enterr")
    assert not is_allowed_key("")


def test_split_press_and_normalize() -> None:
    assert split_press("ctrl+shift+a") == (["ctrl", "shift"], "a")
    assert split_press("ctrl++") == (["ctrl"], "+")
    assert normalize_key("Ctrl+A   G") == "ctrl+a g"
    assert normalize_key("Shift+[KeyA] [Digit1]") == "shift+[KeyA] [Digit1]"
    assert normalize_key("Ctrl+[ ]") == "ctrl+[ ]"


def test_expand_all_keys_replaces_the_placeholder() -> None:
    expanded = expand_all_keys("shift+<all-keys>")
    assert expanded[0] == "shift+`"
    assert "shift+q" in expanded
    assert len(expanded) == len("`1234567890-=qwertyuiop[]\\asdfghjkl;'zxcvbnm,./")
    assert expand_all_keys("a") == ["a"]


def test_invalid_key_reports_the_offending_token() -> None:
    with pytest.raises(ValidationError) as excinfo:
        BindingItem(key="g hyper+x", do="noop")
    assert "Invalid keybinding 'hyper+x'" in str(excinfo.value)


def test_items_accept_camel_case_fields() -> None:
    item = BindingItem.model_validate(
        {"key": "a", "do": "x", "allowedPrefixes": ["g"], "resetTransient": False}
    )
    assert item.allowed_prefixes == ("g",)
    assert item.reset_transient is False


def test_mode_lists_must_not_mix_negation() -> None:
    with pytest.raises(ValidationError):
        BindingItem(key="a", mode=["normal", "!insert"], do="x")
    assert BindingItem(key="a", mode=["!insert", "!visual"], do="x").modes == (
        "!insert",
        "!visual",
    )


def test_when_clauses_may_not_assign() -> None:
    with pytest.raises(ValidationError) as excinfo:
        BindingItem(key="a", when="modalkeys.count = 1", do="x")
    assert "expressions may not set values" in str(excinfo.value)
    # host-specific syntax is passed through
    assert BindingItem(key="a", when="editorLangId =~ /py/", do="x").when


def test_strict_items_require_key_and_a_valid_action() -> None:
    with pytest.raises(ValidationError):
        StrictBindingItem.model_validate({"do": "x"})
    with pytest.raises(ValidationError):
        StrictBindingItem.model_validate({"key": "a"})
    with pytest.raises(ValidationError):
        StrictBindingItem.model_validate({"key": "a", "do": {"command": ""}})
    with pytest.raises(ValidationError):
        StrictBindingItem.model_validate({"key": "a", "do": {"cursorMove": {}, "undo": {}}})


def test_header_version_must_be_one_point_x() -> None:
    assert coerce_version("1") == (1, 0, 0)
    assert coerce_version("1.2.3") == (1, 2, 3)
    parse_binding_spec({**make_spec(), "header": {"version": "1.2"}})
    with pytest.raises(SchemaError):
        parse_binding_spec({**make_spec(), "header": {"version": "2.0"}})


def test_tree_children_are_nested_groups() -> None:
    spec = parse_binding_spec(
        make_spec(
            motion={"name": "Motions", "description": "", "items": [{"key": "h", "do": "left"}]}
        )
    )
    assert list(spec.bind.children) == ["motion"]
    assert spec.bind.children["motion"].items[0].key == "h"


def test_unexpected_tree_fields_are_schema_errors() -> None:
    with pytest.raises(SchemaError) as excinfo:
        parse_binding_spec(make_spec(motion={"description": "no name"}))
    assert any("has no \"name\" field" in d.message for d in excinfo.value.diagnostics)

    with pytest.raises(SchemaError) as excinfo:
        parse_binding_spec(make_spec(stray=5))
    assert any("unexpected field 'stray'" in d.message for d in excinfo.value.diagnostics)


def test_schema_errors_are_deduplicated_and_capped() -> None:
    items = [{"key": "hyper+a", "do": "x"} for _ in range(6)]
    with pytest.raises(SchemaError) as excinfo:
        parse_binding_spec(make_spec(items=items))
    error = excinfo.value
    assert len(error.diagnostics) == 1
    assert error.diagnostics[0].count == 6
    assert error.diagnostics[0].path == "bind.items.0.key"
    (line,) = error.summary(3)
    assert line.startswith("Parsing of bindings failed: code value_error near bind.items.0.key")
    assert line.endswith("[6 occurrences]")


def test_binding_tree_alias_is_accepted() -> None:
    data = make_spec()
    data["bindingTree"] = data.pop("bind")
    assert parse_binding_spec(data).bind.name == "Test"


def test_files_are_read_as_toml_or_json(tmp_path: Path) -> None:
    toml_file = tmp_path / "bindings.toml"
    toml_file.write_text(
        """
[header]
version = "1.0"

[bind]
name = "Toml"
description = "from toml"

[[bind.items]]
key = "j"
mode = "normal"
do = "cursorDown"
""",
        encoding="utf-8",
    )
    json_file = tmp_path / "bindings.json"
    json_file.write_text(json.dumps(make_spec(items=[{"key": "k", "do": "cursorUp"}])))

    assert parse_binding_file(toml_file).bind.items[0].key == "j"
    assert parse_binding_file(json_file).bind.items[0].do == "cursorUp"


def test_undecodable_files_raise_schema_error(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(SchemaError) as excinfo:
        load_binding_data(broken)
    assert excinfo.value.diagnostics[0].code == "parse_error"
