"""Declarative binding file schema, validated with pydantic."""

from __future__ import annotations

import json
import re
import tomllib
from pathlib import Path
from typing import Any, Dict, Iterable, Literal, Mapping, Optional, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from modal_keys.actions.model import parse_action
from modal_keys.errors import Diagnostic, SchemaError
from modal_keys.expressions import AssignmentError, ExpressionSyntaxError, parse

from .keys import invalid_presses, normalize_key

ALL_PREFIXES = "<all-prefixes>"
RESERVED_TREE_FIELDS = frozenset({"name", "description", "kind", "default", "items"})
SUPPORTED_MAJOR_VERSION = 1

_VERSION = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def coerce_version(value: str) -> Tuple[int, int, int]:
    """Loosely read a semantic version: ``"1"`` becomes ``(1, 0, 0)``."""

    match = _VERSION.search(str(value))
    if match is None:
        raise ValueError(f"'{value}' is not a valid version number")
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return major, minor, patch


def _as_tuple(value: Any) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        return (value,)
    return tuple(value)


class BindingHeader(BaseModel):
    """File header: format version and extensions the bindings rely on."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    version: str
    required_extensions: Tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices("required_extensions", "requiredExtensions"),
    )

    @field_validator("version", mode="before")
    @classmethod
    def _check_version(cls, value: Any) -> str:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            raise ValueError("version must be a string")
        major, _, _ = coerce_version(value)
        if major != SUPPORTED_MAJOR_VERSION:
            raise ValueError(
                f"version {value} is not supported, expected {SUPPORTED_MAJOR_VERSION}.x"
            )
        return value


class BindingItem(BaseModel):
    """One binding as written in the file; every field may come from a default."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    name: Optional[str] = None
    description: Optional[str] = None
    key: str | Tuple[str, ...] | None = None
    when: str | Tuple[str, ...] | None = None
    mode: str | Tuple[str, ...] | None = None
    allowed_prefixes: Literal["<all-prefixes>"] | Tuple[str, ...] | None = Field(
        default=None,
        validation_alias=AliasChoices("allowed_prefixes", "allowedPrefixes"),
    )
    do: Any = None
    reset_transient: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("reset_transient", "resetTransient"),
    )

    @field_validator("key")
    @classmethod
    def _check_key(cls, value: Any) -> Any:
        if value is None:
            return None
        keys = (value,) if isinstance(value, str) else tuple(value)
        if not keys:
            raise ValueError("key cannot be an empty list")
        for key in keys:
            bad = invalid_presses(key)
            if bad or not key.strip():
                raise ValueError(f"Invalid keybinding '{bad[0] if bad else key}'")
        normalized = tuple(normalize_key(key) for key in keys)
        return normalized[0] if isinstance(value, str) else normalized

    @field_validator("mode")
    @classmethod
    def _check_mode(cls, value: Any) -> Any:
        modes = _as_tuple(value)
        if not modes:
            return value
        negated = [mode.startswith("!") for mode in modes]
        if any(negated) and not all(negated):
            raise ValueError("mode list must be either all positive or all negated")
        if any(not mode.lstrip("!") for mode in modes):
            raise ValueError("mode names cannot be empty")
        return value

    @field_validator("when")
    @classmethod
    def _check_when(cls, value: Any) -> Any:
        for clause in _as_tuple(value) or ():
            try:
                parse(clause)
            except AssignmentError as exc:
                raise ValueError(str(exc)) from exc
            except ExpressionSyntaxError:
                # host-specific when syntax is passed through untouched
                continue
        return value

    @field_validator("do")
    @classmethod
    def _check_do_shape(cls, value: Any) -> Any:
        if value is None or isinstance(value, (str, list, tuple, dict)):
            return value
        raise ValueError(f"action is of unknown form: {value!r}")

    @property
    def modes(self) -> Tuple[str, ...]:
        return _as_tuple(self.mode) or ()

    @property
    def when_clauses(self) -> Tuple[str, ...]:
        return _as_tuple(self.when) or ()


class StrictBindingItem(BindingItem):
    """A binding after defaults are applied: ``key`` and ``do`` are required."""

    key: str | Tuple[str, ...]
    do: Any

    @field_validator("do")
    @classmethod
    def _check_do(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("`do` is required")
        parse_action(value, strict=True)
        return value


class BindingTree(BaseModel):
    """Named group of items; any non-reserved field is a child group."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    description: str
    kind: Optional[str] = None
    default: Optional[BindingItem] = None
    items: Tuple[BindingItem, ...] = ()
    children: Dict[str, "BindingTree"] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_children(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        fields: Dict[str, Any] = {}
        children: Dict[str, Any] = {}
        for key, value in data.items():
            if key in RESERVED_TREE_FIELDS:
                fields[key] = value
            else:
                children[key] = value
        fields["children"] = children
        return fields

    @field_validator("children", mode="before")
    @classmethod
    def _check_children(cls, value: Any) -> Any:
        for key, child in dict(value).items():
            if not isinstance(child, Mapping):
                raise ValueError(
                    f"unexpected field '{key}': only binding groups may be added to a tree"
                )
            if "name" not in child:
                raise ValueError(f"binding group '{key}' has no \"name\" field")
        return value


class BindingSpec(BaseModel):
    """A whole binding file: header, tree, and values for key expansion."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    header: BindingHeader
    bind: BindingTree = Field(
        validation_alias=AliasChoices("bind", "bindingTree", "binding_tree")
    )
    define: Dict[str, Any] = Field(default_factory=dict)


def _format_location(location: Iterable[Any]) -> str:
    return ".".join(str(part) for part in location if part != "children")


def diagnostics_from(error: ValidationError, *, prefix: str = "") -> list[Diagnostic]:
    """Convert pydantic errors into path/code/message diagnostics."""

    diagnostics = []
    for detail in error.errors():
        path = _format_location(detail["loc"])
        if prefix:
            path = f"{prefix}.{path}" if path else prefix
        diagnostics.append(
            Diagnostic(path=path, code=str(detail["type"]), message=str(detail["msg"]))
        )
    return diagnostics


def parse_binding_spec(data: Any) -> BindingSpec:
    """Validate already-decoded data, raising :class:`SchemaError` on problems."""

    try:
        return BindingSpec.model_validate(data)
    except ValidationError as exc:
        raise SchemaError(
            "binding file failed validation", diagnostics_from(exc)
        ) from exc


def load_binding_data(path: str | Path) -> Any:
    """Decode a ``.toml`` or ``.json`` binding file."""

    source = Path(path)
    try:
        if source.suffix.lower() == ".toml":
            with source.open("rb") as handle:
                return tomllib.load(handle)
        return json.loads(source.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SchemaError(
            f"could not read {source.name}",
            [Diagnostic(path="", code="parse_error", message=str(exc))],
        ) from exc


def parse_binding_file(path: str | Path) -> BindingSpec:
    return parse_binding_spec(load_binding_data(path))


__all__ = [
    "ALL_PREFIXES",
    "RESERVED_TREE_FIELDS",
    "BindingHeader",
    "BindingItem",
    "StrictBindingItem",
    "BindingTree",
    "BindingSpec",
    "coerce_version",
    "diagnostics_from",
    "load_binding_data",
    "parse_binding_file",
    "parse_binding_spec",
]
