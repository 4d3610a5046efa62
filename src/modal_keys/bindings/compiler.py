"""Compile a binding tree into single-keystroke conditional bindings.

Stages, in order:

1. ``expand_defaults`` -- push defaults down the tree, validate every item
2. ``list_bindings`` -- flatten the tree
3. ``expand_binding_keys`` -- one item per concrete key
4. ``expand_binding_docs_across_when_clauses`` -- share docs per key/mode
5. ``move_mode_to_when_clause`` -- fold ``mode`` into ``when``
6. ``extract_prefix_bindings`` -- split ``c i w`` into prefix steps
7. ``item_to_config_binding`` -- emit the host-facing record
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from modal_keys.actions.model import Action, parse_action, raw_commands
from modal_keys.errors import CompileError, Diagnostic, SchemaError
from modal_keys.expressions import (
    EvalContext,
    ExpressionSyntaxError,
    normalize,
    parse,
    quote,
    reify_strings,
)
from modal_keys.expressions.parser import Logical
from modal_keys.runtime import telemetry
from modal_keys.runtime.reporting import ErrorQueue, Notifier

from .keys import expand_all_keys, presses
from .schema import (
    ALL_PREFIXES,
    BindingItem,
    BindingSpec,
    BindingTree,
    StrictBindingItem,
    diagnostics_from,
)

DO_COMMAND = "modalkeys.do"
PREFIX_COMMAND = "modalkeys.prefix"
IGNORE_COMMAND = "modalkeys.ignore"
PREFIX_CONTEXT = "modalkeys.prefix"
MODE_CONTEXT = "modalkeys.mode"


@dataclass(frozen=True, slots=True)
class CompiledBinding:
    """Host-facing binding: exactly one keystroke, a command, and its guard."""

    key: str
    command: str
    when: Optional[str]
    args: Mapping[str, Any]
    name: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self) -> None:
        if len(presses(self.key)) != 1:
            raise ValueError(f"compiled key must be a single keystroke, got '{self.key}'")
        object.__setattr__(self, "args", MappingProxyType(dict(self.args)))

    @property
    def is_prefix(self) -> bool:
        return self.command == PREFIX_COMMAND

    @property
    def reset_transient(self) -> bool:
        return bool(self.args.get("resetTransient", True))

    def action(self) -> Action:
        return parse_action(self.args["do"])

    def to_json(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"key": self.key, "command": self.command}
        if self.when:
            record["when"] = self.when
        record["args"] = copy.deepcopy(_plain(self.args))
        return record


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


@dataclass(frozen=True, slots=True)
class ExpandedTree:
    """Validated tree node whose items already carry every inherited default."""

    name: str
    description: str
    kind: Optional[str]
    items: Tuple[StrictBindingItem, ...]
    children: Tuple[Tuple[str, "ExpandedTree"], ...] = ()


@dataclass(slots=True)
class CompileResult:
    bindings: List[CompiledBinding] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_json(self) -> List[Dict[str, Any]]:
        return [binding.to_json() for binding in self.bindings]


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def merge_items(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` onto ``base``: ``when`` concatenates, everything else wins."""

    when = _as_list(base.get("when")) + _as_list(override.get("when"))
    merged = _deep_merge(
        {k: v for k, v in base.items() if k != "when"},
        {k: v for k, v in override.items() if k != "when"},
    )
    if when:
        merged["when"] = tuple(when)
    return merged


def _item_data(item: BindingItem | None) -> Dict[str, Any]:
    if item is None:
        return {}
    return item.model_dump(exclude_unset=True)


def when_key(clauses: Sequence[str]) -> Hashable:
    """Structural identity of a list of when-clauses joined by ``&&``."""

    nodes = []
    for clause in clauses:
        try:
            nodes.append(parse(clause))
        except ExpressionSyntaxError:
            return tuple(clause.strip() for clause in clauses)
    if not nodes:
        return ()
    if len(nodes) == 1:
        return normalize(nodes[0])
    return normalize(Logical("&&", tuple(nodes)))


def join_when(clauses: Sequence[str]) -> Optional[str]:
    if not clauses:
        return None
    return "(" + ") && (".join(clauses) + ")"


def prefix_condition(prefix: str) -> str:
    return f"{PREFIX_CONTEXT} == {quote(prefix)}"


def _is_ignore(item: StrictBindingItem) -> bool:
    return raw_commands(item.do) == [IGNORE_COMMAND]


class BindingCompiler:
    """Runs the compile pipeline, collecting dropped-item errors."""

    def __init__(
        self,
        *,
        evaluator: EvalContext | None = None,
        error_limit: int = 3,
        logger_name: str | None = "modal_keys.bindings",
    ) -> None:
        self.evaluator = evaluator or EvalContext(error_limit=error_limit)
        self.errors = ErrorQueue(error_limit)
        self._all_errors: List[str] = []
        self._logger_name = logger_name

    def _drop(self, error: CompileError) -> None:
        self.errors.push(str(error))
        self._all_errors.append(str(error))
        telemetry.log(
            "warning",
            "bindings::dropped",
            data={"reason": str(error), "key": error.key},
            logger_name=self._logger_name,
        )

    # defaults ----------------------------------------------------------
    def expand_defaults(
        self, tree: BindingTree, inherited: Mapping[str, Any] | None = None
    ) -> ExpandedTree:
        """Validate every item of ``tree`` against the defaults above it.

        Raises :class:`SchemaError` listing every invalid item of the tree.
        """

        problems: List[Diagnostic] = []
        expanded = self._expand(tree, dict(inherited or {}), "bind", problems)
        if problems:
            raise SchemaError("binding items failed validation", problems)
        return expanded

    def _expand(
        self,
        tree: BindingTree,
        inherited: Mapping[str, Any],
        path: str,
        problems: List[Diagnostic],
    ) -> ExpandedTree:
        default = merge_items(inherited, _item_data(tree.default))
        items: List[StrictBindingItem] = []
        for index, item in enumerate(tree.items):
            merged = merge_items(default, _item_data(item))
            try:
                items.append(StrictBindingItem.model_validate(merged))
            except ValidationError as exc:
                problems.extend(diagnostics_from(exc, prefix=f"{path}.items.{index}"))
        children = tuple(
            (name, self._expand(child, default, f"{path}.{name}", problems))
            for name, child in tree.children.items()
        )
        return ExpandedTree(
            name=tree.name,
            description=tree.description,
            kind=tree.kind,
            items=tuple(items),
            children=children,
        )

    # flatten -----------------------------------------------------------
    def list_bindings(self, tree: ExpandedTree) -> List[StrictBindingItem]:
        result = list(tree.items)
        for _, child in tree.children:
            result.extend(self.list_bindings(child))
        return result

    # key expansion -----------------------------------------------------
    def expand_binding_keys(
        self,
        items: Sequence[StrictBindingItem],
        definitions: Mapping[str, Any] | None = None,
    ) -> List[StrictBindingItem]:
        result: List[StrictBindingItem] = []
        for item in items:
            keys = (item.key,) if isinstance(item.key, str) else item.key
            if isinstance(item.key, str) and "<all-keys>" not in item.key:
                result.append(item)
                continue
            for key in keys:
                for concrete in expand_all_keys(key):
                    expanded = self._with_key(item, concrete, definitions or {})
                    if expanded is not None:
                        result.append(expanded)
        return result

    def _with_key(
        self, item: StrictBindingItem, key: str, definitions: Mapping[str, Any]
    ) -> Optional[StrictBindingItem]:
        values = {**definitions, "key": key}

        def evaluate(text: str) -> str:
            return self.evaluator.eval_expressions_in_string(text, values)

        data = item.model_dump(exclude={"key"}, exclude_none=True)
        data = {name: reify_strings(value, evaluate) for name, value in data.items()}
        data["key"] = key
        for message in self.evaluator.errors.messages:
            self._drop(CompileError(f"could not expand '{key}': {message}", key=key))
        self.evaluator.errors.clear()
        try:
            return StrictBindingItem.model_validate(data)
        except ValidationError as exc:
            reason = "; ".join(detail["msg"] for detail in exc.errors())
            self._drop(CompileError(reason, key=key, mode=item.modes))
            return None

    # documentation -----------------------------------------------------
    def expand_binding_docs_across_when_clauses(
        self, items: Sequence[StrictBindingItem]
    ) -> List[StrictBindingItem]:
        """Give every item bound to the same key and mode the same docs.

        Items disagreeing with the first non-blank ``name``/``description`` of
        their group are dropped.
        """

        groups: Dict[Hashable, List[int]] = {}
        for index, item in enumerate(items):
            if _is_ignore(item):
                continue
            groups.setdefault((item.key, item.modes), []).append(index)

        resolved: Dict[int, Dict[str, Optional[str]]] = {}
        dropped: set[int] = set()
        for (key, modes), members in groups.items():
            if len(members) < 2:
                continue
            docs: Dict[str, Optional[str]] = {}
            for attribute in ("name", "description"):
                chosen: Optional[str] = None
                for index in members:
                    value = getattr(items[index], attribute)
                    if value is None or not value.strip():
                        continue
                    if chosen is None:
                        chosen = value
                    elif value != chosen and index not in dropped:
                        dropped.add(index)
                        self._drop(
                            CompileError(
                                f"Multiple values of `{attribute}` for identical binding "
                                f"'{key}' in mode {list(modes) or 'any'}: "
                                f"'{chosen}' and '{value}'.",
                                key=str(key),
                                mode=modes,
                            )
                        )
                docs[attribute] = chosen
            for index in members:
                resolved[index] = docs

        result = []
        for index, item in enumerate(items):
            if index in dropped:
                continue
            if index in resolved:
                item = item.model_copy(update=resolved[index])
            result.append(item)
        return result

    # modes -------------------------------------------------------------
    def move_mode_to_when_clause(self, item: StrictBindingItem) -> StrictBindingItem:
        modes = item.modes
        if not modes:
            return item
        if modes[0].startswith("!"):
            clause = " && ".join(
                f"({MODE_CONTEXT} != {quote(mode[1:])})" for mode in modes
            )
        else:
            clause = " || ".join(f"({MODE_CONTEXT} == {quote(mode)})" for mode in modes)
        return item.model_copy(update={"when": item.when_clauses + (clause,)})

    # prefixes ----------------------------------------------------------
    def expand_allowed_prefixes(self, item: StrictBindingItem) -> Tuple[str, ...]:
        allowed = item.allowed_prefixes
        if allowed == ALL_PREFIXES:
            return ()
        prefixes = ("",) + tuple(p for p in (allowed or ()) if p != "")
        return (" || ".join(f"({prefix_condition(p)})" for p in prefixes),)

    def chain_bases(self, item: StrictBindingItem) -> Tuple[str, ...]:
        """Prefixes a chain of ``item`` may have been entered from."""

        allowed = item.allowed_prefixes
        if allowed == ALL_PREFIXES:
            return ("",)
        return ("",) + tuple(p for p in (allowed or ()) if p != "")

    def expand_when_prefixes(self, item: StrictBindingItem, prefix: str) -> Tuple[str, ...]:
        if prefix == "":
            return item.when_clauses + self.expand_allowed_prefixes(item)
        conditions = [
            prefix_condition(f"{base} {prefix}" if base else prefix)
            for base in self.chain_bases(item)
        ]
        if len(conditions) == 1:
            return item.when_clauses + (conditions[0],)
        return item.when_clauses + (" || ".join(f"({c})" for c in conditions),)

    def check_allowed_prefixes(self, item: StrictBindingItem) -> bool:
        """``<all-prefixes>`` only works on single keys; chains are dropped."""

        assert isinstance(item.key, str)
        if item.allowed_prefixes != ALL_PREFIXES or len(presses(item.key)) == 1:
            return True
        self._drop(
            CompileError(
                f"`{ALL_PREFIXES}` cannot be used with the multi-key binding "
                f"'{item.key}'; list the allowed prefixes instead.",
                key=item.key,
                mode=item.modes,
            )
        )
        return False

    def extract_prefix_bindings(
        self,
        item: StrictBindingItem,
        registry: Dict[Hashable, CompiledBinding],
    ) -> StrictBindingItem:
        """Register prefix steps of ``item`` and return its final keystroke."""

        assert isinstance(item.key, str)
        tokens = presses(item.key)
        prefix = ""
        for token in tokens[:-1]:
            when = self.expand_when_prefixes(item, prefix)
            prefix = f"{prefix} {token}" if prefix else token
            identity = (token, item.modes, when_key(when))
            if identity not in registry:
                registry[identity] = CompiledBinding(
                    key=token,
                    command=PREFIX_COMMAND,
                    when=join_when(when),
                    args={"key": token},
                )
        return item.model_copy(
            update={"key": tokens[-1], "when": self.expand_when_prefixes(item, prefix)}
        )

    # output ------------------------------------------------------------
    def item_to_config_binding(self, item: StrictBindingItem) -> CompiledBinding:
        assert isinstance(item.key, str)
        reset = True if item.reset_transient is None else item.reset_transient
        return CompiledBinding(
            key=item.key,
            command=DO_COMMAND,
            when=join_when(item.when_clauses),
            args={"do": copy.deepcopy(item.do), "resetTransient": reset},
            name=item.name,
            description=item.description,
        )

    def compile(self, spec: BindingSpec) -> CompileResult:
        with telemetry.span(
            "bindings::compile",
            logger_name=self._logger_name,
            component="bindings",
            metadata={"tree": spec.bind.name},
        ) as handle:
            tree = self.expand_defaults(spec.bind)
            items = self.list_bindings(tree)
            items = self.expand_binding_keys(items, spec.define)
            items = self.expand_binding_docs_across_when_clauses(items)
            registry: Dict[Hashable, CompiledBinding] = {}
            bindings = []
            for item in items:
                if not self.check_allowed_prefixes(item):
                    continue
                item = self.move_mode_to_when_clause(item)
                item = self.extract_prefix_bindings(item, registry)
                bindings.append(self.item_to_config_binding(item))
            bindings.extend(registry.values())
            handle.add_metadata("bindings", len(bindings))
            handle.add_metadata("prefixes", len(registry))
            handle.add_metadata("dropped", len(self._all_errors))
        return CompileResult(bindings=bindings, errors=list(self._all_errors))

    def report_errors(self, notifier: Notifier) -> list[str]:
        return self.errors.report(notifier)


def compile_bindings(
    spec: BindingSpec, *, notifier: Notifier | None = None, error_limit: int = 3
) -> List[CompiledBinding]:
    """Compile ``spec``; dropped items are reported through ``notifier``."""

    compiler = BindingCompiler(error_limit=error_limit)
    result = compiler.compile(spec)
    if notifier is not None:
        compiler.report_errors(notifier)
    return result.bindings


__all__ = [
    "DO_COMMAND",
    "PREFIX_COMMAND",
    "IGNORE_COMMAND",
    "BindingCompiler",
    "CompileResult",
    "CompiledBinding",
    "ExpandedTree",
    "compile_bindings",
    "join_when",
    "merge_items",
    "prefix_condition",
    "when_key",
]
