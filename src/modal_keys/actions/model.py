"""Tagged action language shared by compiled bindings and the interpreter."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Union

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .keymap import Keymap

PARAMETERIZED_FIELDS = frozenset({"command", "args", "computedArgs", "repeat"})
CONDITIONAL_FIELDS = frozenset({"if", "then", "else"})


@dataclass(frozen=True, slots=True)
class LiteralAction:
    """Dispatch ``command`` with no arguments."""

    command: str

    def __post_init__(self) -> None:
        if not self.command:
            raise ValueError("command cannot be empty")


@dataclass(frozen=True, slots=True)
class SequenceAction:
    """Run each action in order, awaiting each before the next."""

    actions: tuple["Action", ...]


@dataclass(frozen=True, slots=True)
class ConditionalAction:
    """Pick ``then`` or ``otherwise`` based on the truthiness of ``condition``."""

    condition: str
    then: "Action | None" = None
    otherwise: "Action | None" = None

    def __post_init__(self) -> None:
        if not self.condition.strip():
            raise ValueError("condition cannot be empty")


@dataclass(frozen=True, slots=True)
class ParameterizedAction:
    """Dispatch ``command`` with arguments, optionally repeated.

    ``args`` may be a mapping (string values containing ``__`` are evaluated
    before every dispatch) or an expression string producing the arguments.
    ``computed_args`` values are always evaluated. ``repeat`` is a count or an
    expression.
    """

    command: str
    args: Mapping[str, Any] | str | None = None
    computed_args: Mapping[str, Any] | None = None
    repeat: int | str | None = None

    def __post_init__(self) -> None:
        if not self.command:
            raise ValueError("command cannot be empty")
        if isinstance(self.repeat, bool):
            raise ValueError("repeat must be a number or an expression")
        if isinstance(self.repeat, int) and self.repeat < 0:
            raise ValueError("repeat cannot be negative")
        if isinstance(self.args, Mapping):
            object.__setattr__(self, "args", MappingProxyType(dict(self.args)))
        if self.computed_args is not None:
            object.__setattr__(
                self, "computed_args", MappingProxyType(dict(self.computed_args))
            )


@dataclass(frozen=True, slots=True)
class KeymapRef:
    """Continue a multi-key sequence in ``keymap``."""

    keymap: "Keymap"


Action = Union[LiteralAction, SequenceAction, ConditionalAction, ParameterizedAction, KeymapRef]


def _parse_repeat(value: Any) -> int | str | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"repeat must be a number or an expression, not {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"repeat must be a whole number, not {value!r}")
        return int(value)
    return value


def parse_action(raw: Any, *, strict: bool = True) -> Action:
    """Decide the shape of a JSON-like action once.

    Accepted forms: a command name, a list of actions, ``{"if": ...}``,
    ``{"command": ..., "args": ...}``, and the single-head form
    ``{"cursorMove": {...}, "repeat": 2}``. With ``strict`` unknown fields are
    errors; otherwise they are ignored.
    """

    from .keymap import Keymap

    if isinstance(raw, str):
        return LiteralAction(raw)
    if isinstance(raw, Keymap):
        return KeymapRef(raw)
    if isinstance(raw, (list, tuple)):
        return SequenceAction(tuple(parse_action(item, strict=strict) for item in raw))
    if not isinstance(raw, Mapping):
        raise ValueError(f"action is of unknown form: {raw!r}")

    fields = set(raw)
    if "if" in fields:
        extra = fields - CONDITIONAL_FIELDS
        if extra and strict:
            raise ValueError(f"unexpected fields in conditional action: {sorted(extra)}")
        condition = raw["if"]
        if not isinstance(condition, str):
            raise ValueError("`if` must be an expression string")
        then = raw.get("then")
        otherwise = raw.get("else")
        return ConditionalAction(
            condition,
            then=parse_action(then, strict=strict) if then is not None else None,
            otherwise=parse_action(otherwise, strict=strict)
            if otherwise is not None
            else None,
        )

    if "command" in fields or fields <= PARAMETERIZED_FIELDS:
        extra = fields - PARAMETERIZED_FIELDS
        if extra and strict:
            raise ValueError(f"unexpected fields in command action: {sorted(extra)}")
        command = raw.get("command")
        if not isinstance(command, str) or not command:
            raise ValueError("command action requires a non-empty `command`")
        return _parameterized(command, raw.get("args"), raw.get("computedArgs"), raw.get("repeat"))

    heads = sorted(fields - {"repeat"})
    if len(heads) != 1:
        raise ValueError(f"command action has multiple heads: {heads}")
    return _parameterized(heads[0], raw[heads[0]], None, raw.get("repeat"))


def _parameterized(command: str, args: Any, computed: Any, repeat: Any) -> ParameterizedAction:
    if args is not None and not isinstance(args, (Mapping, str)):
        raise ValueError(f"args of '{command}' must be an object or expression")
    if computed is not None and not isinstance(computed, Mapping):
        raise ValueError(f"computedArgs of '{command}' must be an object")
    if args is None and computed is None and repeat is None:
        return ParameterizedAction(command)
    return ParameterizedAction(
        command, args=args, computed_args=computed, repeat=_parse_repeat(repeat)
    )


def iter_commands(action: Action) -> Iterator[str]:
    """Yield every command name an action may dispatch."""

    if isinstance(action, (LiteralAction, ParameterizedAction)):
        yield action.command
    elif isinstance(action, SequenceAction):
        for child in action.actions:
            yield from iter_commands(child)
    elif isinstance(action, ConditionalAction):
        for branch in (action.then, action.otherwise):
            if branch is not None:
                yield from iter_commands(branch)


def raw_commands(raw: Any) -> list[str]:
    """Best-effort command names of an unparsed action."""

    try:
        return list(iter_commands(parse_action(raw, strict=False)))
    except ValueError:
        return []


__all__ = [
    "Action",
    "ConditionalAction",
    "KeymapRef",
    "LiteralAction",
    "ParameterizedAction",
    "SequenceAction",
    "iter_commands",
    "parse_action",
    "raw_commands",
]
