"""Host editor commands over a :class:`MemoryTextView` for headless hosts and the demo."""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

from modal_keys.errors import DispatchError
from modal_keys.host.bus import CommandBus
from modal_keys.host.types import Position, Range, Selection

from .view import MemoryTextView

Motion = Callable[[MemoryTextView, Position, int], Position]


def _left(view: MemoryTextView, position: Position, amount: int) -> Position:
    return position.with_character(max(position.character - amount, 0))


def _right(view: MemoryTextView, position: Position, amount: int) -> Position:
    length = len(view.line_at(position.line))
    return position.with_character(min(position.character + amount, length))


def _vertical(view: MemoryTextView, position: Position, delta: int) -> Position:
    line = min(max(position.line + delta, 0), view.line_count - 1)
    return Position(line, min(position.character, len(view.line_at(line))))


def _up(view: MemoryTextView, position: Position, amount: int) -> Position:
    return _vertical(view, position, -amount)


def _down(view: MemoryTextView, position: Position, amount: int) -> Position:
    return _vertical(view, position, amount)


def _line_start(view: MemoryTextView, position: Position, _amount: int) -> Position:
    return position.with_character(0)


def _line_end(view: MemoryTextView, position: Position, _amount: int) -> Position:
    return position.with_character(len(view.line_at(position.line)))


def _word_right(view: MemoryTextView, position: Position, amount: int) -> Position:
    for _ in range(amount):
        text = view.line_at(position.line)
        column = position.character
        while column < len(text) and (text[column].isalnum() or text[column] == "_"):
            column += 1
        while column < len(text) and not (text[column].isalnum() or text[column] == "_"):
            column += 1
        position = position.with_character(column)
    return position


MOTIONS: Dict[str, Motion] = {
    "left": _left,
    "right": _right,
    "up": _up,
    "down": _down,
    "wrappedLineStart": _line_start,
    "wrappedLineEnd": _line_end,
    "wordRight": _word_right,
}


def move_selections(
    view: MemoryTextView, motion: Motion, amount: int = 1, *, select: bool = False
) -> None:
    moved = []
    for selection in view.selections:
        active = motion(view, selection.active, amount)
        anchor = selection.anchor if select else active
        moved.append(Selection(anchor, active))
    view.selections = moved


def _cursor_move(view: MemoryTextView, args: Optional[Mapping[str, Any]] = None) -> None:
    """``cursorMove`` with ``{"to": ..., "value": n, "select": bool}``."""

    args = dict(args or {})
    target = args.get("to")
    motion = MOTIONS.get(target) if isinstance(target, str) else None
    if motion is None:
        raise DispatchError(f"cursorMove: unknown target {target!r}", command="cursorMove")
    value = args.get("value", 1)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DispatchError(
            f"cursorMove: value must be a number, not {value!r}", command="cursorMove"
        )
    move_selections(view, motion, int(value), select=bool(args.get("select", False)))


def _type(view: MemoryTextView, args: Optional[Mapping[str, Any]] = None) -> None:
    text = (args or {}).get("text")
    if not isinstance(text, str):
        raise DispatchError("type: `text` must be a string", command="type")
    selection = view.selection
    view.replace(selection.as_range(), text)


def _delete_left(view: MemoryTextView, *_args: Any) -> None:
    selection = view.selection
    if not selection.is_empty:
        view.delete(selection.as_range())
        return
    active = selection.active
    if active.character > 0:
        view.delete(Range(active.with_character(active.character - 1), active))
    elif active.line > 0:
        previous = Position(active.line - 1, len(view.line_at(active.line - 1)))
        view.delete(Range(previous, active))


def _delete_right(view: MemoryTextView, *_args: Any) -> None:
    selection = view.selection
    if not selection.is_empty:
        view.delete(selection.as_range())
        return
    active = selection.active
    if active.character < len(view.line_at(active.line)):
        view.delete(Range(active, active.with_character(active.character + 1)))
    elif active.line + 1 < view.line_count:
        view.delete(Range(active, Position(active.line + 1, 0)))


def register_editor_commands(bus: CommandBus, view: MemoryTextView) -> None:
    """Register ``cursorMove``, ``cursorLeft`` ... ``type`` and deletions on ``bus``."""

    simple = {
        "cursorLeft": _left,
        "cursorRight": _right,
        "cursorUp": _up,
        "cursorDown": _down,
        "cursorHome": _line_start,
        "cursorEnd": _line_end,
        "cursorWordRight": _word_right,
    }
    for command, motion in simple.items():
        bus.register(
            command,
            lambda *_args, motion=motion: move_selections(view, motion),
            replace=True,
        )
        bus.register(
            f"{command}Select",
            lambda *_args, motion=motion: move_selections(view, motion, select=True),
            replace=True,
        )
    bus.register("cursorMove", lambda args=None: _cursor_move(view, args), replace=True)
    bus.register("type", lambda args=None: _type(view, args), replace=True)
    bus.register("deleteLeft", lambda *args: _delete_left(view, *args), replace=True)
    bus.register("deleteRight", lambda *args: _delete_right(view, *args), replace=True)


__all__ = ["MOTIONS", "move_selections", "register_editor_commands"]
