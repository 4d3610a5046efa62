"""Abstract host editor surface consumed by the interpreter and the search matcher."""

from __future__ import annotations

from typing import Callable, Hashable, Optional, Protocol, Sequence

from .types import Position, Range, Selection

ChangeListener = Callable[[str], None]

TEXT_CHANGED = "text"
SELECTION_CHANGED = "selection"


class TextView(Protocol):
    """One open editor: its document lines, selections, and decorations."""

    handle: Hashable
    file_name: str
    language_id: str

    @property
    def selections(self) -> Sequence[Selection]:
        ...

    @selections.setter
    def selections(self, value: Sequence[Selection]) -> None:
        ...

    @property
    def line_count(self) -> int:
        ...

    def line_at(self, line: int) -> str:
        ...

    def get_text(self, range: Optional[Range] = None) -> str:
        ...

    def word_range_at(self, position: Position) -> Optional[Range]:
        ...

    def visible_ranges(self) -> Sequence[Range]:
        ...

    def set_decorations(self, kind: str, ranges: Sequence[Range]) -> None:
        ...

    def reveal(self, range: Range) -> None:
        ...

    def add_change_listener(self, listener: ChangeListener) -> None:
        """Register ``listener``; it receives ``"text"`` or ``"selection"``."""


__all__ = [
    "TextView",
    "ChangeListener",
    "TEXT_CHANGED",
    "SELECTION_CHANGED",
]
