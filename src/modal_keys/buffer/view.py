"""In-memory ``TextView`` used by tests, the CLI, and headless hosts."""

from __future__ import annotations

import itertools
import re
from typing import Dict, Hashable, List, Optional, Sequence

from modal_keys.host.protocols import SELECTION_CHANGED, TEXT_CHANGED, ChangeListener
from modal_keys.host.types import Position, Range, Selection

from .document import TextDocument

_WORD = re.compile(r"\w+")
_HANDLES = itertools.count(1)


class MemoryTextView:
    """Editor view over a :class:`TextDocument` with multi-cursor selections."""

    def __init__(
        self,
        text: str = "",
        *,
        file_name: str = "untitled",
        language_id: str = "plaintext",
        handle: Hashable | None = None,
        visible_lines: tuple[int, int] | None = None,
    ) -> None:
        self.document = TextDocument.from_text(text)
        self.file_name = file_name
        self.language_id = language_id
        self.handle = handle if handle is not None else f"memory-{next(_HANDLES)}"
        self.visible_lines = visible_lines
        self.decorations: Dict[str, tuple[Range, ...]] = {}
        self.revealed: List[Range] = []
        self._selections: tuple[Selection, ...] = (Selection.cursor(Position(0, 0)),)
        self._listeners: List[ChangeListener] = []

    @property
    def text(self) -> str:
        return self.document.text

    @property
    def selections(self) -> Sequence[Selection]:
        return self._selections

    @selections.setter
    def selections(self, value: Sequence[Selection]) -> None:
        updated = tuple(value)
        if not updated:
            raise ValueError("a view needs at least one selection")
        for selection in updated:
            self.document.ensure(selection.anchor)
            self.document.ensure(selection.active)
        changed = updated != self._selections
        self._selections = updated
        if changed:
            self._notify(SELECTION_CHANGED)

    @property
    def selection(self) -> Selection:
        return self._selections[0]

    def move_cursor(self, line: int, character: int) -> None:
        self.selections = [Selection.cursor(Position(line, character))]

    @property
    def line_count(self) -> int:
        return self.document.line_count

    def line_at(self, line: int) -> str:
        return self.document.get_line(line)

    def get_text(self, range: Optional[Range] = None) -> str:
        if range is None:
            return self.document.text
        return self.document.slice(range)

    def word_range_at(self, position: Position) -> Optional[Range]:
        line = self.document.get_line(position.line)
        for match in _WORD.finditer(line):
            if match.start() <= position.character <= match.end():
                return Range.on_line(position.line, match.start(), match.end())
        return None

    def visible_ranges(self) -> Sequence[Range]:
        last = self.document.line_count - 1
        first_line, last_line = self.visible_lines or (0, last)
        last_line = min(last_line, last)
        return (
            Range(
                Position(first_line, 0),
                Position(last_line, len(self.document.get_line(last_line))),
            ),
        )

    def set_decorations(self, kind: str, ranges: Sequence[Range]) -> None:
        self.decorations[kind] = tuple(ranges)

    def reveal(self, range: Range) -> None:
        self.revealed.append(range)

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def replace(self, range: Range, text: str) -> None:
        """Replace ``range`` and leave a cursor after the inserted text."""

        offset = self.document.offset_at(range.start) + len(text)
        self.document = self.document.replace(range, text)
        self._notify(TEXT_CHANGED)
        self._selections = (Selection.cursor(self.document.position_at(offset)),)

    def insert(self, position: Position, text: str) -> None:
        self.replace(Range(position, position), text)

    def delete(self, range: Range) -> None:
        self.replace(range, "")

    def _notify(self, kind: str) -> None:
        for listener in list(self._listeners):
            listener(kind)


__all__ = ["MemoryTextView"]
