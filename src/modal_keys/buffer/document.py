"""List-of-lines text storage backing the in-memory editor view."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

from modal_keys.host.types import Position, Range


class PositionOutOfRange(ValueError):
    """Raised when a position does not address a character slot in the document."""

    def __init__(self, message: str, *, position: Position) -> None:
        super().__init__(f"{message}: {position.line}:{position.character}")
        self.position = position


@dataclass(slots=True)
class TextDocument:
    """Text kept as a list of lines; every edit returns a new version."""

    _lines: List[str] = field(default_factory=lambda: [""])
    version: int = 0

    @classmethod
    def from_text(cls, text: str, *, version: int = 0) -> "TextDocument":
        lines = text.split("\n")
        return cls(_lines=lines, version=version)

    def snapshot(self) -> Sequence[str]:
        return tuple(self._lines)

    @property
    def text(self) -> str:
        return "\n".join(self._lines)

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def get_line(self, index: int) -> str:
        return self._lines[index]

    def ensure(self, position: Position) -> Position:
        if position.line >= self.line_count:
            raise PositionOutOfRange("Line out of range", position=position)
        if position.character > len(self._lines[position.line]):
            raise PositionOutOfRange("Character out of range", position=position)
        return position

    def clamp(self, position: Position) -> Position:
        line = min(position.line, self.line_count - 1)
        return Position(line, min(position.character, len(self._lines[line])))

    def offset_at(self, position: Position) -> int:
        position = self.ensure(position)
        offset = sum(len(self._lines[i]) + 1 for i in range(position.line))
        return offset + position.character

    def position_at(self, offset: int) -> Position:
        running = 0
        for row, line in enumerate(self._lines):
            if offset <= running + len(line):
                return Position(row, max(offset - running, 0))
            running += len(line) + 1
        return Position(len(self._lines) - 1, len(self._lines[-1]))

    def slice(self, range: Range) -> str:
        return self.text[self.offset_at(range.start) : self.offset_at(range.end)]

    def replace(self, range: Range, text: str) -> "TextDocument":
        """Return a document with ``range`` replaced by ``text``."""

        current = self.text
        start = self.offset_at(range.start)
        end = self.offset_at(range.end)
        return TextDocument.from_text(
            current[:start] + text + current[end:], version=self.version + 1
        )


__all__ = ["TextDocument", "PositionOutOfRange"]
