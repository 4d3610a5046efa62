"""Position, range, and selection value types shared with the host editor."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True, order=True)
class Position:
    """Zero-based line/character location between two characters."""

    line: int
    character: int

    def __post_init__(self) -> None:
        if self.line < 0 or self.character < 0:
            raise ValueError("Position components must be non-negative")

    def with_character(self, character: int) -> "Position":
        return Position(self.line, character)


@dataclass(frozen=True, slots=True)
class Range:
    """Ordered span of text; ``start`` never follows ``end``."""

    start: Position
    end: Position

    def __post_init__(self) -> None:
        if self.end < self.start:
            start, end = self.end, self.start
            object.__setattr__(self, "start", start)
            object.__setattr__(self, "end", end)

    @classmethod
    def on_line(cls, line: int, start: int, end: int) -> "Range":
        return cls(Position(line, start), Position(line, end))

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def contains(self, other: "Range") -> bool:
        return self.start <= other.start and other.end <= self.end


@dataclass(frozen=True, slots=True)
class Selection:
    """Directed range: ``anchor`` stays put while ``active`` is the cursor."""

    anchor: Position
    active: Position

    @classmethod
    def cursor(cls, position: Position) -> "Selection":
        return cls(position, position)

    @property
    def start(self) -> Position:
        return min(self.anchor, self.active)

    @property
    def end(self) -> Position:
        return max(self.anchor, self.active)

    @property
    def is_reversed(self) -> bool:
        return self.active < self.anchor

    @property
    def is_empty(self) -> bool:
        return self.anchor == self.active

    def as_range(self) -> Range:
        return Range(self.start, self.end)

    def same_range(self, other: "Selection") -> bool:
        return self.start == other.start and self.end == other.end


__all__ = ["Position", "Range", "Selection"]
