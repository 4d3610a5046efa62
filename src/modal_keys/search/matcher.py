"""Lazy line-by-line text search and match-relative cursor placement."""

from __future__ import annotations

import re
from typing import Callable, Iterator, Optional, Protocol, Tuple

from modal_keys.errors import ModalKeysError
from modal_keys.host.types import Position, Range, Selection

from .args import SearchArgs

LineMatches = Callable[[str, Optional[int], bool], Iterator[Tuple[int, int]]]


class InvalidPatternError(ModalKeysError):
    """Raised when a regex search target does not compile."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid search pattern '{pattern}': {reason}")
        self.pattern = pattern


class LineSource(Protocol):
    @property
    def line_count(self) -> int:
        ...

    def line_at(self, line: int) -> str:
        ...


def lines_of(
    document: LineSource, start: Position, *, forward: bool, wrap_around: bool
) -> Iterator[Tuple[str, int]]:
    """Yield ``(text, line)`` from ``start`` in scan order.

    With ``wrap_around`` the walk restarts at the opposite document boundary
    and ends on the starting line.
    """

    step = 1 if forward else -1
    line = start.line
    while 0 <= line < document.line_count:
        yield document.line_at(line), line
        line += step
    if not wrap_around:
        return
    line = 0 if forward else document.line_count - 1
    while (line <= start.line) if forward else (line >= start.line):
        yield document.line_at(line), line
        line += step


def _after(offset: Optional[int], forward: bool, column: int, inclusive: bool) -> bool:
    if offset is None:
        return True
    if inclusive:
        return column >= offset if forward else column <= offset
    return column > offset if forward else column < offset


def regex_matcher(pattern: str, args: SearchArgs) -> LineMatches:
    flags = 0 if args.case_sensitive else re.IGNORECASE
    try:
        compiled = re.compile(pattern, flags)
    except re.error as exc:
        raise InvalidPatternError(pattern, str(exc)) from exc

    def matches(
        line: str, offset: Optional[int], inclusive: bool = False
    ) -> Iterator[Tuple[int, int]]:
        for match in compiled.finditer(line):
            edge = match.start() if args.forward else match.end()
            if _after(offset, args.forward, edge, inclusive):
                yield match.start(), match.end() - match.start()

    return matches


def literal_matcher(target: str, args: SearchArgs) -> LineMatches:
    needle = target if args.case_sensitive else target.casefold()

    def matches(
        line: str, offset: Optional[int], inclusive: bool = False
    ) -> Iterator[Tuple[int, int]]:
        haystack = line if args.case_sensitive else line.casefold()
        index = haystack.find(needle)
        while index >= 0:
            edge = index if args.forward else index + len(target)
            if _after(offset, args.forward, edge, inclusive):
                yield index, len(target)
            index = haystack.find(needle, index + 1)

    return matches


def search_matches(
    document: LineSource,
    start: Position,
    end: Optional[Position],
    target: str,
    args: SearchArgs,
    *,
    include_start: bool = False,
) -> Iterator[Range]:
    """Generate match ranges for ``target`` starting at ``start``.

    Matches on the starting line must start after (forward) or end before
    (backward) ``start``, or may touch it with ``include_start``; scanning
    stops past ``end`` when given. Backward scans reverse each line's forward
    matches. A wrapped scan yields each match once.
    """

    forward = args.forward
    matcher = regex_matcher(target, args) if args.regex else literal_matcher(target, args)
    offset: Optional[int] = start.character
    seen_start = False
    for text, line in lines_of(document, start, forward=forward, wrap_around=args.wrap_around):
        if end is not None and (line > end.line if forward else line < end.line):
            return
        found = list(matcher(text, offset, include_start))
        if line == start.line and seen_start:
            # second visit: only what the first visit skipped
            found = [
                (column, length)
                for column, length in found
                if not _after(
                    start.character,
                    forward,
                    column if forward else column + length,
                    include_start,
                )
            ]
        seen_start = seen_start or line == start.line
        if not forward:
            found.reverse()
        for column, length in found:
            yield Range.on_line(line, column, column + length)
        offset = None


def adjust_search_position(
    match: Range, selection: Selection, args: SearchArgs
) -> Selection:
    """Place the cursor relative to ``match`` according to ``args.offset``.

    ``inclusive`` lands past the match in the scan direction, ``exclusive``
    stops short of it, ``start``/``end`` pick the matching edge regardless of
    direction. ``select_till_match`` keeps the original anchor.
    """

    forward = args.forward
    if args.offset == "start":
        active = match.start
    elif args.offset == "end":
        active = match.end
    elif args.offset == "inclusive":
        active = match.end if forward else match.start
    else:
        active = match.start if forward else match.end
    if args.select_till_match:
        return Selection(selection.anchor, active)
    return Selection.cursor(active)


__all__ = [
    "InvalidPatternError",
    "adjust_search_position",
    "lines_of",
    "literal_matcher",
    "regex_matcher",
    "search_matches",
]
