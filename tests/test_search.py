from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest
from pydantic import ValidationError

from modal_keys.actions import Keymodes
from modal_keys.buffer import MemoryTextView, register_editor_commands
from modal_keys.config import ModalKeysSettings
from modal_keys.host import CommandBus, ignore_command
from modal_keys.host.types import Position, Range, Selection
from modal_keys.modes import KeyResult, Session
from modal_keys.runtime import RecordingNotifier
from modal_keys.search import (
    CURRENT_MATCH,
    OTHER_MATCHES,
    InvalidPatternError,
    SearchArgs,
    adjust_search_position,
    lines_of,
    search_matches,
)

TEXT = "the cat sat"

ENTRIES: Dict[str, Any] = {
    "normal::/": {"modalkeys.search": {}},
    "normal::f": {"modalkeys.search": {"acceptAfter": 1, "offset": "inclusive"}},
    "normal::l": "cursorRight",
}


def make_session(
    text: str = TEXT, *, settings: Optional[ModalKeysSettings] = None
) -> tuple[Session, MemoryTextView]:
    view = MemoryTextView(text)
    bus = CommandBus(fallback=ignore_command)
    register_editor_commands(bus, view)
    keymodes, problems = Keymodes.from_entries(ENTRIES)
    assert problems == []
    session = Session(
        view=view,
        bus=bus,
        notifier=RecordingNotifier(),
        settings=settings,
        keymodes=keymodes,
    )
    return session, view


def search(session: Session, **kwargs: Any) -> None:
    asyncio.run(session.search.search(SearchArgs(**kwargs)))


def press(session: Session, *keys: str) -> List[KeyResult]:
    async def feed() -> List[KeyResult]:
        return [await session.handle_key(key) for key in keys]

    return asyncio.run(feed())


def column(view: MemoryTextView) -> int:
    return view.selection.active.character


def test_lines_of_wraps_back_to_the_start_line() -> None:
    view = MemoryTextView("a\nb\nc")
    start = Position(1, 0)

    assert list(lines_of(view, start, forward=True, wrap_around=False)) == [("b", 1), ("c", 2)]
    assert list(lines_of(view, start, forward=True, wrap_around=True)) == [
        ("b", 1),
        ("c", 2),
        ("a", 0),
        ("b", 1),
    ]
    assert [line for _, line in lines_of(view, start, forward=False, wrap_around=True)] == [
        1,
        0,
        2,
        1,
    ]


def test_matches_respect_the_start_column() -> None:
    view = MemoryTextView(TEXT)
    args = SearchArgs()

    after_five = list(search_matches(view, Position(0, 5), None, "at", args))
    touching = list(search_matches(view, Position(0, 5), None, "at", args, include_start=True))

    assert after_five == [Range.on_line(0, 9, 11)]
    assert touching == [Range.on_line(0, 5, 7), Range.on_line(0, 9, 11)]


def test_wrap_around_finds_matches_before_the_start() -> None:
    view = MemoryTextView(TEXT)

    plain = list(search_matches(view, Position(0, 0), None, "cat", SearchArgs()))
    wrapped = search_matches(view, Position(0, 11), None, "cat", SearchArgs(wrap_around=True))

    assert plain == [Range.on_line(0, 4, 7)]
    assert next(wrapped) == Range.on_line(0, 4, 7)


def test_wrapping_visits_each_match_once() -> None:
    view = MemoryTextView(TEXT)

    forward = search_matches(view, Position(0, 0), None, "cat", SearchArgs(wrap_around=True))
    backward = search_matches(
        view, Position(0, 9), None, "at", SearchArgs(wrap_around=True, backwards=True)
    )

    assert list(forward) == [Range.on_line(0, 4, 7)]
    assert list(backward) == [Range.on_line(0, 5, 7), Range.on_line(0, 9, 11)]


def test_backward_matches_must_end_before_the_start() -> None:
    view = MemoryTextView(TEXT)
    args = SearchArgs(backwards=True)

    matches = list(search_matches(view, Position(0, 9), None, "at", args, include_start=True))

    assert matches == [Range.on_line(0, 5, 7)]


def test_matching_is_case_insensitive_unless_asked() -> None:
    view = MemoryTextView("The cat")

    found = search_matches(view, Position(0, 0), None, "the", SearchArgs(), include_start=True)
    assert list(found) == [Range.on_line(0, 0, 3)]
    sensitive = SearchArgs(case_sensitive=True)
    assert list(search_matches(view, Position(0, 0), None, "the", sensitive)) == []


def test_regex_matches_and_invalid_patterns() -> None:
    view = MemoryTextView(TEXT)
    args = SearchArgs(regex=True)

    assert list(search_matches(view, Position(0, 0), None, "[cs]at", args)) == [
        Range.on_line(0, 4, 7),
        Range.on_line(0, 8, 11),
    ]
    with pytest.raises(InvalidPatternError) as excinfo:
        list(search_matches(view, Position(0, 0), None, "(", args))
    assert excinfo.value.pattern == "("


def test_scanning_stops_past_the_end_position() -> None:
    view = MemoryTextView("cat\ncat\ncat")

    matches = list(search_matches(view, Position(0, 0), Position(1, 3), "cat", SearchArgs()))

    assert matches == [Range.on_line(1, 0, 3)]


def test_offsets_place_the_cursor_around_the_match() -> None:
    match = Range.on_line(0, 2, 4)
    origin = Selection.cursor(Position(0, 0))

    def place(**kwargs: Any) -> Selection:
        return adjust_search_position(match, origin, SearchArgs(**kwargs))

    assert place().active == Position(0, 2)
    assert place(offset="inclusive").active == Position(0, 4)
    assert place(backwards=True).active == Position(0, 4)
    assert place(backwards=True, offset="inclusive").active == Position(0, 2)
    assert place(offset="end").active == Position(0, 4)
    assert place(backwards=True, offset="start").active == Position(0, 2)

    extended = place(select_till_match=True, offset="inclusive")
    assert extended.anchor == Position(0, 0)
    assert extended.active == Position(0, 4)


def test_search_args_accept_camel_case_and_validate() -> None:
    args = SearchArgs.model_validate(
        {"wrapAround": True, "acceptAfter": 2, "register": "a", "doAfter": "cursorRight"}
    )

    assert args.wrap_around and args.accept_after == 2
    assert args.register_name == "a"
    assert args.reversed().backwards
    with pytest.raises(ValidationError):
        SearchArgs(accept_after=0)
    with pytest.raises(ValidationError):
        SearchArgs(offset="middle")
    with pytest.raises(ValidationError):
        SearchArgs(do_after=42)
    with pytest.raises(ValidationError):
        SearchArgs.model_validate({"bogus": True})


def test_search_with_text_moves_and_steps_between_matches() -> None:
    session, view = make_session()

    search(session, text="at")
    assert column(view) == 5
    assert session.mode == "normal"
    assert view.decorations[CURRENT_MATCH] == (Range.on_line(0, 5, 7),)
    assert view.decorations[OTHER_MATCHES] == (Range.on_line(0, 9, 11),)

    session.search.next_match()
    assert column(view) == 9
    session.search.next_match()
    assert column(view) == 9

    session.search.previous_match()
    assert column(view) == 7


def test_wrap_around_continues_from_the_other_end() -> None:
    session, view = make_session()

    search(session, text="at", wrap_around=True)
    session.search.next_match()
    session.search.next_match()

    assert column(view) == 5


def test_inclusive_and_exclusive_landing() -> None:
    session, view = make_session("ab")
    search(session, text="b")
    assert column(view) == 1

    session, view = make_session("ab")
    search(session, text="b", offset="inclusive")
    assert column(view) == 2


def test_previous_match_with_start_offset() -> None:
    session, view = make_session()

    search(session, text="at", offset="start")
    session.search.next_match()
    assert column(view) == 9

    session.search.previous_match()
    assert column(view) == 5


def test_search_continues_on_following_lines() -> None:
    session, view = make_session("one\ntwo one")

    search(session, text="one")

    assert view.selection.active == Position(1, 4)


def test_select_till_match_keeps_the_anchor() -> None:
    session, view = make_session()

    search(session, text="sat", select_till_match=True)

    assert view.selection.anchor == Position(0, 0)
    assert view.selection.active == Position(0, 8)


def test_registers_keep_separate_queries() -> None:
    session, view = make_session()

    search(session, text="sat", register="a")
    assert column(view) == 8

    view.move_cursor(0, 0)
    session.search.next_match()
    assert column(view) == 0
    session.search.next_match("a")
    assert column(view) == 8


def test_do_after_runs_once_the_search_is_accepted() -> None:
    session, view = make_session()

    search(session, text="cat", do_after="cursorRight")

    assert column(view) == 5


def test_highlighting_can_be_disabled() -> None:
    session, view = make_session()
    search(session, text="at", highlight_matches=False)
    assert view.decorations[CURRENT_MATCH] == ()

    session, view = make_session(settings=ModalKeysSettings(highlight_matches=False))
    search(session, text="at")
    assert view.decorations[OTHER_MATCHES] == ()


def test_typing_a_query_searches_incrementally() -> None:
    session, view = make_session()

    results = press(session, "/", "a", "t")

    assert [result.status for result in results] == ["ok", "captured", "captured"]
    assert session.mode == "search"
    assert session.when_context()["modalkeys"]["search"] == "at"
    assert column(view) == 5
    assert view.decorations[CURRENT_MATCH] == (Range.on_line(0, 5, 7),)
    assert view.decorations[OTHER_MATCHES] == (Range.on_line(0, 9, 11),)

    press(session, "enter")
    assert session.mode == "normal"
    assert column(view) == 5
    assert session.search.typing is None


def test_escape_restores_the_original_cursor() -> None:
    session, view = make_session()

    press(session, "/", "a", "t", "escape")

    assert session.mode == "normal"
    assert column(view) == 0
    assert view.decorations[CURRENT_MATCH] == ()
    assert view.decorations[OTHER_MATCHES] == ()


def test_backspace_edits_the_query() -> None:
    session, view = make_session()

    press(session, "/", "c", "a", "x")
    assert column(view) == 0

    press(session, "backspace")
    assert column(view) == 4
    assert session.when_context()["modalkeys"]["search"] == "ca"


def test_accept_after_finishes_a_character_search() -> None:
    session, view = make_session()

    press(session, "f", "s")

    assert session.mode == "normal"
    assert column(view) == 9
