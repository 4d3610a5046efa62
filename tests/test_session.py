from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from modal_keys.actions import Keymodes
from modal_keys.bindings import PREFIX_COMMAND, compile_bindings, parse_binding_spec
from modal_keys.buffer import MemoryTextView, register_editor_commands
from modal_keys.host import CommandBus, ignore_command
from modal_keys.modes import KeyResult, Session, WordHistory
from modal_keys.modes.session import (
    DEFINE_KEYMAP,
    FIX_IMPORT,
    HELP_DETAILS,
    HELP_KEYMAPS,
    HELP_VISUAL,
    IGNORE,
    LET_ME_TYPE,
)
from modal_keys.runtime import RecordingNotifier

LINES = "one\ntwo\nthree\nfour\nfive"

ITEMS: List[Dict[str, Any]] = [
    {"key": "j", "mode": "normal", "do": {"command": "cursorDown", "repeat": "(count || 1)"}},
    {"key": "l", "mode": "normal", "do": "cursorRight"},
    {"key": "g g", "mode": "normal", "do": {"cursorMove": {"to": "up", "value": "__line"}}},
    {"key": "i", "mode": "normal", "do": "modalkeys.enterInsert"},
    {"key": "escape", "mode": "insert", "do": "modalkeys.enterNormal"},
    {
        "key": "shift+'",
        "mode": "normal",
        "resetTransient": False,
        "do": {"modalkeys.set": {"name": "register", "value": "a", "transient": True}},
    },
]

ENTRIES: Dict[str, Any] = {
    "normal::l": "cursorRight",
    "normal::x": "deleteRight",
    "normal::q": "modalkeys.toggleRecordingMacro",
    "normal::@": "modalkeys.replayMacro",
    "normal::.": "modalkeys.repeatLastChange",
    "normal::,": "modalkeys.repeatLastUsedSelection",
    "normal::v": {"modalkeys.enterMode": {"mode": "visual"}},
    "normal::b": {"modalkeys.enterMode": {"mode": "bogus"}},
    "normal::r": {
        "modalkeys.captureKeys": {
            "acceptAfter": 2,
            "doAfter": {"command": "type", "computedArgs": {"text": "captured"}},
        }
    },
    "normal::dw": "deleteWord",
}


def make_session(
    text: str = LINES,
    *,
    items: Optional[List[Dict[str, Any]]] = None,
    entries: Optional[Dict[str, Any]] = None,
    notifier: Optional[RecordingNotifier] = None,
) -> tuple[Session, MemoryTextView, CommandBus]:
    view = MemoryTextView(text)
    bus = CommandBus(fallback=ignore_command, record_history=True)
    register_editor_commands(bus, view)
    bindings = []
    if items is not None:
        spec = parse_binding_spec(
            {"header": {"version": "1.0"}, "bind": {"name": "T", "description": "", "items": items}}
        )
        bindings = compile_bindings(spec)
    keymodes = None
    if entries is not None:
        keymodes, problems = Keymodes.from_entries(entries)
        assert problems == []
    session = Session(
        view=view,
        bus=bus,
        notifier=notifier or RecordingNotifier(),
        keymodes=keymodes,
        bindings=bindings,
    )
    return session, view, bus


def press(session: Session, *keys: str) -> List[KeyResult]:
    async def feed() -> List[KeyResult]:
        return [await session.handle_key(key) for key in keys]

    return asyncio.run(feed())


def test_counts_prefix_the_next_binding() -> None:
    session, view, _ = make_session(items=ITEMS)

    results = press(session, "3", "j")

    assert [result.status for result in results] == ["count", "ok"]
    assert view.selection.active.line == 3
    assert session.state.count is None


def test_multi_digit_counts() -> None:
    session, view, _ = make_session(items=ITEMS)

    press(session, "1", "0", "j")

    assert view.selection.active.line == 4


def test_prefix_bindings_continue_a_sequence() -> None:
    session, view, _ = make_session(items=ITEMS)
    view.move_cursor(3, 0)

    first, second = press(session, "g", "g")

    assert first.status == "pending"
    assert session.state.prefix == ""
    assert second.status == "ok"
    assert view.selection.active.line == 0


def test_undefined_keys_reset_and_offer_remediation() -> None:
    notifier = RecordingNotifier()
    session, _, _ = make_session(items=ITEMS, notifier=notifier)

    pending, failed = press(session, "g", "z")

    assert pending.status == "pending"
    assert failed.status == "error"
    assert failed.message == "Undefined key binding: `g z`"
    assert notifier.messages[-1] == (
        "error",
        "ModalKeys - Undefined key binding: `g z`",
        (FIX_IMPORT, HELP_VISUAL, HELP_DETAILS),
    )
    assert session.state.is_idle
    assert press(session, "l")[0].status == "ok"


def test_missing_keymap_offers_to_type() -> None:
    notifier = RecordingNotifier(LET_ME_TYPE)
    session, _, _ = make_session(notifier=notifier)

    (result,) = press(session, "a")

    assert result.status == "error"
    _, message, actions = notifier.messages[0]
    assert message == "ModalKeys - no keymap defined for normal mode."
    assert actions == (LET_ME_TYPE, DEFINE_KEYMAP, HELP_KEYMAPS, IGNORE)
    assert session.mode == "insert"

    ignoring = RecordingNotifier(IGNORE)
    session, _, _ = make_session(notifier=ignoring)
    press(session, "a")
    assert session.mode == "normal"


def test_mode_commands_switch_modes() -> None:
    session, _, _ = make_session(items=ITEMS)

    press(session, "i")
    assert session.mode == "insert"
    assert not session.would_handle("j")
    assert session.would_handle("escape")

    press(session, "escape")
    assert session.mode == "normal"
    assert session.would_handle("j")
    assert session.would_handle("7")


def test_unknown_modes_are_reported() -> None:
    notifier = RecordingNotifier()
    session, _, _ = make_session(entries=ENTRIES, notifier=notifier)

    press(session, "v")
    assert session.mode == "visual"

    session.enter_mode("normal")
    (result,) = press(session, "b")
    assert result.status == "error"
    assert session.mode == "normal"
    assert notifier.of_level("error") == ["Unknown mode 'bogus'"]


def test_handle_key_can_switch_mode_first() -> None:
    session, view, _ = make_session(entries={"visual::l": "cursorRightSelect"})

    result = asyncio.run(session.handle_key("l", mode="visual"))

    assert result.status == "ok"
    assert session.mode == "visual"
    assert view.selection.anchor.character == 0
    assert view.selection.active.character == 1


def test_handle_key_reports_an_unknown_mode() -> None:
    notifier = RecordingNotifier()
    session, view, _ = make_session(items=ITEMS, notifier=notifier)

    result = asyncio.run(session.handle_key("j", mode="bogus"))

    assert result.status == "error"
    assert result.message == "Unknown mode 'bogus'"
    assert notifier.of_level("error") == ["Unknown mode 'bogus'"]
    assert session.mode == "normal"
    assert view.selection.active.line == 0


def test_keymap_sequences_are_pending_until_complete() -> None:
    session, _, bus = make_session(entries=ENTRIES)

    first, second = press(session, "d", "w")

    assert first.status == "pending"
    assert second.status == "ok"
    assert len(bus.calls("deleteWord")) == 1


def test_transient_flags_survive_until_the_next_word() -> None:
    session, _, _ = make_session(items=ITEMS)

    (result,) = press(session, "shift+'")
    assert result.status == "pending"
    assert session.state.transient == {"register": "a"}
    assert session.when_context()["modalkeys"]["register"] == "a"
    assert session.expression_values()["register"] == "a"

    press(session, "l")
    assert session.state.transient == {}


def test_set_and_prefix_commands() -> None:
    notifier = RecordingNotifier()
    session, _, bus = make_session(items=ITEMS, notifier=notifier)

    asyncio.run(bus.execute("modalkeys.set", {"name": "wrap", "value": 2}))
    asyncio.run(bus.execute(PREFIX_COMMAND, {"key": "g", "flag": "seen_g"}))

    assert session.flags == {"wrap": 2}
    context = session.when_context()["modalkeys"]
    assert context["wrap"] == 2
    assert context["prefix"] == "g"
    assert context["seen_g"] is True

    asyncio.run(bus.execute("modalkeys.set", {"bogus": 1}))
    (message,) = notifier.of_level("error")
    assert message.startswith("Invalid arguments to `modalkeys.set`")


def test_host_context_is_visible_to_bindings() -> None:
    session, _, _ = make_session(items=ITEMS)
    session.host_context["editorTextFocus"] = True

    context = session.when_context()

    assert context["editorTextFocus"] is True
    assert context["modalkeys"]["mode"] == "normal"


def test_macros_record_and_replay_keys() -> None:
    session, view, _ = make_session("abcdefgh", entries=ENTRIES)

    press(session, "q", "l", "l", "q")
    assert view.selection.active.character == 2
    assert session.state.macros["default"].keys == ["l", "l", "q"]
    assert session.state.recording_macro is None

    press(session, "@")
    assert view.selection.active.character == 4
    press(session, "@")
    assert view.selection.active.character == 6
    assert session.state.recording_macro is None


def test_replaying_an_empty_register_is_an_error() -> None:
    notifier = RecordingNotifier()
    session, _, _ = make_session(entries=ENTRIES, notifier=notifier)

    (result,) = press(session, "@")

    assert result.status == "error"
    assert notifier.of_level("error") == ["No macro recorded in register 'default'"]


def test_repeat_last_change_and_selection() -> None:
    session, view, _ = make_session("abcdef", entries=ENTRIES)

    press(session, "x", "l")
    assert view.text == "bcdef"
    assert session.words.verb is not None and session.words.verb.keys == ["x"]
    assert session.words.noun is not None and session.words.noun.keys == ["l"]

    press(session, ".")
    assert view.text == "bdef"
    press(session, ".")
    assert view.text == "bef"
    assert session.words.verb.keys == ["x"]

    press(session, ",")
    assert view.selection.active.character == 2
    assert session.words.noun.keys == ["l"]


def test_capture_keys_runs_the_follow_up_action() -> None:
    session, view, _ = make_session("abc", entries=ENTRIES)

    results = press(session, "r", "z", "y")

    assert [result.status for result in results] == ["ok", "captured", "captured"]
    assert view.text == "zyabc"
    assert session.mode == "normal"
    assert session.words.verb is not None
    assert session.words.verb.keys == ["r", "z", "y"]


def test_capture_keys_accepts_on_enter_and_cancels_on_escape() -> None:
    session, view, _ = make_session("abc", entries=ENTRIES)

    press(session, "r", "q", "enter")
    assert view.text == "qabc"
    assert session.mode == "normal"

    press(session, "r", "escape")
    assert view.text == "qabc"
    assert session.mode == "normal"


def test_word_history_classifies_nouns_and_verbs() -> None:
    history = WordHistory()

    history.push_key("l", "normal")
    history.note_selection_change()
    history.complete()
    assert history.noun is not None and history.noun.keys == ["l"]

    history.push_key("x", "normal")
    history.note_selection_change()
    history.note_text_change()
    history.complete()
    assert history.verb is not None and history.verb.keys == ["x"]
    assert history.noun.keys == ["l"]

    history.push_key(".", "normal")
    history.discard_current()
    history.note_text_change()
    history.complete()
    assert history.verb.keys == ["x"]
    assert history.last_word is not None and history.last_word.keys == ["x"]

    history.record_action("save", "normal")
    history.abandon()
    history.complete()
    assert history.last_word.keys == ["x"]


def test_replayed_sequences_dispatch_like_live_typing() -> None:
    session, _, bus = make_session(entries=ENTRIES)

    press(session, "q", "d", "w", "q")
    press(session, "@")

    assert len(bus.calls("deleteWord")) == 2
    assert session.state.macros["default"].keys == ["d", "w", "q"]
    assert session.state.is_idle
    assert not session.state.replaying


CHAIN_ITEMS: List[Dict[str, Any]] = [
    {"key": "g x", "mode": "normal", "do": "cursorRight"},
    {"key": "d w", "mode": "normal", "allowedPrefixes": ["g"], "do": "deleteWord"},
    {"key": "c i w", "mode": "normal", "do": "deleteWord"},
]


def test_chains_can_start_under_an_allowed_prefix() -> None:
    session, _, bus = make_session("one two", items=CHAIN_ITEMS)

    results = press(session, "g", "d", "w")

    assert [result.status for result in results] == ["pending", "pending", "ok"]
    assert len(bus.calls("deleteWord")) == 1
    assert session.state.prefix == ""

    press(session, "d", "w")
    assert len(bus.calls("deleteWord")) == 2


def test_chains_are_unreachable_under_an_unrelated_prefix() -> None:
    notifier = RecordingNotifier()
    session, _, bus = make_session("one two", items=CHAIN_ITEMS, notifier=notifier)

    results = press(session, "g", "c", "i", "w")

    assert [result.status for result in results] == ["pending", "error", "error", "error"]
    assert bus.calls("deleteWord") == []
    assert notifier.of_level("error")[0] == "ModalKeys - Undefined key binding: `g c`"
    assert session.state.is_idle
