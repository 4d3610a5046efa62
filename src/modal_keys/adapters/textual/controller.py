"""Textual adapter that feeds key events into a Session and reports status to UI callbacks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from modal_keys.buffer import MemoryTextView
from modal_keys.modes import INSERT_MODE, KeyResult, Session


def _noop(*_args, **_kwargs) -> None:  # pragma: no cover - default hook
    return None


# US layout: shifted character -> unshifted key.
_SHIFTED = dict(zip('~!@#$%^&*()_+{}|:"<>?', "`1234567890-=[]\\;',./"))
_TEXTUAL_NAMES: Dict[str, str] = {
    "space": "space",
    "tab": "tab",
    "enter": "enter",
    "escape": "escape",
    "backspace": "backspace",
    "delete": "delete",
    "insert": "insert",
    "home": "home",
    "end": "end",
    "pageup": "pageup",
    "pagedown": "pagedown",
    "up": "up",
    "down": "down",
    "left": "left",
    "right": "right",
}


def textual_key_to_token(key: str, character: Optional[str] = None) -> Optional[str]:
    """Translate a Textual key event into a binding token (``shift+a``, ``ctrl+x``, ``/``).

    Returns ``None`` for keys bindings cannot name.
    """

    modifiers, _, name = key.rpartition("+")
    if not modifiers and character and len(character) == 1 and character.isprintable():
        if character == " ":
            return "space"
        if character.isalpha() and character.isupper():
            return f"shift+{character.lower()}"
        if character in _SHIFTED:
            return f"shift+{_SHIFTED[character]}"
        return character.lower()
    if name in _TEXTUAL_NAMES:
        token = _TEXTUAL_NAMES[name]
    elif len(name) == 1 or (name.startswith("f") and name[1:].isdigit()):
        token = name.lower()
    else:
        return None
    return f"{modifiers}+{token}" if modifiers else token


@dataclass(slots=True)
class TextualUIHooks:
    """Callbacks invoked by the adapter to update Textual widgets."""

    update_buffer: Callable[[MemoryTextView], None]
    update_status: Callable[[str], None] = _noop
    show_search: Callable[[str], None] = _noop
    log: Callable[[str], None] = _noop


class TextualModalAdapter:
    """Bridges a :class:`Session` and its view to a Textual-friendly surface.

    In insert mode, keys no binding claims are typed into the view.
    """

    def __init__(self, session: Session, view: MemoryTextView, hooks: TextualUIHooks) -> None:
        self.session = session
        self.view = view
        self.hooks = hooks
        self._refresh()

    async def handle_textual_key(
        self, key: str, *, character: Optional[str] = None
    ) -> Optional[KeyResult]:
        token = textual_key_to_token(key, character)
        if token is None:
            self.hooks.log(f"key -> {key!r} ignored")
            return None
        self.hooks.log(f"key -> {token} mode={self.session.mode}")
        if self.session.mode == INSERT_MODE and not self.session.would_handle(token):
            result = await self._type(token, character)
        else:
            result = await self.session.handle_key(token)
        self.hooks.log(f"result <- status={result.status} message={result.message!r}")
        self._refresh()
        return result

    async def _type(self, token: str, character: Optional[str]) -> KeyResult:
        bus = self.session.bus
        if token == "backspace":
            await bus.execute("deleteLeft")
        elif token == "delete":
            await bus.execute("deleteRight")
        elif token == "enter":
            await bus.execute("type", {"text": "\n"})
        elif token == "tab":
            await bus.execute("type", {"text": "\t"})
        elif character and len(character) == 1 and character.isprintable():
            await bus.execute("type", {"text": character})
        else:
            return KeyResult(consumed=False, status="ignored")
        return KeyResult(consumed=True, status="typed")

    def status_line(self) -> str:
        state = self.session.state
        parts = [f"-- {self.session.mode.upper()} --"]
        if state.count is not None:
            parts.append(str(state.count))
        if state.prefix:
            parts.append(state.prefix)
        if state.recording_macro is not None:
            parts.append(f"recording @{state.recording_macro.register}")
        return " ".join(parts)

    def _refresh(self) -> None:
        self.hooks.update_buffer(self.view)
        self.hooks.update_status(self.status_line())
        typing = self.session.search.typing
        self.hooks.show_search(f"/{typing.text}" if typing is not None else "")


__all__ = ["TextualModalAdapter", "TextualUIHooks", "textual_key_to_token"]
