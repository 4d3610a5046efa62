"""Word tracking behind repeat-last-change and repeat-last-selection."""

from __future__ import annotations

from typing import Any, Optional

from .key_state import KeyRecording


class WordHistory:
    """Split completed words into the last *verb* (edited text) and *noun* (moved selection).

    A word is the key sequence, or the single resolved action, that led to
    exactly one terminal action.
    """

    def __init__(self) -> None:
        self.current: Optional[KeyRecording] = None
        self.last_word: Optional[KeyRecording] = None
        self.noun: Optional[KeyRecording] = None
        self.verb: Optional[KeyRecording] = None
        self._text_changed = False
        self._selection_changed = False
        self._discard = False

    def push_key(self, key: str, mode: str, *, capturing: bool = False) -> None:
        if self.current is None:
            if capturing and self.last_word is not None:
                self.current = self.last_word
            else:
                self.current = KeyRecording(mode=mode)
        self.current.keys.append(key)

    def abandon(self) -> None:
        """Drop the word in progress after an error."""

        self.current = None
        self._text_changed = False
        self._selection_changed = False
        self._discard = False

    def record_action(self, action: Any, mode: str) -> None:
        """Remember an action dispatched without keystrokes (e.g. by the host)."""

        if self.current is None:
            self.current = KeyRecording(mode=mode, action=action)

    def note_text_change(self) -> None:
        self._text_changed = True

    def note_selection_change(self) -> None:
        self._selection_changed = True

    def discard_current(self) -> None:
        """Do not classify the word in progress (it replays another word)."""

        self._discard = True

    def complete(self) -> None:
        word = self.current
        self.current = None
        if word is not None and not self._discard:
            self.last_word = word
            if self._text_changed:
                self.verb = word
            elif self._selection_changed:
                self.noun = word
        self._text_changed = False
        self._selection_changed = False
        self._discard = False


__all__ = ["WordHistory"]
