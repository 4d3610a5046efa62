"""Per-session keystroke state: mode, pending prefix/count, captures, macros."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from modal_keys.actions.keymap import Keymap


@dataclass(slots=True)
class KeyRecording:
    """Keys (or a single resolved action) captured for later replay."""

    mode: str
    keys: List[str] = field(default_factory=list)
    action: Any = None
    register: str = "default"


@dataclass(slots=True)
class KeyResult:
    """Outcome of :meth:`Session.handle_key`."""

    consumed: bool
    status: str = "ok"
    message: Optional[str] = None


@dataclass(slots=True)
class KeyState:
    """Mutable state one keystroke at a time; ``reset`` keeps the mode."""

    mode: str = "normal"
    mode_captures: Mapping[str, str] = field(default_factory=dict)
    prefix: str = ""
    count: Optional[int] = None
    count_finalized: bool = False
    captured_keys: List[str] = field(default_factory=list)
    key_sequence: List[str] = field(default_factory=list)
    current_keymap: Optional[Keymap] = None
    transient: Dict[str, Any] = field(default_factory=dict)
    macros: Dict[str, KeyRecording] = field(default_factory=dict)
    recording_macro: Optional[KeyRecording] = None
    replaying: bool = False

    @property
    def active_capture(self) -> Optional[str]:
        return self.mode_captures.get(self.mode)

    @property
    def captured(self) -> str:
        return "".join(self.captured_keys)

    @property
    def is_idle(self) -> bool:
        return (
            not self.prefix
            and self.count is None
            and not self.captured_keys
            and self.current_keymap is None
        )

    def reset(self) -> None:
        self.prefix = ""
        self.count = None
        self.count_finalized = False
        self.captured_keys.clear()
        self.key_sequence.clear()
        self.current_keymap = None
        self.transient.clear()

    def update(self, keymap: Keymap) -> None:
        """Continue the sequence in ``keymap``; a pending count is now final."""

        self.current_keymap = keymap
        if self.count is not None:
            self.count_finalized = True

    def update_count(self, digit: int) -> bool:
        """Append ``digit`` to the count; ``False`` once the count is final."""

        if self.count_finalized:
            return False
        self.count = (self.count or 0) * 10 + digit
        return True

    def append_prefix(self, key: str) -> None:
        self.prefix = f"{self.prefix} {key}" if self.prefix else key
        if self.count is not None:
            self.count_finalized = True

    def start_recording(self, register: str) -> KeyRecording:
        self.recording_macro = KeyRecording(mode=self.mode, register=register)
        return self.recording_macro

    def stop_recording(self) -> Optional[KeyRecording]:
        recording = self.recording_macro
        self.recording_macro = None
        if recording is not None:
            self.macros[recording.register] = recording
        return recording

    def nested(self, mode: Optional[str] = None) -> "KeyState":
        """Fresh state for replay that shares captures and macros with ``self``."""

        return KeyState(
            mode=mode or self.mode,
            mode_captures=self.mode_captures,
            macros=self.macros,
            replaying=True,
        )


__all__ = ["KeyRecording", "KeyResult", "KeyState"]
