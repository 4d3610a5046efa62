"""Nested per-mode keymaps built from ``"mode|mode::keys"`` entries."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from modal_keys.runtime.telemetry import span

from .model import Action, KeymapRef, parse_action

ALL_MODES = "__all__"
ALWAYS_MODES = ("normal", "visual")

_ENTRY = re.compile(r"^(?:([a-z|]{2,})::)?(.+)$", re.DOTALL)
_SINGLE_COLON = re.compile(r"^[a-z|]{3,}:[^:]")


@dataclass(slots=True, eq=True)
class Keymap:
    """Single-character key to action table; nested keymaps continue a sequence."""

    bindings: Dict[str, Action] = field(default_factory=dict)
    help: str = ""

    def __contains__(self, key: object) -> bool:
        return key in self.bindings

    def __getitem__(self, key: str) -> Action:
        return self.bindings[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.bindings)

    def __len__(self) -> int:
        return len(self.bindings)

    def get(self, key: str) -> Optional[Action]:
        return self.bindings.get(key)

    def copy(self) -> "Keymap":
        bindings: Dict[str, Action] = {}
        for key, action in self.bindings.items():
            if isinstance(action, KeymapRef):
                bindings[key] = KeymapRef(action.keymap.copy())
            else:
                bindings[key] = action
        return Keymap(bindings=bindings, help=self.help)

    def merged_with(self, other: "Keymap") -> "Keymap":
        """Return a copy of ``self`` overlaid with ``other`` (``other`` wins)."""

        result = self.copy()
        for key, action in other.bindings.items():
            existing = result.bindings.get(key)
            if isinstance(existing, KeymapRef) and isinstance(action, KeymapRef):
                result.bindings[key] = KeymapRef(existing.keymap.merged_with(action.keymap))
            elif isinstance(action, KeymapRef):
                result.bindings[key] = KeymapRef(action.keymap.copy())
            else:
                result.bindings[key] = action
        return result

    def insert(self, sequence: str, action: Action) -> None:
        """Bind ``sequence`` (one key per character), creating nested keymaps."""

        if not sequence:
            raise ValueError("sequence cannot be empty")
        keymap = self
        for key in sequence[:-1]:
            current = keymap.bindings.get(key)
            if not isinstance(current, KeymapRef):
                current = KeymapRef(Keymap())
                keymap.bindings[key] = current
            keymap = current.keymap
        keymap.bindings[sequence[-1]] = action

    def lookup(self, sequence: str) -> Optional[Action]:
        keymap: Keymap = self
        action: Optional[Action] = None
        for index, key in enumerate(sequence):
            action = keymap.bindings.get(key)
            if action is None:
                return None
            if index < len(sequence) - 1:
                if not isinstance(action, KeymapRef):
                    return None
                keymap = action.keymap
        return action


@dataclass(slots=True)
class Keymodes:
    """Top-level keymap for every mode."""

    commands: Dict[str, Keymap] = field(default_factory=dict)

    def get(self, mode: str) -> Optional[Keymap]:
        return self.commands.get(mode)

    def __contains__(self, mode: object) -> bool:
        return mode in self.commands

    def modes(self) -> Tuple[str, ...]:
        return tuple(self.commands)

    @classmethod
    def from_entries(
        cls, entries: Mapping[str, Any], *, logger_name: str | None = "modal_keys.actions"
    ) -> Tuple["Keymodes", List[str]]:
        """Build keymaps from flat entries, returning ``(keymodes, problems)``.

        Keys look like ``"normal|visual::dw"``; without a mode list the entry
        applies to every mode. A sequence that is a prefix of another one in
        the same mode is rejected, a repeated sequence overwrites the earlier
        one.
        """

        problems: List[str] = []
        sequences: Dict[str, List[str]] = {}
        per_mode: Dict[str, Keymap] = {}

        with span(
            "keymaps::from_entries",
            logger_name=logger_name,
            component="actions",
            metadata={"entries": len(entries)},
        ) as handle:
            for raw_key, raw_action in entries.items():
                if _SINGLE_COLON.match(raw_key):
                    problems.append(
                        f"The key '{raw_key}' looks like a mode list with a single ':'; "
                        "use '::' to separate modes from keys."
                    )
                match = _ENTRY.match(raw_key)
                if match is None or not match.group(2):
                    problems.append(f"Invalid keymap entry '{raw_key}'.")
                    continue
                modes = match.group(1).split("|") if match.group(1) else [ALL_MODES]
                sequence = match.group(2)
                try:
                    action = parse_action(raw_action)
                except ValueError as exc:
                    problems.append(f"Invalid action for '{raw_key}': {exc}")
                    continue

                for mode in modes:
                    if not mode:
                        continue
                    known = sequences.setdefault(mode, [])
                    conflict = _conflict(known, sequence)
                    if conflict is not None:
                        problems.append(
                            f"The key sequence '{sequence}' conflicts with "
                            f"'{conflict}' in mode '{mode}'."
                        )
                        continue
                    if sequence in known:
                        problems.append(
                            f"The key sequence '{sequence}' is bound more than once "
                            f"in mode '{mode}'; the last binding wins."
                        )
                    else:
                        known.append(sequence)
                    per_mode.setdefault(mode, Keymap()).insert(sequence, action)

            shared = per_mode.pop(ALL_MODES, None)
            if shared is not None:
                for mode in ALWAYS_MODES:
                    per_mode.setdefault(mode, Keymap())
                for mode, keymap in list(per_mode.items()):
                    per_mode[mode] = shared.merged_with(keymap)
            handle.add_metadata("modes", ",".join(per_mode))
            handle.add_metadata("problems", len(problems))

        return cls(commands=per_mode), problems


def _conflict(known: List[str], sequence: str) -> Optional[str]:
    for existing in known:
        if existing == sequence:
            continue
        if existing.startswith(sequence) or sequence.startswith(existing):
            return existing
    return None


__all__ = ["Keymap", "Keymodes", "ALL_MODES"]
