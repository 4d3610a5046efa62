"""Key token allow-list, normalization, and ``<all-keys>`` expansion."""

from __future__ import annotations

import re
from typing import Iterable

ALL_KEYS = "`1234567890-=qwertyuiop[]\\asdfghjkl;'zxcvbnm,./"
ALL_KEYS_TOKEN = "<all-keys>"

ALLOWED_MODIFIERS = frozenset({"ctrl", "shift", "alt", "cmd", "win", "meta"})

_NAMED_KEYS = frozenset(
    {
        "left",
        "up",
        "right",
        "down",
        "pageup",
        "pagedown",
        "end",
        "home",
        "tab",
        "enter",
        "escape",
        "space",
        "backspace",
        "delete",
        "pausebreak",
        "capslock",
        "insert",
        "numpad_multiply",
        "numpad_add",
        "numpad_separator",
        "numpad_subtract",
        "numpad_decimal",
        "numpad_divide",
    }
)
_FUNCTION_KEY = re.compile(r"f(?:[1-9]|1[0-9])")
_NUMPAD_DIGIT = re.compile(r"numpad[0-9]")
_BRACKETED = re.compile(
    r"\[(?:"
    r"f(?:[1-9]|1[0-9])|key[a-z]|digit[0-9]|numpad[0-9]"
    r"|backquote|minus|equal|bracketleft|bracketright|backslash|semicolon|quote"
    r"|comma|period|slash|arrow(?:left|up|right|down)|pageup|pagedown|end|home"
    r"|tab|enter|escape|space|backspace|delete|pause|capslock|insert"
    r"|numpad(?:multiply|add|comma|subtract|decimal|divide)"
    r")\]"
)
_BRACKETED_SUFFIX = re.compile(r"(^|\+)(\[\w+\])$")


def is_allowed_key_name(name: str) -> bool:
    lowered = name.lower()
    if len(lowered) == 1:
        return lowered in ALL_KEYS or lowered.isalnum() and lowered.isascii()
    return (
        lowered in _NAMED_KEYS
        or lowered == ALL_KEYS_TOKEN
        or _FUNCTION_KEY.fullmatch(lowered) is not None
        or _NUMPAD_DIGIT.fullmatch(lowered) is not None
        or _BRACKETED.fullmatch(lowered) is not None
    )


def split_press(press: str) -> tuple[list[str], str]:
    """Split ``ctrl+shift+a`` into modifiers and key name.

    A trailing ``+`` is the key itself (``ctrl++``).
    """

    if press.endswith("++"):
        modifiers = press[:-2].split("+") if len(press) > 2 else []
        return [m for m in modifiers if m], "+"
    parts = press.split("+")
    if len(parts) == 1:
        return [], parts[0]
    return parts[:-1], parts[-1]


def is_allowed_press(press: str) -> bool:
    modifiers, name = split_press(press)
    if not name:
        return False
    if any(modifier.lower() not in ALLOWED_MODIFIERS for modifier in modifiers):
        return False
    return is_allowed_key_name(name)


def presses(key: str) -> list[str]:
    """Split a key sequence on whitespace into individual presses."""

    return key.split()


def invalid_presses(key: str) -> list[str]:
    return [press for press in presses(key) if not is_allowed_press(press)]


def is_allowed_key(key: str) -> bool:
    return bool(presses(key)) and not invalid_presses(key)


def normalize_press(press: str) -> str:
    """Lower-case ``press``; a bracketed name such as ``[KeyA]`` keeps its case."""

    match = _BRACKETED_SUFFIX.search(press)
    if match is None:
        return press.lower()
    return press[: match.start(2)].lower() + match.group(2)


def normalize_key(key: str) -> str:
    """Normalize every press and collapse whitespace between presses."""

    return " ".join(normalize_press(press) for press in presses(key))


def expand_all_keys(key: str, keys: Iterable[str] = ALL_KEYS) -> list[str]:
    """Replace ``<all-keys>`` in ``key`` with each concrete key in ``keys``."""

    if ALL_KEYS_TOKEN not in key:
        return [key]
    return [key.replace(ALL_KEYS_TOKEN, concrete) for concrete in keys]


__all__ = [
    "ALL_KEYS",
    "ALL_KEYS_TOKEN",
    "ALLOWED_MODIFIERS",
    "expand_all_keys",
    "invalid_presses",
    "is_allowed_key",
    "is_allowed_key_name",
    "is_allowed_press",
    "normalize_key",
    "normalize_press",
    "presses",
    "split_press",
]
