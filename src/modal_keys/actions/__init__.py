"""Action language and keymaps."""

from .keymap import ALL_MODES, Keymap, Keymodes
from .model import (
    Action,
    ConditionalAction,
    KeymapRef,
    LiteralAction,
    ParameterizedAction,
    SequenceAction,
    iter_commands,
    parse_action,
    raw_commands,
)

__all__ = [
    "ALL_MODES",
    "Action",
    "ConditionalAction",
    "Keymap",
    "KeymapRef",
    "Keymodes",
    "LiteralAction",
    "ParameterizedAction",
    "SequenceAction",
    "iter_commands",
    "parse_action",
    "raw_commands",
]
