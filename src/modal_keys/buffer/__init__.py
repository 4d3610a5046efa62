"""In-memory document, editor view, and editor commands."""

from .commands import MOTIONS, move_selections, register_editor_commands
from .document import PositionOutOfRange, TextDocument
from .view import MemoryTextView

__all__ = [
    "MOTIONS",
    "MemoryTextView",
    "PositionOutOfRange",
    "TextDocument",
    "move_selections",
    "register_editor_commands",
]
