"""Host editor collaborators: value types, the TextView protocol, the command bus."""

from .bus import CommandBus, CommandCall, CommandHandler, ignore_command
from .protocols import SELECTION_CHANGED, TEXT_CHANGED, ChangeListener, TextView
from .types import Position, Range, Selection

__all__ = [
    "CommandBus",
    "CommandCall",
    "CommandHandler",
    "ignore_command",
    "TextView",
    "ChangeListener",
    "TEXT_CHANGED",
    "SELECTION_CHANGED",
    "Position",
    "Range",
    "Selection",
]
