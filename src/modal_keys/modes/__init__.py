"""Key state machine, action interpreter, and the session that ties them together."""

from .arguments import (
    DoArgs,
    EnterModeArgs,
    MacroArgs,
    PrefixArgs,
    SetArgs,
    UpdateCountArgs,
    validate_args,
)
from .history import WordHistory
from .interpreter import ActionInterpreter, is_count_sentinel
from .key_state import KeyRecording, KeyResult, KeyState
from .session import CAPTURE_MODE, INSERT_MODE, PendingCapture, Session

__all__ = [
    "ActionInterpreter",
    "CAPTURE_MODE",
    "DoArgs",
    "EnterModeArgs",
    "INSERT_MODE",
    "KeyRecording",
    "KeyResult",
    "KeyState",
    "MacroArgs",
    "PendingCapture",
    "PrefixArgs",
    "Session",
    "SetArgs",
    "UpdateCountArgs",
    "WordHistory",
    "is_count_sentinel",
    "validate_args",
]
