"""User-facing reporting: the notifier protocol and the capped error queue."""

from __future__ import annotations

from typing import List, Optional, Protocol

from modal_keys.runtime import telemetry


class Notifier(Protocol):
    """Surface messages to the user, optionally offering remediation actions.

    Each method returns the label of the chosen action, or ``None``.
    """

    def show_error(self, message: str, *actions: str) -> Optional[str]:
        ...

    def show_warning(self, message: str, *actions: str) -> Optional[str]:
        ...

    def show_info(self, message: str, *actions: str) -> Optional[str]:
        ...


class LoggingNotifier:
    """Notifier that writes every message to telemetry and never picks an action."""

    def __init__(self, *, logger_name: str | None = "modal_keys") -> None:
        self._logger_name = logger_name

    def _emit(self, level: str, message: str, actions: tuple[str, ...]) -> None:
        data = {"actions": ", ".join(actions)} if actions else None
        telemetry.log(level, message, data=data, logger_name=self._logger_name)

    def show_error(self, message: str, *actions: str) -> Optional[str]:
        self._emit("error", message, actions)
        return None

    def show_warning(self, message: str, *actions: str) -> Optional[str]:
        self._emit("warning", message, actions)
        return None

    def show_info(self, message: str, *actions: str) -> Optional[str]:
        self._emit("info", message, actions)
        return None


class RecordingNotifier:
    """Notifier that keeps messages in memory and answers with preset choices."""

    def __init__(self, *choices: str) -> None:
        self.messages: List[tuple[str, str, tuple[str, ...]]] = []
        self._choices = list(choices)

    def _record(self, level: str, message: str, actions: tuple[str, ...]) -> Optional[str]:
        self.messages.append((level, message, actions))
        for choice in self._choices:
            if choice in actions:
                self._choices.remove(choice)
                return choice
        return None

    def show_error(self, message: str, *actions: str) -> Optional[str]:
        return self._record("error", message, actions)

    def show_warning(self, message: str, *actions: str) -> Optional[str]:
        return self._record("warning", message, actions)

    def show_info(self, message: str, *actions: str) -> Optional[str]:
        return self._record("info", message, actions)

    def of_level(self, level: str) -> list[str]:
        return [message for kind, message, _ in self.messages if kind == level]


class ErrorQueue:
    """Collect error messages, surfacing at most ``limit`` of them per report."""

    def __init__(self, limit: int = 3) -> None:
        if limit < 1:
            raise ValueError("limit must be positive")
        self.limit = limit
        self._messages: List[str] = []
        self.dropped = 0

    def push(self, message: str) -> None:
        if len(self._messages) < self.limit:
            self._messages.append(message)
        else:
            self.dropped += 1

    def __len__(self) -> int:
        return len(self._messages)

    def __bool__(self) -> bool:
        return bool(self._messages)

    @property
    def messages(self) -> tuple[str, ...]:
        return tuple(self._messages)

    def clear(self) -> None:
        self._messages.clear()
        self.dropped = 0

    def report(self, notifier: Notifier, *, level: str = "error") -> list[str]:
        """Show queued messages through ``notifier`` and empty the queue."""

        surfaced = list(self._messages)
        show = getattr(notifier, f"show_{level}")
        for message in surfaced:
            show(message)
        if self.dropped:
            telemetry.log(
                "debug",
                "reporting::dropped",
                data={"count": self.dropped},
                logger_name="modal_keys",
            )
        self.clear()
        return surfaced


__all__ = ["Notifier", "LoggingNotifier", "RecordingNotifier", "ErrorQueue"]
