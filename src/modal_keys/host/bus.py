"""Named command dispatch between the interpreter and the host editor."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from modal_keys.errors import DispatchError, ModalKeysError
from modal_keys.runtime.telemetry import span

CommandHandler = Callable[..., Any]
FallbackHandler = Callable[[str, tuple[Any, ...]], Any]


@dataclass(frozen=True, slots=True)
class CommandCall:
    """One dispatched command, as kept in the bus history."""

    command: str
    args: tuple[Any, ...] = ()

    @property
    def arg(self) -> Any:
        return self.args[0] if self.args else None


class CommandBus:
    """Dispatch commands by name; handlers may be sync or async.

    ``fallback`` receives every command without a registered handler, which is
    how hosts forward their own editor commands. Without a fallback an unknown
    command raises :class:`DispatchError`.
    """

    def __init__(
        self,
        *,
        fallback: FallbackHandler | None = None,
        record_history: bool = False,
        logger_name: str | None = "modal_keys.actions",
    ) -> None:
        self._handlers: Dict[str, CommandHandler] = {}
        self._fallback = fallback
        self._logger_name = logger_name
        self.history: Optional[List[CommandCall]] = [] if record_history else None

    def register(
        self, command: str, handler: CommandHandler, *, replace: bool = False
    ) -> None:
        if not command:
            raise ValueError("command name cannot be empty")
        if not callable(handler):
            raise TypeError("handler must be callable")
        if not replace and command in self._handlers:
            raise ValueError(f"Command '{command}' already registered")
        self._handlers[command] = handler

    def unregister(self, command: str) -> None:
        self._handlers.pop(command, None)

    def has(self, command: str) -> bool:
        return command in self._handlers

    def commands(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))

    async def execute(self, command: str, *args: Any) -> Any:
        if self.history is not None:
            self.history.append(CommandCall(command, tuple(args)))
        handler = self._handlers.get(command)
        with span(
            "bus::execute",
            logger_name=self._logger_name,
            metadata={"command": command},
        ):
            try:
                if handler is not None:
                    result = handler(*args)
                elif self._fallback is not None:
                    result = self._fallback(command, tuple(args))
                else:
                    raise DispatchError(f"command '{command}' not found", command=command)
                if inspect.isawaitable(result):
                    result = await result
            except ModalKeysError:
                raise
            except Exception as exc:
                raise DispatchError(
                    f"command '{command}' failed: {exc}", command=command
                ) from exc
        return result

    def calls(self, command: str | None = None) -> list[CommandCall]:
        """Return recorded calls, optionally filtered to a single command."""

        if self.history is None:
            raise RuntimeError("CommandBus was created without record_history=True")
        if command is None:
            return list(self.history)
        return [call for call in self.history if call.command == command]


def ignore_command(_command: str, _args: tuple[Any, ...]) -> Awaitable[None] | None:
    """Fallback that accepts any host command without doing anything."""

    return None


__all__ = ["CommandBus", "CommandCall", "CommandHandler", "ignore_command"]
