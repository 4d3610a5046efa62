"""Error taxonomy shared by the compiler, interpreter, and search matcher."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence


class ModalKeysError(RuntimeError):
    """Base class for every recoverable modal-keys failure."""


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """Single schema problem located by a dotted path."""

    path: str
    code: str
    message: str
    count: int = 1

    def format(self) -> str:
        where = f" near {self.path}" if self.path else ""
        suffix = f" [{self.count} occurrences]" if self.count > 1 else ""
        return f"code {self.code}{where} ({self.message}){suffix}"


def dedupe_diagnostics(diagnostics: Iterable[Diagnostic]) -> list[Diagnostic]:
    """Collapse diagnostics sharing a cause, keeping the first path seen."""

    merged: dict[tuple[str, str], Diagnostic] = {}
    for diagnostic in diagnostics:
        cause = (diagnostic.code, diagnostic.message)
        existing = merged.get(cause)
        if existing is None:
            merged[cause] = diagnostic
        else:
            merged[cause] = Diagnostic(
                path=existing.path,
                code=existing.code,
                message=existing.message,
                count=existing.count + diagnostic.count,
            )
    return list(merged.values())


class SchemaError(ModalKeysError):
    """Raised when a binding file does not match the declarative schema."""

    def __init__(self, message: str, diagnostics: Sequence[Diagnostic] = ()) -> None:
        super().__init__(message)
        self.diagnostics = tuple(dedupe_diagnostics(diagnostics))

    def summary(self, limit: int = 3) -> list[str]:
        return [
            f"Parsing of bindings failed: {diagnostic.format()}"
            for diagnostic in self.diagnostics[:limit]
        ]


class CompileError(ModalKeysError):
    """Raised for a single binding item the compiler has to drop."""

    def __init__(
        self, message: str, *, key: str | None = None, mode: Sequence[str] | None = None
    ) -> None:
        super().__init__(message)
        self.key = key
        self.mode = tuple(mode) if mode else None


class EvaluationError(ModalKeysError):
    """Raised when an expression cannot be parsed or evaluated."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class UndefinedBindingError(ModalKeysError):
    """Raised when a keystroke has no entry in the active keymap."""

    def __init__(self, sequence: Sequence[str], *, mode: str) -> None:
        self.sequence = tuple(sequence)
        self.mode = mode
        super().__init__(f"Undefined key binding: `{' '.join(self.sequence)}`")


class RepeatOverflowError(ModalKeysError):
    """Raised when a repeat condition is still true at the iteration ceiling."""

    def __init__(self, limit: int, *, command: str) -> None:
        super().__init__(
            f"Repeat evaluated to true for {limit} cycles of '{command}'. "
            "Stopping prematurely."
        )
        self.limit = limit
        self.command = command


class DispatchError(ModalKeysError):
    """Raised when a host command is missing or throws."""

    def __init__(self, message: str, *, command: str) -> None:
        super().__init__(message)
        self.command = command


class InstallError(ModalKeysError):
    """Raised when compiled bindings cannot be written to the keybinding file."""


__all__ = [
    "ModalKeysError",
    "Diagnostic",
    "dedupe_diagnostics",
    "SchemaError",
    "CompileError",
    "EvaluationError",
    "UndefinedBindingError",
    "RepeatOverflowError",
    "DispatchError",
    "InstallError",
]
