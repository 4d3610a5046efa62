"""Declarative modal keybindings: compiler, key state machine, and incremental search."""

__all__ = [
    "actions",
    "adapters",
    "bindings",
    "buffer",
    "config",
    "errors",
    "expressions",
    "host",
    "modes",
    "runtime",
    "search",
]

__version__ = "0.1.0"
