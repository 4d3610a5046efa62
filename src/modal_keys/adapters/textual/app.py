"""Executable Textual app that hosts a modal-keys session over an in-memory buffer."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

try:  # pragma: no cover - imported only when demo is run
    from textual import events
    from textual.app import App, ComposeResult
    from textual.containers import Vertical
    from textual.widgets import Footer, Header, Static
except ModuleNotFoundError as exc:  # pragma: no cover - friendly error for missing dep
    raise RuntimeError(
        "Install the 'textual' package to use modal_keys.adapters.textual.app"
    ) from exc

from modal_keys.bindings import (
    BindingCompiler,
    CompiledBinding,
    parse_binding_file,
    parse_binding_spec,
)
from modal_keys.buffer import MemoryTextView, register_editor_commands
from modal_keys.config import ModalKeysSettings
from modal_keys.host import CommandBus
from modal_keys.modes import Session
from modal_keys.runtime import telemetry

from .controller import TextualModalAdapter, TextualUIHooks

CARET = "▏"

DEMO_BINDINGS: Dict[str, Any] = {
    "header": {"version": "1.0"},
    "bind": {
        "name": "Demo",
        "description": "A small vim-like layout",
        "default": {"mode": "normal"},
        "items": [
            {"key": "h", "name": "left", "do": "cursorLeft"},
            {"key": "l", "name": "right", "do": "cursorRight"},
            {"key": "k", "name": "up", "do": "cursorUp"},
            {"key": "j", "name": "down", "do": "cursorDown"},
            {"key": "w", "name": "word", "do": {"cursorMove": {"to": "wordRight", "value": "__count || 1"}}},
            {"key": "shift+4", "name": "line end", "do": "cursorEnd"},
            {"key": "0", "name": "line start", "do": "cursorHome"},
            {"key": "x", "name": "delete char", "do": {"command": "deleteRight", "repeat": "(count || 1)"}},
            {"key": "i", "name": "insert", "do": "modalkeys.enterInsert"},
            {"key": "g g", "name": "top", "do": {"cursorMove": {"to": "up", "value": "__line"}}},
            {"key": "/", "name": "search", "do": {"modalkeys.search": {"register": "search"}}},
            {"key": "n", "name": "next match", "do": {"modalkeys.nextMatch": {"register": "search"}}},
            {"key": "shift+n", "name": "previous match", "do": {"modalkeys.previousMatch": {"register": "search"}}},
            {"key": "f", "name": "find char", "do": {"modalkeys.search": {"acceptAfter": 1, "offset": "start", "register": "find"}}},
            {"key": "q", "name": "record macro", "do": "modalkeys.toggleRecordingMacro"},
            {"key": "shift+2", "name": "replay macro", "do": "modalkeys.replayMacro"},
            {"key": ".", "name": "repeat change", "do": "modalkeys.repeatLastChange"},
            {"key": "escape", "mode": "insert", "name": "normal", "do": "modalkeys.enterNormal"},
        ],
    },
}

DEMO_TEXT = """Welcome to modal-keys.

Move with h j k l, press i to insert and escape to leave insert mode.
Search with /, jump to a character with f, record a macro with q.
"""


def load_demo_bindings(path: Optional[Path] = None) -> list[CompiledBinding]:
    spec = parse_binding_file(path) if path is not None else parse_binding_spec(DEMO_BINDINGS)
    return BindingCompiler().compile(spec).bindings


def create_session(
    view: MemoryTextView, *, bindings: Sequence[CompiledBinding] = (), notifier: Any = None
) -> Session:
    """Build a Session whose host commands edit ``view``."""

    bus = CommandBus()
    register_editor_commands(bus, view)
    return Session(
        view=view,
        bus=bus,
        notifier=notifier,
        settings=ModalKeysSettings.from_env(),
        bindings=bindings,
    )


def render_view(view: MemoryTextView) -> str:
    active = view.selection.active
    lines = list(view.document.snapshot())
    line = lines[active.line]
    lines[active.line] = f"{line[: active.character]}{CARET}{line[active.character :]}"
    return "\n".join(lines)


class AppNotifier:
    """Notifier that surfaces messages as Textual toasts."""

    def __init__(self, app: App[Any]) -> None:
        self.app = app

    def show_error(self, message: str, *actions: str) -> Optional[str]:
        self.app.notify(message, severity="error")
        return None

    def show_warning(self, message: str, *actions: str) -> Optional[str]:
        self.app.notify(message, severity="warning")
        return None

    def show_info(self, message: str, *actions: str) -> Optional[str]:
        self.app.notify(message, severity="information")
        return None


@dataclass
class UIState:
    buffer_text: str = ""
    status_text: str = ""
    search_text: str = ""


class ModalKeysApp(App[None]):
    """Minimal Textual UI embedding a modal-keys session."""

    CSS = """
	Screen {
		layout: vertical;
	}

	#buffer-view {
		height: 1fr;
		border: round $accent;
		padding: 1 1;
		content-align: left top;
		overflow: auto;
	}

	#status-line {
		height: 1;
		background: $surface-darken-1;
		padding: 0 1;
	}

	#search-line {
		height: 1;
		background: $surface-darken-2;
		padding: 0 1;
	}
	"""

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self, *, bindings_path: Optional[Path] = None, text: str = DEMO_TEXT) -> None:
        super().__init__()
        self._state = UIState()
        self._bindings_path = bindings_path
        self.view = MemoryTextView(text, file_name="demo.txt")
        self.session: Session | None = None
        self.adapter: TextualModalAdapter | None = None
        self._buffer_widget: Static | None = None
        self._status_widget: Static | None = None
        self._search_widget: Static | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Vertical(id="buffer-area"):
            self._buffer_widget = Static("", id="buffer-view", markup=False)
            yield self._buffer_widget
        self._status_widget = Static("", id="status-line", markup=False)
        self._search_widget = Static("", id="search-line", markup=False)
        yield self._status_widget
        yield self._search_widget
        yield Footer()

    async def on_mount(self) -> None:
        bindings = load_demo_bindings(self._bindings_path)
        self.session = create_session(self.view, bindings=bindings, notifier=AppNotifier(self))
        hooks = TextualUIHooks(
            update_buffer=self._update_buffer,
            update_status=self._update_status,
            show_search=self._show_search,
        )
        self.adapter = TextualModalAdapter(self.session, self.view, hooks)

    async def on_key(self, event: events.Key) -> None:
        if not self.adapter or event.key in {"ctrl+c", "ctrl+q"}:
            return
        result = await self.adapter.handle_textual_key(event.key, character=event.character)
        if result is not None and result.consumed:
            event.stop()

    def _update_buffer(self, view: MemoryTextView) -> None:
        self._state.buffer_text = render_view(view)
        if self._buffer_widget:
            self._buffer_widget.update(self._state.buffer_text)

    def _update_status(self, status: str) -> None:
        self._state.status_text = status
        if self._status_widget:
            self._status_widget.update(status)

    def _show_search(self, text: str) -> None:
        self._state.search_text = text
        if self._search_widget:
            self._search_widget.update(text)


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the modal-keys Textual demo.")
    parser.add_argument(
        "--bindings",
        type=Path,
        default=None,
        help="Binding file (.toml or .json) to load instead of the demo layout",
    )
    parser.add_argument(
        "file",
        nargs="?",
        type=Path,
        default=None,
        help="Text file to open in the demo buffer",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = _parse_args(argv)
    # the UI owns the terminal, so logs stay off the console
    telemetry.configure(settings=replace(telemetry.TelemetrySettings.from_env(), console=False))
    text = args.file.read_text(encoding="utf-8") if args.file else DEMO_TEXT
    app = ModalKeysApp(bindings_path=args.bindings, text=text)
    app.run()


if __name__ == "__main__":  # pragma: no cover - manual demo
    main()
