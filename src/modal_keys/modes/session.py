"""Session: keystroke handling, runtime commands, macros and repeat."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional

from modal_keys.actions.keymap import Keymodes
from modal_keys.actions.model import Action, parse_action
from modal_keys.bindings.compiler import DO_COMMAND, PREFIX_COMMAND, CompiledBinding
from modal_keys.bindings.dispatch import DispatchTable
from modal_keys.config import ModalKeysSettings
from modal_keys.errors import DispatchError, ModalKeysError, UndefinedBindingError
from modal_keys.expressions import EvalContext, expression_values
from modal_keys.host.bus import CommandBus
from modal_keys.host.protocols import SELECTION_CHANGED, TEXT_CHANGED, TextView
from modal_keys.runtime import telemetry
from modal_keys.runtime.reporting import LoggingNotifier, Notifier
from modal_keys.search import MatchStepArgs, SearchArgs, SearchController
from modal_keys.search.controller import typed_text

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
from .interpreter import ActionInterpreter
from .key_state import KeyRecording, KeyResult, KeyState

INSERT_MODE = "insert"
CAPTURE_MODE = "capture"

FIX_IMPORT = "Fix: Import"
HELP_VISUAL = "Help: Visual"
HELP_DETAILS = "Help: Details"
LET_ME_TYPE = "Fix: Let me type!"
DEFINE_KEYMAP = "Fix: Define a keymap"
HELP_KEYMAPS = "Help: keymap configuration"
IGNORE = "Ignore"

RuntimeHandler = Callable[..., Awaitable[Any]]


@dataclass(slots=True)
class PendingCapture:
    """Keys collected by ``modalkeys.captureKeys`` until it accepts."""

    old_mode: str
    accept_after: int = 1
    do_after: Any = None
    text: str = ""


def _is_digit(key: str) -> bool:
    return len(key) == 1 and key.isdigit()


class Session:
    """One editor session: key state, keymaps, bindings, search, and history.

    Runtime commands (``modalkeys.*``) are registered on ``bus``; host
    commands reach the host through the bus fallback.
    """

    def __init__(
        self,
        *,
        view: Optional[TextView] = None,
        bus: Optional[CommandBus] = None,
        notifier: Optional[Notifier] = None,
        settings: Optional[ModalKeysSettings] = None,
        keymodes: Optional[Keymodes] = None,
        bindings: Iterable[CompiledBinding] = (),
        host_context: Optional[Mapping[str, Any]] = None,
        logger_name: str | None = "modal_keys.modes",
    ) -> None:
        self.settings = settings or ModalKeysSettings()
        self.bus = bus or CommandBus()
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.evaluator = EvalContext(error_limit=self.settings.error_limit)
        self.keymodes = keymodes or Keymodes()
        self.dispatch_table = DispatchTable(bindings, evaluator=self.evaluator)
        self.host_context: Dict[str, Any] = dict(host_context or {})
        self.flags: Dict[str, Any] = {}
        self.words = WordHistory()
        self.root_state = KeyState(
            mode=self.settings.start_mode, mode_captures=self.settings.mode_captures
        )
        self._active = self.root_state
        self._depth = 0
        self._capture: Optional[PendingCapture] = None
        self._logger_name = logger_name
        self.view: Optional[TextView] = None
        self.interpreter = ActionInterpreter(self)
        self.search = SearchController(self)
        self._register_commands()
        if view is not None:
            self.attach_view(view)

    # state ---------------------------------------------------------------
    @property
    def state(self) -> KeyState:
        return self._active

    @property
    def mode(self) -> str:
        return self._active.mode

    def attach_view(self, view: TextView) -> None:
        self.view = view
        view.add_change_listener(self._on_view_change)

    def require_view(self) -> TextView:
        if self.view is None:
            raise ModalKeysError("No active editor")
        return self.view

    def _on_view_change(self, kind: str) -> None:
        if kind == TEXT_CHANGED:
            self.words.note_text_change()
        elif kind == SELECTION_CHANGED:
            self.words.note_selection_change()

    def expression_values(
        self, state: Optional[KeyState] = None, *, captured: Optional[str] = None
    ) -> Dict[str, Any]:
        state = state or self._active
        return expression_values(
            view=self.view,
            mode=state.mode,
            count=state.count,
            captured=captured if captured is not None else (state.captured or None),
            prefix=state.prefix,
            extra={**self.flags, **state.transient},
        )

    def when_context(self, state: Optional[KeyState] = None) -> Dict[str, Any]:
        """Context names visible to compiled ``when`` clauses."""

        state = state or self._active
        typing = self.search.typing
        modal: Dict[str, Any] = {
            **self.flags,
            **state.transient,
            "mode": state.mode,
            "prefix": state.prefix,
            "count": state.count or 0,
            "search": typing.text if typing is not None else "",
        }
        return {**self.host_context, "modalkeys": modal}

    def install_bindings(self, bindings: Iterable[CompiledBinding]) -> None:
        self.dispatch_table.install(bindings)

    def would_handle(self, key: str) -> bool:
        """Whether ``key`` is claimed in the current state (capture, keymap, binding or count)."""

        state = self._active
        if state.active_capture is not None:
            return True
        keymap = state.current_keymap or self.keymodes.get(state.mode)
        if keymap is not None and key in keymap:
            return True
        if keymap is None and self.dispatch_table.lookup(key, self.when_context(state)):
            return True
        return _is_digit(key) and state.mode != INSERT_MODE

    # keystrokes ----------------------------------------------------------
    async def handle_key(self, key: str, mode: Optional[str] = None) -> KeyResult:
        """Feed one keystroke; failures are reported and reset the pending state."""

        state = self._active
        self._depth += 1
        try:
            if mode is not None and mode != state.mode:
                self.enter_mode(mode)
            with telemetry.span(
                "modes::handle_key",
                logger_name=self._logger_name,
                component="modes",
                metadata={"key": key, "mode": state.mode},
            ) as handle:
                result = await self._handle_key(state, key)
                handle.add_metadata("status", result.status)
                return result
        except ModalKeysError as exc:
            if self._depth > 1:
                raise
            self._report_failure(state, exc)
            return KeyResult(consumed=True, status="error", message=str(exc))
        finally:
            self._depth -= 1

    async def _handle_key(self, state: KeyState, key: str) -> KeyResult:
        if state.recording_macro is not None and state.mode != INSERT_MODE:
            if not state.recording_macro.keys:
                state.recording_macro.mode = state.mode
            state.recording_macro.keys.append(key)

        capture = state.active_capture
        if not state.replaying:
            self.words.push_key(key, state.mode, capturing=capture is not None)

        if capture is not None:
            state.captured_keys.append(key)
            await self.bus.execute(capture, key)
            if self._active.active_capture is None and not state.replaying:
                self.words.complete()
            return KeyResult(consumed=True, status="captured")

        if state.count is not None and _is_digit(key) and state.update_count(int(key)):
            return KeyResult(consumed=True, status="count")

        state.key_sequence.append(key)
        keymap = state.current_keymap or self.keymodes.get(state.mode)
        if keymap is not None:
            action = keymap.get(key)
            if action is not None:
                terminal = await self.run_action(action, state=state)
                return KeyResult(consumed=True, status="ok" if terminal else "pending")
        else:
            binding = self.dispatch_table.lookup(key, self.when_context(state))
            if binding is not None:
                return await self._run_binding(state, binding)

        if _is_digit(key) and state.count is None and state.update_count(int(key)):
            state.key_sequence.pop()
            return KeyResult(consumed=True, status="count")
        raise UndefinedBindingError(state.key_sequence, mode=state.mode)

    async def _run_binding(self, state: KeyState, binding: CompiledBinding) -> KeyResult:
        if binding.is_prefix:
            await self.bus.execute(PREFIX_COMMAND, dict(binding.args))
            return KeyResult(consumed=True, status="pending")
        await self.bus.execute(binding.command, dict(binding.args))
        if binding.command == DO_COMMAND and not binding.reset_transient:
            return KeyResult(consumed=True, status="pending")
        return KeyResult(consumed=True, status="ok")

    async def run_action(
        self,
        action: Action,
        *,
        state: Optional[KeyState] = None,
        reset_transient: bool = True,
    ) -> bool:
        """Execute ``action``; a terminal action completes the current word."""

        state = state or self._active
        self.search.track_usage()
        terminal = await self.interpreter.execute(action, state.mode, state=state)
        if terminal and reset_transient:
            self._finish(state)
        self.evaluator.report_errors(self.notifier)
        return terminal

    def _finish(self, state: KeyState) -> None:
        state.reset()
        if not state.replaying:
            self.words.complete()
        if not self.search.used:
            self.search.clear_decorations()

    def _report_failure(self, state: KeyState, exc: ModalKeysError) -> None:
        telemetry.log(
            "debug",
            "modes::failure",
            data={"error": type(exc).__name__, "message": str(exc)},
            logger_name=self._logger_name,
        )
        no_keymap = self.keymodes.get(state.mode) is None and not len(self.dispatch_table)
        state.reset()
        self.words.abandon()
        if isinstance(exc, UndefinedBindingError) and no_keymap:
            choice = self.notifier.show_error(
                f"ModalKeys - no keymap defined for {exc.mode} mode.",
                LET_ME_TYPE,
                DEFINE_KEYMAP,
                HELP_KEYMAPS,
                IGNORE,
            )
            typing_allowed = INSERT_MODE in self.settings.valid_modes
            if choice in (LET_ME_TYPE, HELP_KEYMAPS) and typing_allowed:
                self.enter_mode(INSERT_MODE)
        elif isinstance(exc, UndefinedBindingError):
            choice = self.notifier.show_error(
                f"ModalKeys - {exc}", FIX_IMPORT, HELP_VISUAL, HELP_DETAILS
            )
        else:
            choice = self.notifier.show_error(str(exc))
        if choice is not None and choice not in (LET_ME_TYPE, IGNORE):
            telemetry.record_event(
                "remediation",
                data={"choice": choice, "docs": self.settings.docs_url},
                logger_name=self._logger_name,
            )
        self.evaluator.report_errors(self.notifier)

    # runtime commands ----------------------------------------------------
    def _register_commands(self) -> None:
        handlers: Dict[str, RuntimeHandler] = {
            DO_COMMAND: self._do_command,
            PREFIX_COMMAND: self._prefix,
            "modalkeys.set": self._set,
            "modalkeys.enterMode": self._enter_mode,
            "modalkeys.enterInsert": self._enter_insert,
            "modalkeys.enterNormal": self._enter_normal,
            "modalkeys.reset": self._reset,
            "modalkeys.updateCount": self._update_count,
            "modalkeys.ignore": self._ignore,
            "modalkeys.captureKeys": self._capture_keys,
            "modalkeys.captureChar": self._capture_char,
            "modalkeys.searchChar": self._search_char,
            "modalkeys.search": self._search,
            "modalkeys.acceptSearch": self._accept_search,
            "modalkeys.cancelSearch": self._cancel_search,
            "modalkeys.deleteLastSearchChar": self._delete_last_search_char,
            "modalkeys.nextMatch": self._next_match,
            "modalkeys.previousMatch": self._previous_match,
            "modalkeys.clearSearchDecorations": self._clear_search_decorations,
            "modalkeys.toggleRecordingMacro": self._toggle_recording_macro,
            "modalkeys.cancelRecordingMacro": self._cancel_recording_macro,
            "modalkeys.replayMacro": self._replay_macro,
            "modalkeys.repeatLastChange": self._repeat_last_change,
            "modalkeys.repeatLastUsedSelection": self._repeat_last_used_selection,
        }
        for command, handler in handlers.items():
            self.bus.register(command, self._guarded(handler), replace=True)

    def _guarded(self, handler: RuntimeHandler) -> RuntimeHandler:
        async def run(*args: Any) -> Any:
            self._depth += 1
            try:
                return await handler(*args)
            except ModalKeysError as exc:
                if self._depth > 1:
                    raise
                self._report_failure(self._active, exc)
                return None
            finally:
                self._depth -= 1

        return run

    async def do(self, raw_args: Any) -> bool:
        """Run the action in ``{"do": ..., "resetTransient": ...}``."""

        args = validate_args(DO_COMMAND, raw_args, DoArgs)
        state = self._active
        if not state.replaying:
            self.words.record_action(args.do, state.mode)
        return await self.run_action(
            parse_action(args.do), state=state, reset_transient=args.reset_transient
        )

    async def _do_command(self, args: Any = None) -> bool:
        return await self.do(args)

    async def _prefix(self, args: Any = None) -> None:
        parsed = validate_args(PREFIX_COMMAND, args, PrefixArgs)
        state = self._active
        state.append_prefix(parsed.key)
        if parsed.flag:
            state.transient[parsed.flag] = True

    async def _set(self, args: Any = None) -> None:
        parsed = validate_args("modalkeys.set", args, SetArgs)
        if parsed.transient:
            self._active.transient[parsed.name] = parsed.value
        else:
            self.flags[parsed.name] = parsed.value

    def enter_mode(self, mode: str) -> None:
        if mode not in self.settings.valid_modes:
            raise DispatchError(f"Unknown mode '{mode}'", command="modalkeys.enterMode")
        state = self._active
        previous = state.mode
        state.mode = mode
        state.reset()
        telemetry.record_event(
            "mode.switch",
            data={"mode": mode, "from": previous},
            logger_name=self._logger_name,
        )

    async def _enter_mode(self, args: Any = None) -> None:
        self.enter_mode(validate_args("modalkeys.enterMode", args, EnterModeArgs).mode)

    async def _enter_insert(self, *_args: Any) -> None:
        self.enter_mode(INSERT_MODE)

    async def _enter_normal(self, *_args: Any) -> None:
        self.enter_mode("normal")

    async def _reset(self, *_args: Any) -> None:
        self._active.reset()
        self.search.clear_decorations()

    async def _update_count(self, args: Any = None) -> None:
        parsed = validate_args("modalkeys.updateCount", args, UpdateCountArgs)
        self._active.update_count(parsed.value)

    async def _ignore(self, *_args: Any) -> None:
        return None

    # capture -------------------------------------------------------------
    async def _capture_keys(self, args: Any = None) -> None:
        """Route the next keystrokes to ``captureChar`` until ``acceptAfter`` keys or Enter."""

        raw = dict(args or {})
        accept_after = raw.get("acceptAfter", 1)
        if isinstance(accept_after, bool) or not isinstance(accept_after, int) or accept_after < 1:
            raise DispatchError(
                "acceptAfter must be a positive integer", command="modalkeys.captureKeys"
            )
        do_after = raw.get("doAfter")
        if do_after is not None:
            parse_action(do_after)
        self._capture = PendingCapture(
            old_mode=self.mode, accept_after=accept_after, do_after=do_after
        )
        self.enter_mode(CAPTURE_MODE)

    async def _capture_char(self, key: Any = None) -> None:
        pending = self._capture
        if pending is None or not isinstance(key, str):
            return
        if key == "escape":
            self._capture = None
            self.enter_mode(pending.old_mode)
            return
        if key != "enter":
            text = typed_text(key)
            if text is None:
                return
            pending.text += text
            if len(pending.text) < pending.accept_after:
                return
        self._capture = None
        state = self._active
        self.enter_mode(pending.old_mode)
        if pending.do_after is not None:
            await self.interpreter.execute(
                parse_action(pending.do_after), state.mode, pending.text, state=state
            )
            self._finish(state)

    # search --------------------------------------------------------------
    async def _search_char(self, key: Any = None) -> None:
        if isinstance(key, str):
            await self.search.type_char(key)

    async def _search(self, args: Any = None) -> None:
        await self.search.search(validate_args("modalkeys.search", args, SearchArgs))

    async def _accept_search(self, *_args: Any) -> None:
        await self.search.accept()

    async def _cancel_search(self, *_args: Any) -> None:
        self.search.cancel()

    async def _delete_last_search_char(self, *_args: Any) -> None:
        self.search.delete_last_char()

    async def _next_match(self, args: Any = None) -> None:
        parsed = validate_args("modalkeys.nextMatch", args, MatchStepArgs)
        self.search.next_match(parsed.register_name)

    async def _previous_match(self, args: Any = None) -> None:
        parsed = validate_args("modalkeys.previousMatch", args, MatchStepArgs)
        self.search.previous_match(parsed.register_name)

    async def _clear_search_decorations(self, *_args: Any) -> None:
        self.search.clear_decorations()

    # macros and repeat ---------------------------------------------------
    def toggle_recording_macro(self, register: str = "default") -> Optional[KeyRecording]:
        """Start recording into ``register``, or stop and store the running recording."""

        state = self._active
        if state.replaying:
            return None
        if state.recording_macro is not None:
            return state.stop_recording()
        state.start_recording(register)
        telemetry.record_event(
            "macro.record", data={"register": register}, logger_name=self._logger_name
        )
        return None

    def cancel_recording_macro(self) -> None:
        self._active.recording_macro = None

    async def replay_macro(self, register: str = "default") -> None:
        recording = self._active.macros.get(register)
        if recording is None:
            raise ModalKeysError(f"No macro recorded in register '{register}'")
        await self.replay(recording)

    async def replay(self, recording: KeyRecording) -> None:
        """Re-run ``recording`` on a nested state; the outer sequence is untouched."""

        outer = self._active
        nested = outer.nested(mode=recording.mode)
        self._active = nested
        try:
            if recording.action is not None:
                await self.run_action(parse_action(recording.action), state=nested)
            else:
                for key in list(recording.keys):
                    await self.handle_key(key)
        finally:
            self._active = outer
            outer.mode = nested.mode

    async def repeat_last_change(self) -> None:
        self.words.discard_current()
        if self.words.verb is not None:
            await self.replay(self.words.verb)

    async def repeat_last_used_selection(self) -> None:
        self.words.discard_current()
        if self.words.noun is not None:
            await self.replay(self.words.noun)

    async def _toggle_recording_macro(self, args: Any = None) -> None:
        parsed = validate_args("modalkeys.toggleRecordingMacro", args, MacroArgs)
        self.toggle_recording_macro(parsed.register_name)

    async def _cancel_recording_macro(self, *_args: Any) -> None:
        self.cancel_recording_macro()

    async def _replay_macro(self, args: Any = None) -> None:
        parsed = validate_args("modalkeys.replayMacro", args, MacroArgs)
        await self.replay_macro(parsed.register_name)

    async def _repeat_last_change(self, *_args: Any) -> None:
        await self.repeat_last_change()

    async def _repeat_last_used_selection(self, *_args: Any) -> None:
        await self.repeat_last_used_selection()


__all__ = ["Session", "PendingCapture", "INSERT_MODE", "CAPTURE_MODE"]
