"""Incremental search driven by runtime commands, one state per editor and register."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Hashable, List, Optional, Sequence

from modal_keys.host.protocols import TextView
from modal_keys.host.types import Range, Selection
from modal_keys.runtime import telemetry
from modal_keys.runtime.telemetry import span

from .args import SearchArgs
from .matcher import InvalidPatternError, adjust_search_position, search_matches

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from modal_keys.modes.session import Session

SEARCH_MODE = "search"
CURRENT_MATCH = "modalkeys.search.current"
OTHER_MATCHES = "modalkeys.search.other"

_TYPED = {"space": " ", "tab": "\t"}


@dataclass(slots=True)
class SearchState:
    """Query and resume anchors of one search register."""

    args: SearchArgs = field(default_factory=SearchArgs)
    text: str = ""
    search_from: tuple[Selection, ...] = ()
    old_mode: str = "normal"


def typed_text(key: str) -> Optional[str]:
    """Text a keystroke types into the query, or ``None`` for non-text keys."""

    if key in _TYPED:
        return _TYPED[key]
    if len(key) == 1:
        return key
    if key.startswith("shift+") and len(key) == 7:
        return key[-1].upper()
    return None


class SearchController:
    """Owns search registers and applies matches to the session's view."""

    def __init__(self, session: "Session", *, logger_name: str | None = "modal_keys.search") -> None:
        self.session = session
        self._registers: Dict[Hashable, Dict[str, SearchState]] = {}
        self._typing: Optional[SearchState] = None
        self.current_register = "default"
        self.used = False
        self._logger_name = logger_name

    def state_for(self, view: TextView, register: Optional[str] = None) -> SearchState:
        registers = self._registers.setdefault(view.handle, {})
        name = register or self.current_register
        state = registers.get(name)
        if state is None:
            state = SearchState(old_mode=self.session.mode)
            registers[name] = state
        return state

    @property
    def typing(self) -> Optional[SearchState]:
        return self._typing

    def track_usage(self) -> None:
        self.used = False

    async def search(self, args: SearchArgs) -> None:
        view = self.session.require_view()
        self.used = True
        self.current_register = args.register_name
        state = self.state_for(view, args.register_name)
        state.args = args
        state.text = args.text or ""
        state.search_from = tuple(view.selections)
        if args.text:
            self.navigate(state, view)
            await self.accept(state)
            return
        if self.session.mode != SEARCH_MODE:
            state.old_mode = self.session.mode
        self._typing = state
        self.session.enter_mode(SEARCH_MODE)

    async def type_char(self, key: str) -> None:
        """Feed one captured keystroke into the query being typed."""

        state = self._typing
        if state is None:
            return
        if key == "enter":
            await self.accept(state)
            return
        if key == "escape":
            self.cancel()
            return
        if key == "backspace":
            self.delete_last_char()
            return
        text = typed_text(key)
        if text is None:
            return
        state.text += text
        view = self.session.require_view()
        try:
            self.navigate(state, view, update_search_from=False)
        except InvalidPatternError as exc:
            telemetry.log("debug", str(exc), logger_name=self._logger_name)
            return
        if state.args.accept_after is not None and len(state.text) >= state.args.accept_after:
            await self.accept(state)

    async def accept(self, state: Optional[SearchState] = None) -> None:
        view = self.session.require_view()
        state = state or self._typing or self.state_for(view)
        self._typing = None
        state.search_from = tuple(view.selections)
        if self.session.mode == SEARCH_MODE:
            self.session.enter_mode(state.old_mode)
        if state.args.do_after is not None:
            await self.session.do({"do": state.args.do_after})
            self.used = True

    def cancel(self) -> None:
        view = self.session.require_view()
        state = self._typing or self.state_for(view)
        self._typing = None
        if self.session.mode == SEARCH_MODE:
            self.session.enter_mode(state.old_mode)
        if state.search_from:
            view.selections = state.search_from
            view.reveal(state.search_from[0].as_range())
        self.clear_decorations(view)

    def delete_last_char(self) -> None:
        view = self.session.require_view()
        state = self._typing or self.state_for(view)
        state.text = state.text[:-1]
        try:
            self.navigate(state, view, update_search_from=False)
        except InvalidPatternError as exc:
            telemetry.log("debug", str(exc), logger_name=self._logger_name)

    def next_match(self, register: str = "default") -> None:
        view = self.session.require_view()
        self.used = True
        self.current_register = register
        state = self.state_for(view, register)
        if state.text:
            self.navigate(state, view, origins=view.selections)

    def previous_match(self, register: str = "default") -> None:
        view = self.session.require_view()
        self.used = True
        self.current_register = register
        state = self.state_for(view, register)
        if not state.text:
            return
        original = state.args
        state.args = original.reversed()
        try:
            self.navigate(state, view, origins=view.selections)
        finally:
            state.args = original

    def navigate(
        self,
        state: SearchState,
        view: TextView,
        *,
        origins: Optional[Sequence[Selection]] = None,
        update_search_from: bool = True,
    ) -> List[Range]:
        """Move every selection to its next match; returns the primary matches.

        An empty query restores the anchors the search started from.
        """

        starts = tuple(origins) if origins is not None else state.search_from
        if not starts:
            starts = tuple(view.selections)
        if not state.text:
            view.selections = starts
            self.clear_decorations(view)
            return []

        with span(
            "search::navigate",
            logger_name=self._logger_name,
            component="search",
            metadata={"text": state.text, "register": self.current_register},
        ) as handle:
            primary: List[Range] = []
            moved: List[Selection] = []
            for selection in starts:
                target = selection
                for match in search_matches(
                    view, selection.active, None, state.text, state.args, include_start=True
                ):
                    candidate = adjust_search_position(match, selection, state.args)
                    if candidate.same_range(selection):
                        continue
                    primary.append(match)
                    target = candidate
                    break
                moved.append(target)
            view.selections = moved
            if update_search_from:
                state.search_from = tuple(moved)
            view.reveal(moved[0].as_range())
            handle.add_metadata("matches", len(primary))
            self._highlight(state, view, primary)
        return primary

    def _highlight(self, state: SearchState, view: TextView, primary: List[Range]) -> None:
        if not (state.args.highlight_matches and self.session.settings.highlight_matches):
            self.clear_decorations(view)
            return
        forward = state.args.model_copy(update={"backwards": False, "wrap_around": False})
        others: List[Range] = []
        for visible in view.visible_ranges():
            for match in search_matches(
                view, visible.start, visible.end, state.text, forward, include_start=True
            ):
                if visible.contains(match) and match not in primary and match not in others:
                    others.append(match)
        view.set_decorations(CURRENT_MATCH, primary)
        view.set_decorations(OTHER_MATCHES, others)

    def clear_decorations(self, view: Optional[TextView] = None) -> None:
        target = view or self.session.view
        if target is None:
            return
        target.set_decorations(CURRENT_MATCH, ())
        target.set_decorations(OTHER_MATCHES, ())


__all__ = [
    "CURRENT_MATCH",
    "OTHER_MATCHES",
    "SEARCH_MODE",
    "SearchController",
    "SearchState",
    "typed_text",
]
