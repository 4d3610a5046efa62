"""Execute parsed actions against the session's command bus."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from modal_keys.actions.model import (
    Action,
    ConditionalAction,
    KeymapRef,
    LiteralAction,
    ParameterizedAction,
    SequenceAction,
)
from modal_keys.errors import RepeatOverflowError
from modal_keys.expressions import reify_strings, truthy
from modal_keys.runtime import telemetry

from .key_state import KeyState

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .session import Session

TOGGLE_MACRO_COMMAND = "modalkeys.toggleRecordingMacro"

_COUNT_OR_ONE = re.compile(r"^\(?\s*(?:__)?count\s*(?:\|\|\s*1\s*)?\)?$")


def is_count_sentinel(repeat: str) -> bool:
    """``count``, ``__count`` and ``(count || 1)`` all mean "the pending count, or 1"."""

    return bool(_COUNT_OR_ONE.match(repeat.strip()))


class ActionInterpreter:
    """Run actions for a :class:`Session`; returns whether an action was terminal."""

    def __init__(self, session: "Session", *, logger_name: str | None = "modal_keys.actions") -> None:
        self.session = session
        self._logger_name = logger_name

    async def execute(
        self,
        action: Action,
        mode: str,
        captured: Optional[str] = None,
        *,
        state: Optional[KeyState] = None,
    ) -> bool:
        state = state or self.session.state
        with telemetry.span(
            "actions::execute",
            logger_name=self._logger_name,
            component="actions",
            metadata={"action": type(action).__name__, "mode": mode},
        ):
            return await self._run(action, mode, captured, state)

    async def _run(
        self, action: Action, mode: str, captured: Optional[str], state: KeyState
    ) -> bool:
        if isinstance(action, LiteralAction):
            await self.dispatch(action.command, state=state)
            return True
        if isinstance(action, SequenceAction):
            terminal = True
            for child in action.actions:
                terminal = await self._run(child, mode, captured, state)
            return terminal
        if isinstance(action, ConditionalAction):
            values = self.session.expression_values(state, captured=captured)
            result = self.session.evaluator.eval_str(action.condition, values)
            branch = action.then if truthy(result) else action.otherwise
            if branch is None:
                return True
            return await self._run(branch, mode, captured, state)
        if isinstance(action, ParameterizedAction):
            await self._run_parameterized(action, captured, state)
            return True
        if isinstance(action, KeymapRef):
            state.update(action.keymap)
            return False
        raise TypeError(f"Unknown action type: {type(action).__name__}")

    async def _run_parameterized(
        self, action: ParameterizedAction, captured: Optional[str], state: KeyState
    ) -> None:
        repeat = action.repeat
        if repeat is None:
            await self._dispatch_with_args(action, captured, state)
            return
        if isinstance(repeat, int):
            for _ in range(repeat):
                await self._dispatch_with_args(action, captured, state)
            return
        if is_count_sentinel(repeat):
            for _ in range(state.count or 1):
                await self._dispatch_with_args(action, captured, state)
            return

        evaluator = self.session.evaluator
        result = evaluator.eval_str(
            repeat, self.session.expression_values(state, captured=captured)
        )
        if isinstance(result, bool):
            await self._repeat_while(action, result, captured, state)
            return
        if isinstance(result, (int, float)):
            for _ in range(max(int(result), 0)):
                await self._dispatch_with_args(action, captured, state)
            return
        if result is not None:
            evaluator.errors.push(
                f"Repeat does not evaluate to number or boolean: '{repeat}'."
            )
        await self._dispatch_with_args(action, captured, state)

    async def _repeat_while(
        self,
        action: ParameterizedAction,
        condition: bool,
        captured: Optional[str],
        state: KeyState,
    ) -> None:
        limit = self.session.settings.max_repeat
        iterations = 0
        while condition:
            if iterations >= limit:
                error = RepeatOverflowError(limit, command=action.command)
                telemetry.log(
                    "warning",
                    "actions::repeat_overflow",
                    data={"command": action.command, "limit": limit},
                    logger_name=self._logger_name,
                )
                self.session.notifier.show_warning(str(error))
                return
            await self._dispatch_with_args(action, captured, state)
            iterations += 1
            assert isinstance(action.repeat, str)
            condition = truthy(
                self.session.evaluator.eval_str(
                    action.repeat, self.session.expression_values(state, captured=captured)
                )
            )

    async def _dispatch_with_args(
        self, action: ParameterizedAction, captured: Optional[str], state: KeyState
    ) -> None:
        if action.args is None and action.computed_args is None:
            await self.dispatch(action.command, state=state)
            return
        args = self.resolve_args(action, self.session.expression_values(state, captured=captured))
        await self.dispatch(action.command, args, state=state)

    def resolve_args(self, action: ParameterizedAction, values: Mapping[str, Any]) -> Any:
        """Compute the arguments of one dispatch of ``action``.

        Strings containing ``__`` are expressions; ``computedArgs`` values
        always are. An expression string ``args`` must produce the whole
        argument object.
        """

        evaluator = self.session.evaluator

        def evaluate_marked(text: str) -> Any:
            return evaluator.eval_str(text, values) if "__" in text else text

        if isinstance(action.args, str):
            resolved: Any = evaluator.eval_str(action.args, values)
        elif action.args is None:
            resolved = {}
        else:
            resolved = reify_strings(dict(action.args), evaluate_marked)
        if action.computed_args:
            if not isinstance(resolved, dict):
                resolved = {} if resolved is None else {"value": resolved}
            computed: Dict[str, Any] = reify_strings(
                dict(action.computed_args), lambda text: evaluator.eval_str(text, values)
            )
            resolved.update(computed)
        return resolved

    async def dispatch(self, command: str, *args: Any, state: Optional[KeyState] = None) -> Any:
        state = state or self.session.state
        if command == TOGGLE_MACRO_COMMAND and state.replaying:
            return None
        return await self.session.bus.execute(command, *args)


__all__ = ["ActionInterpreter", "TOGGLE_MACRO_COMMAND", "is_count_sentinel"]
