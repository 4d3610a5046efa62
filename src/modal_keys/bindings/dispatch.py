"""Host-side dispatch table: pick the compiled binding a keystroke triggers."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from modal_keys.expressions import EvalContext, truthy

from .compiler import CompiledBinding


class DispatchTable:
    """Index compiled bindings by key; the last binding whose guard holds wins."""

    def __init__(
        self,
        bindings: Iterable[CompiledBinding] = (),
        *,
        evaluator: EvalContext | None = None,
    ) -> None:
        self.evaluator = evaluator or EvalContext()
        self._by_key: Dict[str, List[CompiledBinding]] = {}
        self.install(bindings)

    def install(self, bindings: Iterable[CompiledBinding], *, replace: bool = True) -> None:
        if replace:
            self._by_key.clear()
        for binding in bindings:
            self._by_key.setdefault(binding.key, []).append(binding)

    def __len__(self) -> int:
        return sum(len(group) for group in self._by_key.values())

    def keys(self) -> tuple[str, ...]:
        return tuple(self._by_key)

    def candidates(self, key: str) -> tuple[CompiledBinding, ...]:
        return tuple(self._by_key.get(key, ()))

    def lookup(self, key: str, context: Mapping[str, Any]) -> Optional[CompiledBinding]:
        """Return the binding for ``key`` whose ``when`` holds in ``context``.

        Unknown context names read as undefined, as in host when-clauses.
        """

        for binding in reversed(self._by_key.get(key, ())):
            if binding.when is None:
                return binding
            if truthy(self.evaluator.eval_str(binding.when, context, strict=False)):
                return binding
        return None


__all__ = ["DispatchTable"]
