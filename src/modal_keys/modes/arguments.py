"""Validated arguments of the ``modalkeys.*`` runtime commands."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from modal_keys.actions.model import parse_action
from modal_keys.errors import DispatchError

ArgsModel = TypeVar("ArgsModel", bound=BaseModel)


class _Args(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


class DoArgs(_Args):
    do: Any
    reset_transient: bool = Field(default=True, alias="resetTransient")

    @field_validator("do")
    @classmethod
    def _check_do(cls, value: Any) -> Any:
        parse_action(value)
        return value


class PrefixArgs(_Args):
    key: str = Field(min_length=1)
    flag: Optional[str] = None


class SetArgs(_Args):
    name: str = Field(min_length=1)
    value: Any = True
    transient: bool = False


class EnterModeArgs(_Args):
    mode: str = Field(min_length=1)


class UpdateCountArgs(_Args):
    value: int = Field(ge=0, le=9)


class MacroArgs(_Args):
    register_name: str = Field(default="default", alias="register")


def validate_args(command: str, raw: Any, model: Type[ArgsModel]) -> ArgsModel:
    """Validate ``raw`` against ``model``; problems become :class:`DispatchError`."""

    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise DispatchError(
            f"Invalid arguments to `{command}`: expected an object, got {raw!r}",
            command=command,
        )
    try:
        return model.model_validate(dict(raw))
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'args'}: {error['msg']}"
            for error in exc.errors()
        )
        raise DispatchError(
            f"Invalid arguments to `{command}`: {problems}", command=command
        ) from exc


__all__ = [
    "DoArgs",
    "EnterModeArgs",
    "MacroArgs",
    "PrefixArgs",
    "SetArgs",
    "UpdateCountArgs",
    "validate_args",
]
