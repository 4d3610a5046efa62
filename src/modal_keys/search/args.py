"""Validated arguments of the ``modalkeys.search`` family of commands."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from modal_keys.actions.model import parse_action

SearchOffset = Literal["inclusive", "exclusive", "start", "end"]


class SearchArgs(BaseModel):
    """Search flags; accepts camelCase (``wrapAround``) or snake_case names."""

    model_config = ConfigDict(
        extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    backwards: bool = False
    case_sensitive: bool = False
    wrap_around: bool = False
    accept_after: Optional[int] = Field(default=None, ge=1)
    select_till_match: bool = False
    highlight_matches: bool = True
    offset: SearchOffset = "exclusive"
    text: Optional[str] = Field(default=None, min_length=1)
    regex: bool = False
    register_name: str = Field(default="default", alias="register")
    do_after: Any = None

    @field_validator("do_after")
    @classmethod
    def _check_do_after(cls, value: Any) -> Any:
        if value is not None:
            parse_action(value)
        return value

    @property
    def forward(self) -> bool:
        return not self.backwards

    def reversed(self) -> "SearchArgs":
        return self.model_copy(update={"backwards": not self.backwards})


class MatchStepArgs(BaseModel):
    """Arguments of ``nextMatch`` / ``previousMatch``."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    register_name: str = Field(default="default", alias="register")


__all__ = ["SearchArgs", "SearchOffset", "MatchStepArgs"]
