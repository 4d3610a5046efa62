"""Session settings with environment and mapping constructors."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

ENV_PREFIX = "MODAL_KEYS_"

DEFAULT_VALID_MODES = ("insert", "normal", "visual", "search", "capture")
DEFAULT_MODE_CAPTURES: Mapping[str, str] = {
    "search": "modalkeys.searchChar",
    "capture": "modalkeys.captureChar",
}
DEFAULT_DOCS_URL = "https://github.com/haberdashPI/vscode-modal-keys"


@dataclass(frozen=True, slots=True)
class ModalKeysSettings:
    """Tunables for a :class:`~modal_keys.modes.Session`."""

    start_mode: str = "normal"
    valid_modes: tuple[str, ...] = DEFAULT_VALID_MODES
    mode_captures: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_MODE_CAPTURES)
    )
    max_repeat: int = 1000
    error_limit: int = 3
    highlight_matches: bool = True
    docs_url: str = DEFAULT_DOCS_URL

    def __post_init__(self) -> None:
        modes = tuple(dict.fromkeys(m.strip() for m in self.valid_modes if m.strip()))
        if not modes:
            raise ValueError("valid_modes cannot be empty")
        if self.start_mode not in modes:
            raise ValueError(f"start_mode '{self.start_mode}' is not a valid mode")
        if self.max_repeat < 1:
            raise ValueError("max_repeat must be positive")
        if self.error_limit < 1:
            raise ValueError("error_limit must be positive")
        object.__setattr__(self, "valid_modes", modes)
        object.__setattr__(
            self, "mode_captures", MappingProxyType(dict(self.mode_captures))
        )

    def with_overrides(self, **changes: Any) -> "ModalKeysSettings":
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ModalKeysSettings":
        """Build settings from a parsed ``[modalkeys]`` table (snake or camel case)."""

        aliases = {
            "startMode": "start_mode",
            "validModes": "valid_modes",
            "modeCaptures": "mode_captures",
            "maxRepeat": "max_repeat",
            "errorLimit": "error_limit",
            "highlightMatches": "highlight_matches",
            "docsUrl": "docs_url",
        }
        known = set(cls.__dataclass_fields__)
        kwargs: dict[str, Any] = {}
        for raw_key, value in data.items():
            key = aliases.get(raw_key, raw_key)
            if key not in known:
                raise ValueError(f"Unknown setting '{raw_key}'")
            kwargs[key] = value

        for name in ("max_repeat", "error_limit"):
            if name in kwargs and (
                isinstance(kwargs[name], bool) or not isinstance(kwargs[name], int)
            ):
                raise ValueError(f"{name} must be an integer")
        if "highlight_matches" in kwargs and not isinstance(
            kwargs["highlight_matches"], bool
        ):
            raise ValueError("highlight_matches must be a boolean")
        if "valid_modes" in kwargs:
            modes = kwargs["valid_modes"]
            if isinstance(modes, str) or not all(isinstance(m, str) for m in modes):
                raise ValueError("valid_modes must be a list of strings")
            kwargs["valid_modes"] = tuple(modes)
        if "mode_captures" in kwargs and not isinstance(kwargs["mode_captures"], Mapping):
            raise ValueError("mode_captures must be a table of mode -> command")
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ModalKeysSettings":
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}
        start_mode = env.get(f"{ENV_PREFIX}START_MODE")
        if start_mode:
            kwargs["start_mode"] = start_mode
        valid_modes = env.get(f"{ENV_PREFIX}VALID_MODES")
        if valid_modes:
            kwargs["valid_modes"] = tuple(
                mode.strip() for mode in valid_modes.split(",") if mode.strip()
            )
        for name in ("MAX_REPEAT", "ERROR_LIMIT"):
            raw = env.get(f"{ENV_PREFIX}{name}")
            if raw:
                try:
                    kwargs[name.lower()] = int(raw)
                except ValueError as exc:
                    raise ValueError(f"{ENV_PREFIX}{name} must be an integer") from exc
        return cls(**kwargs)


__all__ = ["ModalKeysSettings", "DEFAULT_VALID_MODES", "DEFAULT_MODE_CAPTURES"]
