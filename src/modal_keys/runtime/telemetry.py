"""Logging for modal-keys on top of telelog.

Every module logs through the helpers here rather than holding its own
logger. The knobs live in :class:`TelemetrySettings`, which is read from
``MODAL_KEYS_*`` environment variables unless a preset or explicit settings
are passed to :func:`configure`.

``span`` profiles a block under one of the ``modal_keys.*`` loggers.
Recoverable :class:`~modal_keys.errors.ModalKeysError` failures inside a span
become debug records; anything else is an ``error`` record.
"""

from __future__ import annotations

import os
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, Mapping, MutableMapping, Optional, Tuple, cast

import telelog  # type: ignore[import]

from modal_keys.errors import ModalKeysError

tl = cast(Any, telelog)

ENV_PREFIX = "MODAL_KEYS_"
DEFAULT_LOGGER_NAME = os.getenv(f"{ENV_PREFIX}LOGGER", "modal_keys")

_TRUTHY = {"1", "true", "yes", "on"}
_LOGGER_CACHE: MutableMapping[str, Any] = {}
_ACTIVE_CONFIG: Optional[Any] = None


@dataclass(frozen=True, slots=True)
class TelemetrySettings:
    """Where log records go and how they look."""

    level: str = "WARNING"
    console: bool = True
    color: bool = True
    json_format: bool = False
    log_file: str = ""
    buffered: bool = False
    buffer_size: int = 2048

    def __post_init__(self) -> None:
        object.__setattr__(self, "level", self.level.upper())
        if self.buffer_size < 1:
            raise ValueError("buffer_size must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "TelemetrySettings":
        env = os.environ if environ is None else environ

        def flag(name: str, default: bool) -> bool:
            raw = env.get(f"{ENV_PREFIX}{name}")
            return default if raw is None else raw.lower() in _TRUTHY

        raw_size = env.get(f"{ENV_PREFIX}LOG_BUFFER_SIZE") or "2048"
        try:
            buffer_size = int(raw_size)
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}LOG_BUFFER_SIZE must be an integer") from exc
        return cls(
            level=env.get(f"{ENV_PREFIX}LOG_LEVEL") or "WARNING",
            console=not flag("DISABLE_CONSOLE", False),
            color=not flag("NO_COLOR", False),
            json_format=flag("LOG_JSON", False),
            log_file=env.get(f"{ENV_PREFIX}LOG_FILE") or "",
            buffered=flag("LOG_BUFFERED", False),
            buffer_size=buffer_size,
        )

    def to_config(self) -> Any:
        """Translate into a ``telelog.Config``; profiling is always on."""

        config = tl.Config()
        config.with_min_level(self.level)
        config.with_console_output(self.console)
        if self.console:
            config.with_colored_output(self.color)
        config.with_json_format(self.json_format)
        if self.log_file:
            config.with_file_output(self.log_file)
        if self.buffered:
            config.with_buffering(True)
            config.with_buffer_size(self.buffer_size)
        config.with_profiling(True)
        return config


PRESETS: Dict[str, TelemetrySettings] = {
    "development": TelemetrySettings(level="DEBUG"),
    "production": TelemetrySettings(
        level="INFO", console=False, log_file="modal_keys.log", buffered=True
    ),
    "performance": TelemetrySettings(
        level="DEBUG",
        console=False,
        json_format=True,
        log_file="modal_keys-performance.log",
        buffered=True,
    ),
}


def preset_settings(preset: str) -> TelemetrySettings:
    """Named preset; ``MODAL_KEYS_LOG_FILE`` still overrides its log file."""

    settings = PRESETS.get(preset.lower())
    if settings is None:
        raise ValueError(f"Unknown preset '{preset}'.")
    log_file = os.getenv(f"{ENV_PREFIX}LOG_FILE")
    return replace(settings, log_file=log_file) if log_file else settings


def configure(
    *,
    config: Optional[Any] = None,
    preset: Optional[str] = None,
    settings: Optional[TelemetrySettings] = None,
) -> None:
    """Swap the active telelog configuration and drop cached loggers.

    At most one of ``config`` (a ready ``telelog.Config``), ``preset`` or
    ``settings`` may be given; with none, the environment is read again.
    """

    global _ACTIVE_CONFIG
    if sum(option is not None for option in (config, preset, settings)) > 1:
        raise ValueError("Provide only one of `config`, `preset` or `settings`.")

    if preset is not None:
        config = preset_settings(preset).to_config()
    elif settings is not None:
        config = settings.to_config()
    elif config is None:
        config = TelemetrySettings.from_env().to_config()
    else:
        config.with_profiling(True)

    _ACTIVE_CONFIG = config
    _LOGGER_CACHE.clear()


def get_logger(name: Optional[str] = None) -> Any:
    """Return the cached ``telelog.Logger`` for ``name``."""

    global _ACTIVE_CONFIG
    logger_name = name or DEFAULT_LOGGER_NAME
    if logger_name not in _LOGGER_CACHE:
        if _ACTIVE_CONFIG is None:
            _ACTIVE_CONFIG = TelemetrySettings.from_env().to_config()
        _LOGGER_CACHE[logger_name] = tl.Logger.with_config(logger_name, _ACTIVE_CONFIG)
    return _LOGGER_CACHE[logger_name]


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return repr(value) if isinstance(value, (dict, list, tuple, set)) else str(value)


def _level_method(logger: Any, level: str, *, with_data: bool) -> Tuple[Any, bool]:
    name = str(level).lower()
    if with_data:
        method = getattr(logger, f"{name}_with", None)
        if method is not None:
            return method, True
    method = getattr(logger, name, None)
    if method is None:
        raise ValueError(f"Unsupported log level '{level}'.")
    return method, False


def _emit(logger: Any, level: str, message: str, data: Optional[Dict[str, Any]]) -> None:
    method, accepts_data = _level_method(logger, level, with_data=bool(data))
    if accepts_data:
        method(message, [(str(key), _stringify(value)) for key, value in (data or {}).items()])
    elif data:
        method(f"{message} {data}")
    else:
        method(message)


def log(
    level: str,
    message: str,
    *,
    data: Optional[Dict[str, Any]] = None,
    logger_name: Optional[str] = None,
) -> None:
    _emit(get_logger(logger_name), level, message, data)


def record_event(
    name: str,
    *,
    level: str = "info",
    data: Optional[Dict[str, Any]] = None,
    logger_name: Optional[str] = None,
) -> None:
    """Emit an ``event::<name>`` record such as ``event::mode.switch``."""

    _emit(get_logger(logger_name), level, f"event::{name}", {"event": name, **(data or {})})


@dataclass
class SpanHandle:
    """Yielded by :func:`span`; metadata added here lands on its exit records."""

    logger: Any
    span_name: str
    component_name: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = _stringify(value)

    def _payload(self, **extra: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"span": self.span_name, **self.metadata}
        if self.component_name:
            payload["component"] = self.component_name
        payload.update({key: _stringify(value) for key, value in extra.items()})
        return payload

    def fail(self, reason: str) -> None:
        _emit(self.logger, "error", "span::fail", self._payload(reason=reason))

    def abort(self, error: ModalKeysError) -> None:
        _emit(
            self.logger,
            "debug",
            "span::abort",
            self._payload(error=type(error).__name__, reason=str(error)),
        )


@contextmanager
def span(
    name: str,
    *,
    logger_name: Optional[str] = None,
    component: Optional[str | bool] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Iterator[SpanHandle]:
    """Profile a block, optionally tracking it as a telelog component.

    ``component=True`` reuses ``name`` as the component id. ``metadata`` is
    pushed as logger context for the duration of the block. Exceptions are
    logged and re-raised.
    """

    logger = get_logger(logger_name)
    component_name = name if component is True else component or None
    pushed: Dict[str, str] = {
        key: _stringify(value) for key, value in (metadata or {}).items()
    }
    for key, value in pushed.items():
        logger.add_context(key, value)

    try:
        with ExitStack() as stack:
            if component_name:
                stack.enter_context(logger.track_component(component_name))
            stack.enter_context(logger.profile(name))
            handle = SpanHandle(
                logger=logger,
                span_name=name,
                component_name=component_name,
                metadata=dict(pushed),
            )
            try:
                yield handle
            except ModalKeysError as exc:
                handle.abort(exc)
                raise
            except Exception as exc:
                handle.fail(str(exc))
                raise
    finally:
        for key in pushed:
            logger.remove_context(key)


__all__ = [
    "PRESETS",
    "SpanHandle",
    "TelemetrySettings",
    "configure",
    "get_logger",
    "log",
    "preset_settings",
    "record_event",
    "span",
]
