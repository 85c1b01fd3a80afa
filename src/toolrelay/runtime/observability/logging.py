"""Structured logging with context propagation.

Context-aware structured logging for the relay:
- Turn context binding (turn id, provider, model)
- Tool context binding (tool name, call id)
- Human-readable dev output, JSON Lines for production
- Scoped context that follows async calls via contextvars

Quick Start:
    >>> from toolrelay.runtime.observability import get_logger, configure_logging
    >>>
    >>> # Configure (once at startup)
    >>> configure_logging(format="console")  # or "json" for production
    >>>
    >>> log = get_logger("toolrelay.orchestrator")
    >>> log.info("turn started", messages=3)

    >>> # Bind tool context
    >>> log = log.bind_tool("google_search", "call_1")
    >>> log.info("dispatching")
"""

from __future__ import annotations

import logging
import sys
import time
import traceback
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, TextIO, runtime_checkable

import orjson

if TYPE_CHECKING:
    from types import TracebackType

    from toolrelay.foundation.config import LoggingSettings

LogDict = dict[str, Any]

# Bound context that persists across awaits within one task
_log_context: ContextVar[LogDict] = ContextVar("log_context", default={})


# ─────────────────────────────────────────────────────────────────────────────
# Core Logger
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class BoundLogger:
    """Structured logger with bound context.

    Binds key-value pairs that appear in every log entry.
    Immutable - bind() returns a new logger with merged context.

    Example:
        >>> log = BoundLogger(context={"logger": "relay"})
        >>> log.info("turn started", provider="aipipe")
        # => 10:30:45.123 [info] turn started logger="relay" provider="aipipe"
    """

    context: LogDict = field(default_factory=dict)
    _renderer: LogRenderer | None = None
    _level: int | None = None

    def bind(self, **kw: Any) -> BoundLogger:
        """Create new logger with additional bound context."""
        return BoundLogger(context={**self.context, **kw}, _renderer=self._renderer, _level=self._level)

    def bind_tool(self, name: str, call_id: str = "", **kw: Any) -> BoundLogger:
        """Bind tool dispatch context."""
        return self.bind(tool=name, call_id=call_id, **kw) if call_id else self.bind(tool=name, **kw)

    def bind_turn(self, turn_id: str, provider: str, model: str) -> BoundLogger:
        """Bind chat turn context."""
        return self.bind(turn_id=turn_id, provider=provider, model=model)

    def unbind(self, *keys: str) -> BoundLogger:
        """Create new logger without specified keys."""
        return BoundLogger(
            context={k: v for k, v in self.context.items() if k not in keys},
            _renderer=self._renderer,
            _level=self._level,
        )

    def _log(self, level: int, event: str, **kw: Any) -> None:
        if level < (self._level if self._level is not None else _state.level):
            return
        entry = LogEntry(
            timestamp=time.time(),
            level=_level_name(level),
            event=event,
            context={**_log_context.get(), **self.context, **kw},
        )
        (self._renderer or _state.renderer).render(entry)

    def debug(self, event: str, **kw: Any) -> None:
        self._log(logging.DEBUG, event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._log(logging.INFO, event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._log(logging.WARNING, event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._log(logging.ERROR, event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log error with exception info."""
        kw["exc_info"] = traceback.format_exc()
        self._log(logging.ERROR, event, **kw)

    def scope(self, **kw: Any) -> log_scope:
        """Scoped logging context.

        Example:
            >>> with log.scope(turn_id="abc123"):
            ...     log.info("processing")  # includes turn_id
            >>> log.info("done")  # no turn_id
        """
        return log_scope(**kw)


@dataclass(slots=True)
class LogEntry:
    """Immutable log entry with all context."""

    timestamp: float
    level: str
    event: str
    context: LogDict

    @property
    def ts_iso(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=UTC).isoformat()

    @property
    def ts_human(self) -> str:
        """HH:MM:SS.mmm"""
        return datetime.fromtimestamp(self.timestamp, tz=UTC).strftime("%H:%M:%S.%f")[:-3]


class log_scope:
    """Context manager adding key-value pairs to every entry logged within it.

    Example:
        >>> with log_scope(turn_id="abc123"):
        ...     log.info("processing")  # includes turn_id
    """

    __slots__ = ("_ctx", "_token")

    def __init__(self, **kw: Any) -> None:
        self._ctx: LogDict = dict(kw)
        self._token: object | None = None

    def __enter__(self) -> log_scope:
        self._token = _log_context.set({**_log_context.get(), **self._ctx})
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _log_context.reset(self._token)  # type: ignore[arg-type]


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@runtime_checkable
class LogRenderer(Protocol):
    """Protocol for log output renderers."""

    def render(self, entry: LogEntry) -> None: ...


@dataclass(slots=True)
class ConsoleRenderer:
    """Human-readable console output: timestamp [level] event key=value ...

    Colors are auto-detected based on TTY, can be forced on/off.
    """

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None
    show_timestamp: bool = True

    def __post_init__(self) -> None:
        if self.colors is None:
            self.colors = hasattr(self.output, "isatty") and self.output.isatty()

    def render(self, entry: LogEntry) -> None:
        c = _COLORS if self.colors else _NO_COLORS
        parts: list[str] = []
        if self.show_timestamp:
            parts.append(f"{c['dim']}{entry.ts_human}{c['reset']}")
        level_color = _LEVEL_COLORS.get(entry.level, c["dim"]) if self.colors else ""
        parts.append(f"{level_color}[{entry.level}]{c['reset']}")
        parts.append(f"{c['bold']}{entry.event}{c['reset']}")
        for k, v in sorted(entry.context.items()):
            if k != "exc_info":
                parts.append(f"{c['cyan']}{k}{c['reset']}={_format_value(v, c)}")
        print(" ".join(parts), file=self.output)
        if "exc_info" in entry.context:
            print(f"{c['red']}{entry.context['exc_info']}{c['reset']}", file=self.output)


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines output for log aggregation."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        data = {"timestamp": entry.ts_iso, "level": entry.level, "event": entry.event, **entry.context}
        print(orjson.dumps(data, default=str).decode(), file=self.output)


@dataclass(slots=True)
class NoOpRenderer:
    """Silent renderer for testing."""

    def render(self, entry: LogEntry) -> None:
        pass


@dataclass(slots=True)
class CollectingRenderer:
    """Keeps entries in memory; used by tests to assert on log output."""

    entries: list[LogEntry] = field(default_factory=list)

    def render(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def events(self) -> list[str]:
        return [e.event for e in self.entries]


# ─────────────────────────────────────────────────────────────────────────────
# Global Configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class _LoggingState:
    renderer: LogRenderer = field(default_factory=ConsoleRenderer)
    level: int = logging.INFO


_state = _LoggingState()


def configure_logging(
    format: str = "console",  # noqa: A002 - shadows builtin but matches stdlib
    level: str = "INFO",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
    renderer: LogRenderer | None = None,
) -> LogRenderer:
    """Configure global structured logging.

    Args:
        format: Output format - "console" (human), "json" (machine), "none"
        level: Minimum log level - DEBUG, INFO, WARNING, ERROR
        output: Output stream (default: stderr for console, stdout for json)
        colors: Force colors on/off (None = auto-detect)
        renderer: Explicit renderer, overrides `format`

    Returns:
        Configured renderer instance
    """
    _state.level = getattr(logging, level.upper(), logging.INFO)
    if renderer is None:
        if format == "console":
            renderer = ConsoleRenderer(output=output or sys.stderr, colors=colors)
        elif format == "json":
            renderer = JsonRenderer(output=output or sys.stdout)
        elif format == "none":
            renderer = NoOpRenderer()
        else:
            raise ValueError(f"Unknown format: {format}. Use 'console', 'json', or 'none'")
    _state.renderer = renderer
    return renderer


def configure_from_settings(settings: LoggingSettings) -> LogRenderer:
    return configure_logging(format=settings.format, level=settings.level)


def get_logger(name: str | None = None, **initial_context: Any) -> BoundLogger:
    """Get a structured logger with optional initial context.

    Level and renderer are resolved at emit time, so module-level loggers
    follow later calls to configure_logging().
    """
    ctx = dict(initial_context)
    if name:
        ctx["logger"] = name
    return BoundLogger(context=ctx)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


_COLORS = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "cyan": "\033[36m",
    "white": "\033[37m",
}

_NO_COLORS = {k: "" for k in _COLORS}

_LEVEL_COLORS = {
    "debug": _COLORS["dim"],
    "info": _COLORS["green"],
    "warning": _COLORS["yellow"],
    "error": _COLORS["red"],
}


def _level_name(level: int) -> str:
    return logging.getLevelName(level).lower()


def _format_value(v: object, c: dict[str, str]) -> str:
    if isinstance(v, str):
        return f'{c["yellow"]}"{v}"{c["reset"]}'
    if isinstance(v, bool):
        return f'{c["blue"]}{str(v).lower()}{c["reset"]}'
    if isinstance(v, (int, float)):
        return f'{c["blue"]}{v}{c["reset"]}'
    if isinstance(v, dict):
        return f'{c["dim"]}{{{len(v)} items}}{c["reset"]}'
    if isinstance(v, (list, tuple)):
        return f'{c["dim"]}[{len(v)} items]{c["reset"]}'
    return f'{c["white"]}{v!r}{c["reset"]}'
