"""Sandboxed execution of untrusted Python or JavaScript source.

Each run gets a fresh child interpreter started in isolated mode, with an
empty environment, a throwaway working directory and an address-space cap
(POSIX). The source travels over stdin, nothing is written to disk besides
the empty temp dir.

- python: `-I -S` worker, AST screen plus a restricted builtins table.
- javascript: `-I` worker hosting a fresh QuickJS context (no filesystem,
  process or module access), with a QuickJS memory limit.

The wall-clock deadline races the worker's completion; on expiry the worker
is killed and a timeout failure is returned. Partial output is discarded.
Cancellation of the awaiting task kills the worker as well.

Example:
    >>> engine = SandboxEngine()
    >>> result = await engine.run("x = 20\\nx + 22", timeout_ms=2000)
    >>> result.success, result.result
    (True, 42)
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import sys
import tempfile
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field

from toolrelay.foundation.errors import ExecutionError
from toolrelay.runtime.observability import get_logger

if TYPE_CHECKING:
    from toolrelay.foundation.config import SandboxSettings

log = get_logger("toolrelay.sandbox")

TIMEOUT_MESSAGE = "Execution timeout"

# Minimal environment for the worker; nothing from the host leaks through
_WORKER_ENV: dict[str, str] = {"PYTHONDONTWRITEBYTECODE": "1", "PYTHONIOENCODING": "utf-8"}

_PYTHON_WORKER = r'''
import ast, builtins, json, sys, time, traceback

_SAFE = (
    "abs", "all", "any", "ascii", "bin", "bool", "bytes", "callable", "chr", "complex",
    "dict", "divmod", "enumerate", "filter", "float", "format", "frozenset", "hash",
    "hex", "int", "isinstance", "issubclass", "iter", "len", "list", "map", "max",
    "min", "next", "oct", "ord", "pow", "range", "repr", "reversed", "round", "set",
    "slice", "sorted", "str", "sum", "tuple", "zip",
    "ArithmeticError", "AssertionError", "AttributeError", "Exception", "IndexError",
    "KeyError", "LookupError", "NameError", "NotImplementedError", "OverflowError",
    "RuntimeError", "StopIteration", "TypeError", "ValueError", "ZeroDivisionError",
)


class SandboxViolation(Exception):
    pass


def _screen(tree):
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise SandboxViolation("import statements are not allowed")
        name = None
        if isinstance(node, ast.Name):
            name = node.id
        elif isinstance(node, ast.Attribute):
            name = node.attr
        if name is not None and name.startswith("__"):
            raise SandboxViolation("access to '%s' is not allowed" % name)


def _jsonable(value):
    try:
        json.dumps(value, allow_nan=False)
        return value
    except (TypeError, ValueError, OverflowError):
        return repr(value)


def _main():
    payload = json.loads(sys.stdin.read())
    limit_mb = payload.get("memory_limit_mb") or 0
    if limit_mb and sys.platform != "win32":
        import resource
        size = limit_mb * 1024 * 1024
        resource.setrlimit(resource.RLIMIT_AS, (size, size))

    out = sys.stdout
    logs = []
    max_logs = payload.get("max_logs", 1000)

    def _capture(kind):
        def emit(*args, **_kw):
            if len(logs) < max_logs:
                logs.append({"type": kind, "args": [_jsonable(a) for a in args]})
        return emit

    class _Console:
        __slots__ = ()
        log = staticmethod(_capture("log"))
        info = staticmethod(_capture("info"))
        warn = staticmethod(_capture("warn"))
        error = staticmethod(_capture("error"))

    safe = {name: getattr(builtins, name) for name in _SAFE}
    safe["print"] = _capture("log")
    safe["__build_class__"] = builtins.__build_class__
    env = {"__builtins__": safe, "__name__": "__sandbox__", "console": _Console()}

    started = time.perf_counter()
    try:
        tree = ast.parse(payload["code"], "<sandbox>", "exec")
        _screen(tree)
        tail = None
        if tree.body and isinstance(tree.body[-1], ast.Expr):
            tail = ast.Expression(tree.body.pop().value)
        exec(compile(tree, "<sandbox>", "exec"), env)
        result = eval(compile(tail, "<sandbox>", "eval"), env) if tail is not None else None
        report = {"success": True, "result": _jsonable(result)}
    except SandboxViolation as exc:
        report = {"success": False, "error": {"kind": "SecurityError", "message": str(exc)}}
    except BaseException as exc:
        report = {
            "success": False,
            "error": {
                "kind": type(exc).__name__,
                "message": str(exc),
                "stack": "".join(traceback.format_exception_only(type(exc), exc)).strip(),
            },
        }
    report["logs"] = logs
    report["elapsed_ms"] = (time.perf_counter() - started) * 1000
    out.write(json.dumps(report))
    out.flush()


_main()
'''

# The report is built inside the JS context; the host side only ships strings
_JAVASCRIPT_PRELUDE = r'''
globalThis.__run = function (source, maxLogs) {
  const logs = [];
  const plain = (value) => {
    if (value === undefined) return null;
    if (typeof value === "function" || typeof value === "symbol" || typeof value === "bigint") return String(value);
    try {
      const text = JSON.stringify(value);
      return text === undefined ? String(value) : JSON.parse(text);
    } catch (e) {
      return String(value);
    }
  };
  const capture = (type) => (...args) => {
    if (logs.length < maxLogs) logs.push({ type: type, args: args.map(plain) });
  };
  globalThis.console = { log: capture("log"), info: capture("info"), warn: capture("warn"), error: capture("error") };
  const started = Date.now();
  let report;
  try {
    report = { success: true, result: plain((0, eval)(source)) };
  } catch (e) {
    report = {
      success: false,
      error: e instanceof Error
        ? { kind: e.name, message: e.message, stack: e.stack }
        : { kind: "Error", message: String(e) },
    };
  }
  report.logs = logs;
  report.elapsed_ms = Date.now() - started;
  return JSON.stringify(report);
};
'''

_JAVASCRIPT_WORKER = r'''
import json, sys

def _main():
    payload = json.loads(sys.stdin.read())
    limit_mb = payload.get("memory_limit_mb") or 0
    if limit_mb and sys.platform != "win32":
        import resource
        size = limit_mb * 1024 * 1024
        resource.setrlimit(resource.RLIMIT_AS, (size, size))
    try:
        import quickjs
    except ImportError as exc:
        report = {"success": False, "error": {"kind": "ConfigurationError", "message": "JavaScript engine unavailable: %s" % exc}}
        sys.stdout.write(json.dumps(report))
        return

    context = quickjs.Context()
    if limit_mb:
        # JS heap stays under the process cap
        context.set_memory_limit(limit_mb * 1024 * 1024 // 2)
    try:
        context.eval(payload["prelude"])
        out = context.eval("__run(%s, %d)" % (json.dumps(payload["code"]), payload.get("max_logs", 1000)))
    except quickjs.JSException as exc:
        out = json.dumps({"success": False, "error": {"kind": "InternalError", "message": str(exc)}, "logs": []})
    sys.stdout.write(out)
    sys.stdout.flush()


_main()
'''

Language = Literal["python", "javascript"]

# Worker program and interpreter flags per language; the JS worker needs site-packages for quickjs
_WORKERS: dict[str, tuple[str, tuple[str, ...]]] = {
    "python": (_PYTHON_WORKER, ("-I", "-S")),
    "javascript": (_JAVASCRIPT_WORKER, ("-I",)),
}


class ExecutionFailure(BaseModel):
    """Structured error raised inside (or imposed on) the sandboxed code."""

    model_config = ConfigDict(frozen=True)

    kind: str
    message: str
    stack: str | None = None


class LogEntry(BaseModel):
    """One captured print/console call."""

    model_config = ConfigDict(frozen=True)

    type: str
    args: list[Any] = Field(default_factory=list)


class ExecutionResult(BaseModel):
    """Outcome of one sandbox run."""

    model_config = ConfigDict(frozen=True)

    success: bool
    result: Any = None
    error: ExecutionFailure | None = None
    logs: tuple[LogEntry, ...] = ()
    elapsed_ms: float = 0.0

    @classmethod
    def failure(cls, kind: str, message: str, elapsed_ms: float = 0.0) -> ExecutionResult:
        return cls(success=False, error=ExecutionFailure(kind=kind, message=message), elapsed_ms=elapsed_ms)

    @classmethod
    def timed_out(cls, timeout_ms: int) -> ExecutionResult:
        return cls.failure("TimeoutError", TIMEOUT_MESSAGE, float(timeout_ms))

    @property
    def is_timeout(self) -> bool:
        return self.error is not None and self.error.message == TIMEOUT_MESSAGE

    def to_payload(self) -> dict[str, Any]:
        """Tool-facing payload: {success, result|error, logs, executionTime}."""
        body: dict[str, Any] = {
            "success": self.success,
            "logs": [entry.model_dump() for entry in self.logs],
            "executionTime": round(self.elapsed_ms, 3),
        }
        if self.success:
            body["result"] = self.result
        else:
            assert self.error is not None
            body["error"] = self.error.model_dump(exclude_none=True)
        return body


@dataclass(slots=True)
class SandboxEngine:
    """Runs code in a throwaway child interpreter with a hard deadline.

    Attributes:
        memory_limit_mb: RLIMIT_AS for the worker (ignored on Windows)
        max_log_entries: Captured print/console entries kept per run
        interpreter: Python executable used for workers
    """

    memory_limit_mb: int = 256
    max_log_entries: int = 1000
    interpreter: str = field(default_factory=lambda: sys.executable or "")

    @classmethod
    def from_settings(cls, settings: SandboxSettings) -> SandboxEngine:
        return cls(memory_limit_mb=settings.memory_limit_mb, max_log_entries=settings.max_log_entries)

    @property
    def available(self) -> bool:
        return bool(self.interpreter) and os.path.exists(self.interpreter)

    async def run(self, code: str, timeout_ms: int, language: Language = "python") -> ExecutionResult:
        """Execute `code` written in `language`, returning within roughly `timeout_ms`.

        Never raises for failures of the executed code; those come back as
        `success=False` with a structured error. Raises ExecutionError when
        the worker process cannot be started.
        """
        if not self.available:
            return ExecutionResult.failure("ConfigurationError", "No interpreter available for sandboxed execution")

        source, flags = _WORKERS[language]
        payload = orjson.dumps({
            "code": code,
            "prelude": _JAVASCRIPT_PRELUDE if language == "javascript" else "",
            "memory_limit_mb": self.memory_limit_mb,
            "max_logs": self.max_log_entries,
        })
        started = time.perf_counter()

        with tempfile.TemporaryDirectory(prefix="toolrelay-sandbox-") as workdir:
            try:
                proc = await asyncio.create_subprocess_exec(
                    self.interpreter, *flags, "-c", source,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=workdir,
                    env=_WORKER_ENV,
                )
            except OSError as e:
                raise ExecutionError(f"could not start sandbox worker: {e}", kind="WorkerStart") from e
            try:
                stdout, stderr = await asyncio.wait_for(proc.communicate(payload), timeout=timeout_ms / 1000)
            except TimeoutError:
                log.warning("sandbox timeout", language=language, timeout_ms=timeout_ms, pid=proc.pid)
                return ExecutionResult.timed_out(timeout_ms)
            finally:
                await _reap(proc)

        elapsed_ms = (time.perf_counter() - started) * 1000
        return self._parse_report(stdout, stderr, proc.returncode, elapsed_ms)

    def _parse_report(self, stdout: bytes, stderr: bytes, returncode: int | None, elapsed_ms: float) -> ExecutionResult:
        text = stdout.strip()
        if text:
            try:
                report = orjson.loads(text)
            except orjson.JSONDecodeError:
                log.warning("sandbox report unreadable", size=len(text))
            else:
                report.setdefault("elapsed_ms", elapsed_ms)
                return ExecutionResult.model_validate(report)
        if stderr:
            log.debug("sandbox worker stderr", stderr=stderr.decode(errors="replace")[-2000:])
        return ExecutionResult.failure("WorkerExit", f"Worker stopped with exit code {returncode}", elapsed_ms)


async def _reap(proc: asyncio.subprocess.Process) -> None:
    """Kill the worker if it is still alive and wait for it to exit."""
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    await proc.wait()
