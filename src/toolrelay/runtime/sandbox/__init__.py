"""Sandboxed execution of untrusted Python or JavaScript source in a throwaway interpreter."""

from .engine import TIMEOUT_MESSAGE, ExecutionFailure, ExecutionResult, Language, LogEntry, SandboxEngine

__all__ = ["SandboxEngine", "ExecutionResult", "ExecutionFailure", "LogEntry", "Language", "TIMEOUT_MESSAGE"]
