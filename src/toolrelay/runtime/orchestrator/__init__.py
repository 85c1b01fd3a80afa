"""Per-turn state machine driving providers and tools."""

from .accumulator import ToolCallAccumulator
from .orchestrator import ChatOrchestrator

__all__ = ["ChatOrchestrator", "ToolCallAccumulator"]
