"""Tool-call fragment reassembly.

Fragments are addressed by position index. A new index allocates an empty
call; later fragments for that index append to its name and arguments
buffers verbatim. Arguments are never parsed here.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from toolrelay.foundation.core import ToolCallRequest
from toolrelay.providers import ToolCallFragment


@dataclass(slots=True)
class _CallBuffer:
    id: str = ""
    name: list[str] = field(default_factory=list)
    arguments: list[str] = field(default_factory=list)

    def build(self, call_id: str | None = None) -> ToolCallRequest:
        return ToolCallRequest.create(call_id or self.id, "".join(self.name), "".join(self.arguments))


class ToolCallAccumulator:
    """Ordered index -> buffer map with an explicit finalize step.

    Example:
        >>> acc = ToolCallAccumulator()
        >>> acc.append(ToolCallFragment(index=0, id="call_1", name="execute_python", arguments='{"co'))
        >>> acc.append(ToolCallFragment(index=0, arguments='de":"1+1"}'))
        >>> acc.finalize()[0].arguments
        '{"code":"1+1"}'
    """

    __slots__ = ("_calls", "_final")

    def __init__(self) -> None:
        self._calls: dict[int, _CallBuffer] = {}
        self._final: tuple[ToolCallRequest, ...] | None = None

    def __len__(self) -> int:
        return len(self._calls)

    def __bool__(self) -> bool:
        return bool(self._calls)

    @property
    def finalized(self) -> bool:
        return self._final is not None

    def append(self, fragment: ToolCallFragment) -> None:
        if self._final is not None:
            raise RuntimeError("tool calls already finalized")
        buf = self._calls.get(fragment.index)
        if buf is None:
            buf = self._calls[fragment.index] = _CallBuffer()
        if fragment.id and not buf.id:
            buf.id = fragment.id
        if fragment.name:
            buf.name.append(fragment.name)
        if fragment.arguments:
            buf.arguments.append(fragment.arguments)

    def snapshot(self) -> tuple[ToolCallRequest, ...]:
        """Current, possibly partial, calls in index order."""
        return tuple(self._calls[i].build() for i in sorted(self._calls))

    def finalize(self) -> tuple[ToolCallRequest, ...]:
        """Freeze the calls. Calls that never received an id get `call_<index>`."""
        if self._final is None:
            self._final = tuple(self._calls[i].build(self._calls[i].id or f"call_{i}") for i in sorted(self._calls))
        return self._final
