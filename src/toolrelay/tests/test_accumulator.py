"""Tests for tool-call fragment reassembly."""

from __future__ import annotations

import pytest

from toolrelay.providers import ToolCallFragment
from toolrelay.runtime.orchestrator import ToolCallAccumulator


def _split(text: str, sizes: list[int]) -> list[str]:
    parts, pos = [], 0
    for size in sizes:
        parts.append(text[pos:pos + size])
        pos += size
    parts.append(text[pos:])
    return [p for p in parts if p]


class TestReassembly:
    def test_two_fragment_arguments(self) -> None:
        acc = ToolCallAccumulator()
        acc.append(ToolCallFragment(index=0, id="call_1", name="execute_python"))
        acc.append(ToolCallFragment(index=0, arguments='{"co'))
        acc.append(ToolCallFragment(index=0, arguments='de":"1+1"}'))

        (call,) = acc.finalize()
        assert call.id == "call_1"
        assert call.name == "execute_python"
        assert call.arguments == '{"code":"1+1"}'

    @pytest.mark.parametrize("sizes", [[], [1], [3, 3, 3], [1] * 20, [7, 1, 2]])
    def test_concatenation_independent_of_split(self, sizes: list[int]) -> None:
        arguments = '{"query": "weather in Paris", "limit": 3}'
        name = "google_search"
        acc = ToolCallAccumulator()
        for part in _split(name, sizes):
            acc.append(ToolCallFragment(index=0, name=part))
        for part in _split(arguments, sizes):
            acc.append(ToolCallFragment(index=0, arguments=part))

        (call,) = acc.finalize()
        assert call.name == name
        assert call.arguments == arguments

    def test_whitespace_kept_verbatim(self) -> None:
        acc = ToolCallAccumulator()
        for part in ['{ "a"', " : ", " 1 }\n"]:
            acc.append(ToolCallFragment(index=0, arguments=part))
        assert acc.finalize()[0].arguments == '{ "a" :  1 }\n'

    def test_interleaved_indices_stay_separate_and_ordered(self) -> None:
        acc = ToolCallAccumulator()
        acc.append(ToolCallFragment(index=1, id="b", name="second", arguments='{"x"'))
        acc.append(ToolCallFragment(index=0, id="a", name="first", arguments="{"))
        acc.append(ToolCallFragment(index=1, arguments=":1}"))
        acc.append(ToolCallFragment(index=0, arguments="}"))

        calls = acc.finalize()
        assert [c.id for c in calls] == ["a", "b"]
        assert [c.arguments for c in calls] == ["{}", '{"x":1}']


class TestLifecycle:
    def test_snapshot_is_partial_view(self) -> None:
        acc = ToolCallAccumulator()
        acc.append(ToolCallFragment(index=0, id="c", name="echo", arguments='{"te'))
        assert acc.snapshot()[0].arguments == '{"te'
        acc.append(ToolCallFragment(index=0, arguments='xt":"hi"}'))
        assert acc.snapshot()[0].arguments == '{"text":"hi"}'

    def test_first_id_wins(self) -> None:
        acc = ToolCallAccumulator()
        acc.append(ToolCallFragment(index=0, id="call_1"))
        acc.append(ToolCallFragment(index=0, id="call_other"))
        assert acc.finalize()[0].id == "call_1"

    def test_missing_id_is_synthesized_on_finalize(self) -> None:
        acc = ToolCallAccumulator()
        acc.append(ToolCallFragment(index=2, name="echo"))
        assert acc.snapshot()[0].id == ""
        assert acc.finalize()[0].id == "call_2"

    def test_append_after_finalize_rejected(self) -> None:
        acc = ToolCallAccumulator()
        acc.append(ToolCallFragment(index=0, name="echo"))
        first = acc.finalize()
        with pytest.raises(RuntimeError):
            acc.append(ToolCallFragment(index=0, arguments="{}"))
        assert acc.finalize() is first
        assert acc.finalized

    def test_empty(self) -> None:
        acc = ToolCallAccumulator()
        assert not acc
        assert len(acc) == 0
        assert acc.finalize() == ()
