from src.nexus.client.streaming import ToolCallFragment
from src.nexus.client.tool_calls import ToolCall, ToolCallAccumulator


def test_call_exposed_only_after_arguments_parse():
    acc = ToolCallAccumulator()
    assert acc.add(ToolCallFragment(0, "create_ticket", '{"tit')) is None
    assert acc.current() is None
    call = acc.add(ToolCallFragment(0, None, 'le":"Fix bug"}'))
    assert call == ToolCall("create_ticket", {"title": "Fix bug"})
    assert call.arguments["title"] == "Fix bug"
    assert acc.current() == call


def test_fragments_concatenate_in_arrival_order():
    parts = ['{"a"', ': [1, ', "2, 3", "]}"]
    acc = ToolCallAccumulator()
    results = [acc.add(ToolCallFragment(0, "triage_ticket" if i == 0 else None, p)) for i, p in enumerate(parts)]
    assert results[:-1] == [None, None, None]
    assert results[-1] == ToolCall("triage_ticket", {"a": [1, 2, 3]})
    assert acc.arguments_text() == "".join(parts)


def test_name_is_fixed_by_first_fragment():
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(0, "create_ticket", None))
    call = acc.add(ToolCallFragment(0, "something_else", "{}"))
    assert call == ToolCall("create_ticket", {})


def test_no_call_without_name():
    acc = ToolCallAccumulator()
    assert acc.add(ToolCallFragment(0, None, '{"x": 1}')) is None
    assert acc.finalize() is None


def test_same_payload_is_not_reported_twice():
    acc = ToolCallAccumulator()
    assert acc.add(ToolCallFragment(0, "create_ticket", '{"x": 1}')) is not None
    assert acc.add(ToolCallFragment(0, None, "")) is None


def test_non_object_json_is_never_exposed():
    acc = ToolCallAccumulator()
    assert acc.add(ToolCallFragment(0, "create_ticket", "[1, 2]")) is None
    assert acc.finalize() is None


def test_finalize_with_empty_arguments_yields_empty_object():
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(0, "triage_ticket", None))
    assert acc.finalize() == ToolCall("triage_ticket", {})


def test_finalize_with_truncated_arguments_is_content_only():
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(0, "create_ticket", '{"title": "trunc'))
    assert acc.finalize() is None


def test_indices_are_tracked_separately():
    acc = ToolCallAccumulator()
    acc.add(ToolCallFragment(0, "create_ticket", '{"a":'))
    second = acc.add(ToolCallFragment(1, "triage_ticket", '{"b": 2}'))
    first = acc.add(ToolCallFragment(0, None, " 1}"))
    assert second == ToolCall("triage_ticket", {"b": 2})
    assert first == ToolCall("create_ticket", {"a": 1})
    acc.reset()
    assert acc.current(0) is None
