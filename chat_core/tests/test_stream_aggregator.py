import json

import pytest

from chat_core.domain.exceptions import ConnectionTerminatedError, ProtocolError
from chat_core.domain.models import ChatMessage
from chat_core.streaming.aggregator import (
    StreamAggregator,
    apply_conversation_event,
    fold_events,
)


def _result():
    return ChatMessage(role="assistant", text="", id="r1", parent_message_id="u1")


def _delta(content=None, **extra):
    delta = {}
    if content is not None:
        delta["content"] = content
    return json.dumps({"choices": [{"delta": delta}], **extra})


async def _aiter(items, error=None):
    for item in items:
        yield item
    if error is not None:
        raise error


def test_fold_concatenates_deltas():
    seen = []
    res = fold_events(
        ['{"choices":[{"delta":{"content":"Hel"}}]}', '{"choices":[{"delta":{"content":"lo"}}]}', "[DONE]"],
        _result(),
        on_progress=seen.append,
    )

    assert res.text == "Hello"
    assert len(seen) == 2
    assert [s.text for s in seen] == ["Hel", "Hello"]
    assert seen[-1].delta == "lo"


def test_snapshots_are_not_mutated_afterwards():
    seen = []
    fold_events([_delta("a"), _delta("b"), "[DONE]"], _result(), on_progress=seen.append)
    assert seen[0].text == "a"
    assert seen[0] is not seen[1]


def test_done_trims_text_and_ignores_later_payloads():
    agg = StreamAggregator(_result())
    agg.feed(_delta("  hi  "))
    assert agg.feed(" [DONE] \n") is True
    assert agg.result.text == "hi"
    assert agg.state == "resolved"
    assert agg.feed(_delta("more")) is True
    assert agg.result.text == "hi"


def test_malformed_payload_rejects_for_good():
    agg = StreamAggregator(_result())
    agg.feed(_delta("x"))
    with pytest.raises(ProtocolError):
        agg.feed("not json at all")
    assert agg.state == "rejected"
    with pytest.raises(ProtocolError):
        agg.feed("[DONE]")
    assert agg.state == "rejected"


def test_wrong_shape_event_rejects_for_good():
    agg = StreamAggregator(_result())
    agg.feed(_delta("Hi"))
    with pytest.raises(ProtocolError) as exc_info:
        agg.feed(json.dumps({"choices": ["oops"]}))
    assert exc_info.value.code == "STREAM_PARSE_ERROR"
    assert agg.state == "rejected"
    with pytest.raises(ProtocolError):
        agg.feed("[DONE]")
    assert agg.state == "rejected"


def test_wrong_shape_event_skipped_when_ignoring_malformed():
    agg = StreamAggregator(_result(), reducer=apply_conversation_event, ignore_malformed=True)
    agg.feed(json.dumps({"message": {"content": {"parts": ["Hi"]}}}))
    assert agg.feed(json.dumps({"message": "oops"})) is False
    assert agg.feed("[DONE]") is True
    assert agg.state == "resolved"
    assert agg.result.text == "Hi"


def test_id_role_and_usage_are_adopted():
    seen = []
    agg = StreamAggregator(_result(), on_progress=seen.append)
    agg.feed(json.dumps({"id": "chatcmpl-1", "choices": [{"delta": {"role": "assistant"}}]}))
    agg.feed(_delta("ok", usage={"total_tokens": 7}))
    agg.feed("[DONE]")

    assert agg.result.id == "chatcmpl-1"
    assert agg.result.role == "assistant"
    assert agg.result.detail["usage"] == {"total_tokens": 7}
    # choices 与 usage 各通知一次
    assert len(seen) == 3
    assert seen[1].text == seen[2].text == "ok"
    assert seen[2].detail["usage"] == {"total_tokens": 7}


def test_usage_without_prior_detail_is_ignored():
    seen = []
    agg = StreamAggregator(_result(), on_progress=seen.append)
    agg.feed(json.dumps({"usage": {"total_tokens": 3}}))
    assert seen == []
    assert agg.result.detail is None


def test_fold_without_done_and_without_text_rejects():
    with pytest.raises(ProtocolError):
        fold_events([json.dumps({"id": "x"})], _result())


@pytest.mark.asyncio
async def test_terminated_connection_keeps_partial_text():
    agg = StreamAggregator(_result())
    error = ConnectionTerminatedError(code="CONNECTION_TERMINATED", message="terminated")
    res = await agg.consume(_aiter([_delta("partial")], error=error))
    assert res.text == "partial"
    assert agg.state == "resolved"


@pytest.mark.asyncio
async def test_terminated_message_signal_keeps_partial_text():
    agg = StreamAggregator(_result())
    res = await agg.consume(_aiter([_delta("partial")], error=RuntimeError("TypeError: terminated")))
    assert res.text == "partial"


@pytest.mark.asyncio
async def test_terminated_connection_without_text_rejects():
    agg = StreamAggregator(_result())
    error = ConnectionTerminatedError(code="CONNECTION_TERMINATED", message="terminated")
    with pytest.raises(ConnectionTerminatedError):
        await agg.consume(_aiter([json.dumps({"id": "x"})], error=error))
    assert agg.state == "rejected"


@pytest.mark.asyncio
async def test_other_transport_errors_reject_even_with_text():
    agg = StreamAggregator(_result())
    with pytest.raises(RuntimeError):
        await agg.consume(_aiter([_delta("partial")], error=RuntimeError("boom")))
    assert agg.state == "rejected"


@pytest.mark.asyncio
async def test_consume_stops_at_done():
    agg = StreamAggregator(_result())
    res = await agg.consume(_aiter([_delta("a"), "[DONE]", "garbage"]))
    assert res.text == "a"


def test_conversation_events_replace_text():
    seen = []
    agg = StreamAggregator(
        ChatMessage(role="assistant", text="", id="r1"),
        on_progress=seen.append,
        reducer=apply_conversation_event,
        ignore_malformed=True,
    )
    agg.feed(json.dumps({"conversation_id": "c1", "message": {"id": "m9", "content": {"parts": ["Hi"]}}}))
    agg.feed("2023-03-01 12:00:00.000000")
    agg.feed(json.dumps({"message": {"id": "m9", "content": {"parts": ["Hi there"]}}}))
    agg.feed("[DONE]")

    assert agg.result.text == "Hi there"
    assert agg.result.conversation_id == "c1"
    assert agg.result.id == "m9"
    assert [s.delta for s in seen] == ["Hi", " there"]
