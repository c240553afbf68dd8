"""
Tests for the LLM request manager and its stream channel.

Tests cover:
    - StreamChannel: ordering, finish, close semantics, backpressure
    - Chunk forwarding: sync and async callbacks, callback failures
    - Guarded appends for requests that are no longer open
    - Setup failures (client, tool resolution) ending the request
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from agentcore.domain.errors import DispatchError
from agentcore.domain.events import CoreEventType
from agentcore.orchestrator.stream_channel import StreamChannel

from core_harness import CoreTestHarness, output_item_done, message_item, text_response

END = CoreEventType.LLM_REQUEST_END.value
ITEM = CoreEventType.LLM_INPUT_ITEM.value


async def collect(channel):
    return [item async for item in channel]


class TestStreamChannel:
    """Tests for the bounded chunk channel."""

    @pytest.mark.asyncio
    async def test_delivers_in_order_until_finished(self):
        channel = StreamChannel(maxsize=4)
        for i in range(3):
            assert await channel.send(i) is True
        channel.finish()
        assert await collect(channel) == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_finish_with_full_queue_still_drains(self):
        channel = StreamChannel(maxsize=2)
        await channel.send("a")
        await channel.send("b")
        channel.finish()
        assert await collect(channel) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_close_stops_consumer_and_drops_sends(self):
        channel = StreamChannel(maxsize=4)
        await channel.send("a")
        channel.close()
        assert channel.closed is True
        assert await collect(channel) == []
        assert await channel.send("late") is False

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_consumer(self):
        channel = StreamChannel(maxsize=4)
        consumer = asyncio.ensure_future(collect(channel))
        await asyncio.sleep(0)
        channel.close()
        assert await asyncio.wait_for(consumer, timeout=1) == []

    @pytest.mark.asyncio
    async def test_backpressure_blocks_producer_until_consumed(self):
        channel = StreamChannel(maxsize=1)
        await channel.send(1)
        blocked = asyncio.ensure_future(channel.send(2))
        await asyncio.sleep(0)
        assert not blocked.done()

        iterator = channel.__aiter__()
        assert await iterator.__anext__() == 1
        assert await asyncio.wait_for(blocked, timeout=1) is True

    @pytest.mark.asyncio
    async def test_close_releases_blocked_producer(self):
        channel = StreamChannel(maxsize=1)
        await channel.send(1)
        blocked = asyncio.ensure_future(channel.send(2))
        await asyncio.sleep(0)
        channel.close()
        assert await asyncio.wait_for(blocked, timeout=1) is False


class TestChunkForwarding:
    """Tests for the live stream callback."""

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(self):
        harness = CoreTestHarness()
        received = []

        async def on_chunk(chunk):
            await asyncio.sleep(0)
            received.append(chunk["type"])

        harness.deps.on_llm_stream_chunk = on_chunk
        harness.responses.script(text_response("hi"))
        await harness.initialize_agent()
        await harness.send_user_message("hello")
        await harness.settle()

        assert received == [
            "response.created",
            "response.output_text.delta",
            "response.output_item.done",
            "response.completed",
        ]

    @pytest.mark.asyncio
    async def test_callback_failure_is_logged_not_raised(self, caplog):
        harness = CoreTestHarness()
        harness.deps.on_llm_stream_chunk = lambda chunk: 1 / 0
        harness.responses.script(text_response("hi"))
        await harness.initialize_agent()

        with caplog.at_level(logging.ERROR, logger="agentcore"):
            await harness.send_user_message("hello")
            await harness.settle()

        assert harness.core.events[-1].data["outcome"] == "success"
        assert "Stream chunk callback failed" in caplog.text


class TestGuardedAppends:
    """Events for requests that are no longer open are discarded."""

    @pytest.mark.asyncio
    async def test_append_for_closed_request_is_discarded(self, harness):
        harness.responses.script(text_response("hi"))
        await harness.initialize_agent()
        await harness.send_user_message("hello")
        await harness.settle()
        count = len(harness.core.events)

        appended = await harness.core.add_events_for_request(
            "req_1", [{"type": ITEM, "data": {"type": "message", "role": "assistant"}}]
        )
        assert appended is False
        assert len(harness.core.events) == count

    @pytest.mark.asyncio
    async def test_items_before_cancel_are_kept(self, harness):
        await harness.initialize_agent()
        await harness.send_user_message("hello")
        stream = await harness.wait_for_stream()

        stream.push(output_item_done(message_item("partial")))
        for _ in range(50):
            if harness.events_of(ITEM)[-1].data.get("role") == "assistant":
                break
            await asyncio.sleep(0)

        await harness.core.cancel_llm_request()
        stream.push(output_item_done(message_item("after cancel")))
        await harness.settle()

        texts = str([e.data for e in harness.events_of(ITEM)])
        assert "partial" in texts
        assert "after cancel" not in texts
        assert harness.events_of(END) == []


class TestRequestSetupFailures:
    """Failures before the stream opens end the request with an error."""

    @pytest.mark.asyncio
    async def test_client_failure_ends_request(self):
        harness = CoreTestHarness()
        harness.deps.get_openai_client = AsyncMock(side_effect=RuntimeError("no api key"))
        await harness.initialize_agent()
        await harness.send_user_message("hello")
        await harness.settle()

        end = harness.core.events[-1]
        assert end.type == END
        assert end.data["outcome"] == "error"
        assert "no api key" in end.data["detail"]
        assert not harness.core.llm_request_in_progress()

    @pytest.mark.asyncio
    async def test_unresolvable_tool_spec_ends_request(self, harness):
        await harness.initialize_agent()
        await harness.core.add_events([
            {
                "type": "CORE:ADD_TOOL_SPECS",
                "data": {"specs": [{"type": "serialized_callable_tool", "callableRef": "ghost"}]},
            }
        ])
        await harness.send_user_message("hello")
        await harness.settle()

        end = harness.core.events[-1]
        assert end.data["outcome"] == "error"
        assert end.data["errorType"] == DispatchError.default_error_type.value
        assert "ghost" in end.data["detail"]
        assert harness.responses.calls == []
