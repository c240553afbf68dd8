"""
Test harness for agent core tests.

CoreTestHarness wires an AgentCore to in-memory collaborators:
    - a mock OpenAI client whose streams are scripted or driven by the test
    - a BackgroundTaskTracker so tests can drain all background work
    - sequential ids and a frozen clock so runs are reproducible
"""

import asyncio
import json
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, MagicMock

from agentcore.background_worker import BackgroundTaskTracker
from agentcore.config import AgentCoreConfig
from agentcore.core.agent_core import AgentCore
from agentcore.domain.entities import EventInput
from agentcore.domain.events import CoreEventType
from agentcore.domain.ports import AgentCoreDeps
from agentcore.domain.tool_specs import LocalFunctionToolSpec
from agentcore.ids import SequentialIdGenerator
from agentcore.tools.dispatcher import ToolDispatcher

FROZEN_NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

_STREAM_DONE = object()


# ============================================
# Chunk factories
# ============================================


def response_created(response_id: str = "resp_1") -> dict:
    return {"type": "response.created", "response": {"id": response_id, "status": "in_progress"}}


def text_delta(text: str, item_id: str = "msg_1") -> dict:
    return {"type": "response.output_text.delta", "item_id": item_id, "delta": text}


def message_item(text: str, item_id: str = "msg_1") -> dict:
    return {
        "type": "message",
        "id": item_id,
        "role": "assistant",
        "status": "completed",
        "content": [{"type": "output_text", "text": text, "annotations": []}],
    }


def function_call_item(name: str, arguments: Any, call_id: str = "call_1") -> dict:
    return {
        "type": "function_call",
        "id": f"fc_{call_id}",
        "call_id": call_id,
        "name": name,
        "arguments": arguments if isinstance(arguments, str) else json.dumps(arguments),
    }


def output_item_done(item: dict) -> dict:
    return {"type": "response.output_item.done", "item": item}


def response_completed(response_id: str = "resp_1") -> dict:
    return {"type": "response.completed", "response": {"id": response_id, "status": "completed"}}


def text_response(text: str, response_id: str = "resp_1") -> list[dict]:
    """Chunks of a response consisting of one assistant message."""
    return [
        response_created(response_id),
        text_delta(text),
        output_item_done(message_item(text)),
        response_completed(response_id),
    ]


def function_call_response(
    name: str, arguments: Any, call_id: str = "call_1", response_id: str = "resp_1"
) -> list[dict]:
    """Chunks of a response consisting of one function call."""
    return [
        response_created(response_id),
        output_item_done(function_call_item(name, arguments, call_id)),
        response_completed(response_id),
    ]


# ============================================
# Mock OpenAI client
# ============================================


class MockResponseStream:
    """A response stream the test feeds chunk by chunk."""

    def __init__(self, chunks: Optional[list] = None, finished: bool = False):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False
        for chunk in chunks or []:
            self.push(chunk)
        if finished:
            self.finish()

    def push(self, *chunks: Any) -> None:
        for chunk in chunks:
            self._queue.put_nowait(chunk)

    def finish(self) -> None:
        self._queue.put_nowait(_STREAM_DONE)

    def fail(self, error: BaseException) -> None:
        self._queue.put_nowait(error)

    async def close(self) -> None:
        self.closed = True

    async def __aiter__(self):
        while True:
            item = await self._queue.get()
            if item is _STREAM_DONE:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class MockResponsesAPI:
    """Stands in for ``client.responses``.

    Streams queued with ``script`` are served first, in order; otherwise
    ``create`` returns an open stream the test drives by hand.
    """

    def __init__(self):
        self.calls: list[dict] = []
        self.streams: list[MockResponseStream] = []
        self._scripted: deque[MockResponseStream] = deque()

    def script(self, chunks: list) -> MockResponseStream:
        stream = MockResponseStream(chunks, finished=True)
        self._scripted.append(stream)
        return stream

    async def create(self, **params: Any) -> MockResponseStream:
        self.calls.append(params)
        stream = self._scripted.popleft() if self._scripted else MockResponseStream()
        self.streams.append(stream)
        return stream


# ============================================
# Harness
# ============================================


class CoreTestHarness:
    """An AgentCore wired to mocks, plus helpers to drive a conversation."""

    def __init__(
        self,
        slices: tuple = (),
        slice_deps: Optional[dict] = None,
        config: Optional[AgentCoreConfig] = None,
        dispatcher: Optional[ToolDispatcher] = None,
    ):
        self.config = config or AgentCoreConfig(
            default_model="gpt-4.1-mini",
            max_rule_rounds=25,
            stream_channel_size=8,
        )
        self.tracker = BackgroundTaskTracker.from_config(self.config)
        self.responses = MockResponsesAPI()
        self.client = MagicMock()
        self.client.responses = self.responses
        self.chunks: list = []
        self.stored: list[list] = []
        self.ids = SequentialIdGenerator()
        self.dispatcher = dispatcher or ToolDispatcher()
        self.store_events = AsyncMock(side_effect=self._store)
        self.deps = AgentCoreDeps(
            store_events=self.store_events,
            background=self.tracker,
            get_openai_client=AsyncMock(return_value=self.client),
            tool_specs_to_implementations=self.dispatcher.resolve,
            on_llm_stream_chunk=self.chunks.append,
            slice_deps=dict(slice_deps or {}),
        )
        self.core = AgentCore(
            self.deps,
            slices=slices,
            config=self.config,
            id_generator=self.ids,
            clock=lambda: FROZEN_NOW,
            dispatcher=self.dispatcher,
        )

    async def _store(self, events: list) -> None:
        self.stored.append(list(events))

    @property
    def event_types(self) -> list[str]:
        return [event.type for event in self.core.events]

    def events_of(self, event_type: str) -> list:
        return [event for event in self.core.events if event.type == event_type]

    async def initialize_agent(
        self, prompt: str = "You are a helpful assistant.", model: str = "gpt-4.1-mini"
    ):
        return await self.core.add_events([
            EventInput(CoreEventType.SET_SYSTEM_PROMPT.value, {"prompt": prompt}),
            EventInput(CoreEventType.SET_MODEL_OPTS.value, {"model": model}),
        ])

    async def send_user_message(self, text: str, trigger: bool = True):
        return await self.core.add_events([user_message_event(text, trigger)])

    async def add_tool(
        self,
        name: str,
        execute: Callable,
        description: str = "",
        status_indicator_text: Optional[str] = None,
    ):
        spec = LocalFunctionToolSpec(
            name=name,
            description=description or f"The {name} tool",
            execute=execute,
            status_indicator_text=status_indicator_text,
        )
        return await self.core.add_events([
            EventInput(CoreEventType.ADD_TOOL_SPECS.value, {"specs": [spec]})
        ])

    async def wait_for_stream(self, count: int = 1, max_iterations: int = 200) -> MockResponseStream:
        """Yield to the loop until ``count`` provider streams were opened."""
        for _ in range(max_iterations):
            if len(self.responses.streams) >= count:
                return self.responses.streams[count - 1]
            await asyncio.sleep(0)
        raise AssertionError(f"Expected {count} streams, got {len(self.responses.streams)}")

    async def settle(self, timeout: float = 5.0) -> None:
        """Wait for every background task (streams, tools, side effects)."""
        assert await self.tracker.drain(timeout=timeout), "background work did not settle"


def user_message_event(text: str, trigger: bool = True) -> EventInput:
    return EventInput(
        CoreEventType.LLM_INPUT_ITEM.value,
        {"type": "message", "role": "user", "content": [{"type": "input_text", "text": text}]},
        trigger_llm_request=trigger,
    )
