"""
LLM request lifecycle.

Owns the at-most-one in-flight provider request of an AgentCore:

- start: cancel whatever is open, append CORE:LLM_REQUEST_START, then stream
  the response in the background from a snapshot of the state
- translate: every chunk is forwarded live; completed output items become
  CORE:LLM_INPUT_ITEM events; completion appends CORE:LLM_REQUEST_END and
  executes the collected function calls
- cancel: append CORE:LLM_REQUEST_CANCEL and close the chunk channel, without
  waiting for the transport to finish

Events produced by a request are only appended while that request is still
the open one; anything arriving after a cancel is discarded.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Union

from ..config import AgentCoreConfig
from ..domain.entities import AgentCoreState, EventInput, ToolCall
from ..domain.errors import AgentCoreError, ErrorType, StreamError
from ..domain.events import CoreEventType
from ..domain.ports import AgentCoreDeps
from ..ids import IdGenerator
from ..providers.openai import (
    ChunkType,
    build_response_params,
    chunk_error_detail,
    chunk_to_dict,
    classify_provider_error,
    close_stream,
    open_response_stream,
)
from .stream_channel import StreamChannel, TransportFailure

if TYPE_CHECKING:
    from ..core.agent_core import AgentCore


@dataclass
class ActiveRequest:
    """Runtime handle of the open request (never persisted)."""

    request_id: str
    channel: StreamChannel
    producer: Optional[asyncio.Task] = None
    response_id: Optional[str] = None
    function_calls: list[ToolCall] = field(default_factory=list)

    def close(self) -> None:
        self.channel.close()
        if self.producer is not None and not self.producer.done():
            self.producer.cancel()


class LLMRequestManager:
    """Starts, streams and cancels LLM requests for one AgentCore.

    ``start`` and ``cancel`` are called by the engine while it holds its lock;
    the streaming run re-enters the engine through
    ``AgentCore.add_events_for_request``.
    """

    def __init__(
        self,
        core: AgentCore,
        deps: AgentCoreDeps,
        config: AgentCoreConfig,
        ids: IdGenerator,
    ):
        self._core = core
        self._deps = deps
        self._config = config
        self._ids = ids
        self._active: Optional[ActiveRequest] = None
        self.logger: logging.Logger = deps.logger

    @property
    def active_request_id(self) -> Optional[str]:
        return self._active.request_id if self._active else None

    async def start(self, reason: str = "triggered") -> str:
        """Open a new request, superseding the open one if any.

        Returns:
            The new request id
        """
        if self._core.state.llm_request is not None:
            await self.cancel("superseded")

        request_id = self._ids.request_id()
        await self._core._append_locked(
            [EventInput(CoreEventType.LLM_REQUEST_START.value, {"requestId": request_id})]
        )

        active = ActiveRequest(
            request_id=request_id,
            channel=StreamChannel(maxsize=self._config.stream_channel_size),
        )
        self._active = active
        snapshot = self._core.state
        self.logger.info(f"LLM request {request_id} started ({reason})")

        try:
            self._deps.background(lambda: self._run(active, snapshot))
        except Exception as e:
            error = e if isinstance(e, AgentCoreError) else StreamError(str(e), original_error=e)
            self.logger.error(f"Could not schedule LLM request {request_id}: {error}")
            await self._core._append_locked([self._error_end_event(request_id, error)])
        return request_id

    async def cancel(self, reason: str = "canceled") -> Optional[str]:
        """Cancel the open request.

        Returns:
            The cancelled request id, or None when nothing was open
        """
        current = self._core.state.llm_request
        if current is None:
            return None

        await self._core._append_locked(
            [
                EventInput(
                    CoreEventType.LLM_REQUEST_CANCEL.value,
                    {"requestId": current.request_id, "reason": reason},
                )
            ]
        )
        self.logger.info(f"LLM request {current.request_id} cancelled ({reason})")
        return current.request_id

    def reconcile(self, state: AgentCoreState) -> None:
        """Release the runtime handle once its request is no longer open.

        Called after every fold, so a CANCEL or END appended by anyone closes
        the channel of the request it terminates.
        """
        active = self._active
        if active is None:
            return
        if state.llm_request is not None and state.llm_request.request_id == active.request_id:
            return
        active.close()
        self._active = None

    # ========================================
    # Streaming
    # ========================================

    async def _run(self, active: ActiveRequest, snapshot: AgentCoreState) -> None:
        try:
            client = await self._deps.get_openai_client()
            tools = await self._deps.tool_specs_to_implementations(list(snapshot.tool_specs))
            params = build_response_params(snapshot, tools, self._config.default_model)
        except Exception as e:
            await self._end_with_error(active, e)
            return

        if active.channel.closed:
            return

        active.producer = asyncio.ensure_future(self._produce(active, client, params))
        try:
            completed = await self._translate(active)
        finally:
            await self._stop_producer(active)

        if not completed:
            return

        ended = await self._append(
            active,
            [
                EventInput(
                    CoreEventType.LLM_REQUEST_END.value,
                    {"requestId": active.request_id, "outcome": "success"},
                )
            ],
        )
        if not ended:
            return

        self.logger.info(
            f"LLM request {active.request_id} completed with "
            f"{len(active.function_calls)} function calls"
        )
        if active.function_calls:
            await self._core.execute_tool_calls(active.function_calls, tools)

    async def _translate(self, active: ActiveRequest) -> bool:
        """Turn channel chunks into events.

        Returns:
            True once response.completed arrived; False if the request was
            terminated (cancelled, discarded or ended with an error)
        """
        async for chunk in active.channel:
            if isinstance(chunk, TransportFailure):
                await self._end_with_error(active, chunk.error)
                return False

            await self._forward_chunk(chunk)
            data = chunk_to_dict(chunk)
            chunk_type = data.get("type")

            if chunk_type == ChunkType.RESPONSE_CREATED.value:
                active.response_id = (data.get("response") or {}).get("id")
                self.logger.debug(
                    f"LLM request {active.request_id} created response {active.response_id}"
                )

            elif chunk_type == ChunkType.OUTPUT_ITEM_DONE.value:
                item = data.get("item") or {}
                if not await self._append(
                    active, [EventInput(CoreEventType.LLM_INPUT_ITEM.value, item)]
                ):
                    return False
                if item.get("type") == "function_call":
                    active.function_calls.append(ToolCall.from_item(item))

            elif chunk_type == ChunkType.RESPONSE_COMPLETED.value:
                return True

            elif chunk_type in (ChunkType.ERROR.value, ChunkType.RESPONSE_FAILED.value):
                await self._end_with_error(active, StreamError(chunk_error_detail(data)))
                return False

        if not active.channel.closed:
            await self._end_with_error(
                active, StreamError("Stream ended before response.completed")
            )
        # Otherwise cancelled; the CANCEL event already terminated the request
        return False

    async def _stop_producer(self, active: ActiveRequest) -> None:
        """Cancel the transport if it is still running and wait for it to unwind."""
        producer = active.producer
        if producer is None:
            return
        if not producer.done():
            producer.cancel()
        await asyncio.gather(producer, return_exceptions=True)

    async def _produce(self, active: ActiveRequest, client: Any, params: dict[str, Any]) -> None:
        stream = None
        try:
            stream = await open_response_stream(client, params)
            async for chunk in stream:
                if not await active.channel.send(chunk):
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await active.channel.send(TransportFailure(classify_provider_error(e)))
        finally:
            active.channel.finish()
            if stream is not None:
                await close_stream(stream)

    async def _forward_chunk(self, chunk: Any) -> None:
        callback = self._deps.on_llm_stream_chunk
        if callback is None:
            return
        try:
            result = callback(chunk)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"Stream chunk callback failed: {e}", exc_info=e)

    async def _append(self, active: ActiveRequest, inputs: list[EventInput]) -> bool:
        appended = await self._core.add_events_for_request(active.request_id, inputs)
        if not appended:
            self.logger.debug(
                f"Discarded {len(inputs)} events for closed LLM request {active.request_id}"
            )
        return appended

    async def _end_with_error(self, active: ActiveRequest, error: Union[BaseException, AgentCoreError]) -> None:
        if not isinstance(error, AgentCoreError):
            error = classify_provider_error(error)
        self.logger.warning(f"LLM request {active.request_id} failed: {error}")
        await self._append(active, [self._error_end_event(active.request_id, error)])

    @staticmethod
    def _error_end_event(request_id: str, error: AgentCoreError) -> EventInput:
        error_type = error.error_type or ErrorType.FATAL
        return EventInput(
            CoreEventType.LLM_REQUEST_END.value,
            {
                "requestId": request_id,
                "outcome": "error",
                "detail": str(error),
                "errorType": error_type.value,
            },
        )
