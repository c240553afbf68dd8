"""
Fold engine.

Derives AgentCoreState from the event log. Every function here is pure and
synchronous: the same event prefix always yields an equal state, and nothing
is read from the clock or the outside world while folding.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional

from pydantic import BaseModel

from ..domain.entities import (
    AgentCoreState,
    Event,
    LLMRequestState,
    LLMRequestStatus,
)
from ..domain.errors import ConcurrencyViolation, ValidationError
from ..domain.events import (
    CORE_EVENT_SCHEMAS,
    CoreEventType,
    LocalFunctionToolCallData,
    parse_event_data,
)
from ..domain.tool_specs import tool_spec_name
from ..utils import ensure_string, to_json
from .slices import SliceRegistry


def initial_state(registry: SliceRegistry) -> AgentCoreState:
    """State before any event is folded."""
    return AgentCoreState(slices=registry.initial_substates())


def _finish_request(
    state: AgentCoreState,
    request_id: str,
    status: LLMRequestStatus,
    detail: Optional[str],
) -> AgentCoreState:
    current = state.llm_request
    if current is None or current.request_id != request_id:
        # Stale terminal event for a request that is no longer open
        return state
    input_items = state.input_items
    if status != LLMRequestStatus.COMPLETED:
        input_items = input_items + _unanswered_call_outputs(state, current, status)
    return replace(
        state,
        input_items=input_items,
        llm_request=None,
        last_llm_request=replace(current, status=status, detail=detail),
    )


def _unanswered_call_outputs(
    state: AgentCoreState, request: LLMRequestState, status: LLMRequestStatus
) -> tuple[dict, ...]:
    """Outputs closing the function calls of a request that did not complete.

    Such calls are never executed, so each one is answered with a failure.
    """
    pending = {call.call_id for call in state.pending_tool_calls()}
    output = to_json({"success": False, "error": f"Tool call not executed: request {status.value}"})
    return tuple(
        {"type": "function_call_output", "call_id": item.get("call_id"), "output": output}
        for item in state.input_items[request.first_item_index:]
        if item.get("type") == "function_call" and item.get("call_id") in pending
    )


def _tool_output_item(payload: LocalFunctionToolCallData) -> dict:
    result = payload.result
    if result.success:
        output = ensure_string(result.output)
    else:
        output = to_json({"success": False, "error": result.error or "Tool execution failed"})
    return {
        "type": "function_call_output",
        "call_id": payload.call.call_id,
        "output": output,
    }


def reduce_core_event(state: AgentCoreState, event: Event, payload: BaseModel) -> AgentCoreState:
    """Apply a CORE:* event to state.

    Raises:
        ConcurrencyViolation: If a request starts while another is open
    """
    event_type = event.type

    if event_type == CoreEventType.SET_SYSTEM_PROMPT:
        return replace(state, system_prompt=payload.prompt)

    if event_type == CoreEventType.SET_MODEL_OPTS:
        return replace(state, model_opts=dict(event.data))

    if event_type == CoreEventType.LLM_INPUT_ITEM:
        return replace(state, input_items=state.input_items + (dict(event.data),))

    if event_type == CoreEventType.LLM_REQUEST_START:
        if state.llm_request is not None:
            raise ConcurrencyViolation(
                f"LLM request {payload.request_id} started while "
                f"{state.llm_request.request_id} is still open"
            )
        return replace(
            state,
            llm_request=LLMRequestState(
                request_id=payload.request_id,
                status=LLMRequestStatus.STARTED,
                started_at_index=event.event_index,
                first_item_index=len(state.input_items),
            ),
            trigger_pending=False,
        )

    if event_type == CoreEventType.LLM_REQUEST_END:
        status = (
            LLMRequestStatus.COMPLETED if payload.outcome == "success" else LLMRequestStatus.ERRORED
        )
        return _finish_request(state, payload.request_id, status, payload.detail)

    if event_type == CoreEventType.LLM_REQUEST_CANCEL:
        return _finish_request(
            state, payload.request_id, LLMRequestStatus.CANCELED, payload.reason
        )

    if event_type == CoreEventType.ADD_TOOL_SPECS:
        added_names = {tool_spec_name(spec) for spec in payload.specs} - {None}
        kept = tuple(
            spec
            for spec in state.tool_specs
            if tool_spec_name(spec) is None or tool_spec_name(spec) not in added_names
        )
        return replace(state, tool_specs=kept + tuple(payload.specs))

    if event_type == CoreEventType.REMOVE_TOOL_SPECS:
        removed_names = {tool_spec_name(spec) for spec in payload.specs} - {None}
        kept = tuple(
            spec
            for spec in state.tool_specs
            if spec not in payload.specs and tool_spec_name(spec) not in removed_names
        )
        return replace(state, tool_specs=kept)

    if event_type == CoreEventType.PAUSE_LLM_REQUESTS:
        return replace(state, paused=True)

    if event_type == CoreEventType.RESUME_LLM_REQUESTS:
        return replace(state, paused=False)

    if event_type == CoreEventType.LOCAL_FUNCTION_TOOL_CALL:
        return replace(state, input_items=state.input_items + (_tool_output_item(payload),))

    return state


def fold_event(state: AgentCoreState, event: Event, registry: SliceRegistry) -> AgentCoreState:
    """Apply one event to state: core effects first, then slice reducers.

    Raises:
        ValidationError: If no schema claims the event type or its data is malformed
        ConcurrencyViolation: If the event opens a second concurrent request
    """
    payload = parse_event_data(registry.event_schemas, event.type, event.data)

    if event.type in CORE_EVENT_SCHEMAS:
        state = reduce_core_event(state, event, payload)

    if event.trigger_llm_request:
        state = replace(state, trigger_pending=True)

    return replace(
        state,
        slices=registry.reduce(state, event, payload),
        event_count=state.event_count + 1,
    )


def check_event_order(events: Iterable[Event], after_index: int = -1) -> None:
    """Verify eventIndex values are strictly increasing.

    Raises:
        ValidationError: On the first out-of-order index
    """
    previous = after_index
    for event in events:
        if event.event_index <= previous:
            raise ValidationError(
                f"Event index {event.event_index} ({event.type}) is not greater "
                f"than previous index {previous}"
            )
        previous = event.event_index


def fold_events(
    events: Iterable[Event],
    registry: SliceRegistry,
    state: Optional[AgentCoreState] = None,
) -> AgentCoreState:
    """Fold an ordered sequence of events, starting from ``state``.

    Raises:
        ValidationError: On out-of-order indices or unknown/malformed events
    """
    events = list(events)
    check_event_order(events)
    state = state if state is not None else initial_state(registry)
    for event in events:
        state = fold_event(state, event, registry)
    return state
