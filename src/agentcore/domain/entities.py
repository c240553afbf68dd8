"""
Domain entities for the agent core.

These are pure domain objects with no infrastructure dependencies.
They define the event log records, the folded state and the tool
runtime types used throughout the package.
"""

from __future__ import annotations

import copy
import dataclasses
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from .errors import ValidationError
from .tool_specs import ToolSpec

# ============================================
# Events
# ============================================


@dataclass(frozen=True)
class EventInput:
    """An event as handed to ``AgentCore.add_events``.

    Attributes:
        type: Namespaced event type (``CORE:*`` or ``<SLICE>:*``)
        data: Event payload, validated against the type's schema
        trigger_llm_request: Whether folding this event should start a turn
    """

    type: str
    data: Mapping[str, Any] = field(default_factory=dict)
    trigger_llm_request: Optional[bool] = None

    @classmethod
    def coerce(cls, value: Union[EventInput, Mapping[str, Any]]) -> EventInput:
        """Accept either an EventInput or its wire-form dict."""
        if isinstance(value, EventInput):
            return value
        if not isinstance(value, Mapping) or "type" not in value:
            raise ValidationError(f"Malformed event input: {value!r}")
        return cls(
            type=str(value["type"]),
            data=value.get("data") or {},
            trigger_llm_request=value.get("triggerLLMRequest"),
        )


@dataclass(frozen=True)
class Event:
    """An immutable, strictly ordered record in the event log.

    Attributes:
        type: Namespaced event type
        data: Event payload
        event_index: Strictly increasing index assigned at append time
        timestamp: ISO-8601 time captured at append time
        trigger_llm_request: Whether this event requested a new LLM turn
    """

    type: str
    data: Mapping[str, Any]
    event_index: int
    timestamp: str
    trigger_llm_request: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire format used for persistence."""
        result: dict[str, Any] = {
            "type": self.type,
            "data": copy.deepcopy(dict(self.data)),
            "eventIndex": self.event_index,
            "timestamp": self.timestamp,
        }
        if self.trigger_llm_request is not None:
            result["triggerLLMRequest"] = self.trigger_llm_request
        return result

    @classmethod
    def from_dict(cls, value: Union[Event, Mapping[str, Any]]) -> Event:
        """Build an Event from its wire format.

        Raises:
            ValidationError: If required keys are missing
        """
        if isinstance(value, Event):
            return value
        try:
            return cls(
                type=str(value["type"]),
                data=value.get("data") or {},
                event_index=int(value["eventIndex"]),
                timestamp=str(value["timestamp"]),
                trigger_llm_request=value.get("triggerLLMRequest"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed event: {value!r}", original_error=e) from e


# ============================================
# LLM Request State
# ============================================


class LLMRequestStatus(str, Enum):
    """Lifecycle of a single LLM request."""

    STARTED = "started"
    COMPLETED = "completed"
    CANCELED = "canceled"
    ERRORED = "errored"


@dataclass(frozen=True)
class LLMRequestState:
    """An LLM request as seen by the fold.

    Attributes:
        request_id: Identifier carried by START/END/CANCEL events
        status: Current lifecycle status
        started_at_index: eventIndex of the START event
        first_item_index: Number of conversation items when the request started;
            items from this position on were appended while it was open
        detail: Error detail or cancel reason for terminal requests
    """

    request_id: str
    status: LLMRequestStatus
    started_at_index: int
    first_item_index: int = 0
    detail: Optional[str] = None


# ============================================
# Agent Core State
# ============================================


@dataclass(frozen=True)
class AgentCoreState:
    """The pure fold of every event in the log.

    Attributes:
        system_prompt: Instructions sent with every request
        model_opts: Model name and provider options
        input_items: Ordered conversation items in provider input format
        tool_specs: Tools the model may call
        llm_request: The open request, or None when idle
        last_llm_request: The most recently finished request
        trigger_pending: A request-triggering event has not been served yet
        paused: LLM requests are paused
        slices: Slice substates keyed by slice name
        event_count: Number of events folded so far
    """

    system_prompt: str = ""
    model_opts: Mapping[str, Any] = field(default_factory=dict)
    input_items: tuple[Mapping[str, Any], ...] = ()
    tool_specs: tuple[ToolSpec, ...] = ()
    llm_request: Optional[LLMRequestState] = None
    last_llm_request: Optional[LLMRequestState] = None
    trigger_pending: bool = False
    paused: bool = False
    slices: Mapping[str, Any] = field(default_factory=dict)
    event_count: int = 0

    @property
    def is_idle(self) -> bool:
        return self.llm_request is None

    def slice_state(self, name: str) -> Any:
        return self.slices.get(name)

    def request_items(self) -> tuple[Mapping[str, Any], ...]:
        """Conversation items appended since the open request started."""
        if self.llm_request is None:
            return ()
        return self.input_items[self.llm_request.first_item_index:]

    def pending_tool_calls(self) -> list[ToolCall]:
        """Function calls in the conversation that have no output yet."""
        answered = {
            item.get("call_id")
            for item in self.input_items
            if item.get("type") == "function_call_output"
        }
        return [
            ToolCall.from_item(item)
            for item in self.input_items
            if item.get("type") == "function_call" and item.get("call_id") not in answered
        ]

    def to_dict(self) -> dict[str, Any]:
        """Canonical JSON-compatible form, used to compare replays."""

        def _plain(value: Any) -> Any:
            if dataclasses.is_dataclass(value) and not isinstance(value, type):
                return {k: _plain(v) for k, v in dataclasses.asdict(value).items()}
            if hasattr(value, "model_dump"):
                return value.model_dump(by_alias=True, mode="json")
            if isinstance(value, Enum):
                return value.value
            if isinstance(value, Mapping):
                return {str(k): _plain(v) for k, v in value.items()}
            if isinstance(value, (list, tuple)):
                return [_plain(v) for v in value]
            return value

        return {
            "systemPrompt": self.system_prompt,
            "modelOpts": _plain(self.model_opts),
            "inputItems": _plain(self.input_items),
            "toolSpecs": _plain(self.tool_specs),
            "llmRequest": _plain(self.llm_request),
            "lastLLMRequest": _plain(self.last_llm_request),
            "triggerPending": self.trigger_pending,
            "paused": self.paused,
            "slices": _plain(self.slices),
            "eventCount": self.event_count,
        }

    def canonical_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), default=str)


# ============================================
# Tool System
# ============================================


@dataclass(frozen=True)
class ToolCall:
    """A function call requested by the model.

    Attributes:
        call_id: Provider call identifier (for correlating the output)
        name: Tool name being called
        arguments: Raw JSON argument string as produced by the model
    """

    call_id: str
    name: str
    arguments: str = "{}"

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> ToolCall:
        arguments = item.get("arguments")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments if arguments is not None else {})
        return cls(
            call_id=str(item.get("call_id") or item.get("id") or ""),
            name=str(item.get("name", "")),
            arguments=arguments,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"callId": self.call_id, "name": self.name, "arguments": self.arguments}


@dataclass
class ToolOutcome:
    """Structured result a tool implementation may return.

    Attributes:
        output: Value reported back to the model
        trigger_llm_request: Whether the result should start another turn
        events: Extra events to append alongside the result
    """

    output: Any = None
    trigger_llm_request: bool = True
    events: list[Any] = field(default_factory=list)


ToolExecute = Callable[[ToolCall, dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class RuntimeTool:
    """Resolved, invocable form of a ToolSpec.

    Attributes:
        name: Tool name exposed to the model
        description: Human-readable description
        parameters: JSON Schema for arguments
        strict: Whether the provider should enforce the schema strictly
        execute: Async callable receiving the call and its parsed arguments
        status_indicator_text: Optional ``${...}`` template for busy indicators
    """

    name: str
    description: str
    parameters: Mapping[str, Any]
    execute: ToolExecute
    strict: bool = False
    status_indicator_text: Optional[str] = None
    type: str = "function"

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to the Responses API function tool format."""
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": dict(self.parameters),
            "strict": self.strict,
        }
