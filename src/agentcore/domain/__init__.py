"""Domain layer: entities, event vocabulary, tool specs, errors and ports."""

from .entities import (
    AgentCoreState,
    Event,
    EventInput,
    LLMRequestState,
    LLMRequestStatus,
    RuntimeTool,
    ToolCall,
    ToolOutcome,
)
from .errors import (
    AgentCoreError,
    BackgroundCapacityError,
    ConcurrencyViolation,
    DispatchError,
    ErrorType,
    StreamError,
    ToolExecutionError,
    ValidationError,
)
from .events import CORE_EVENT_SCHEMAS, CoreEventType, EventData, parse_event_data
from .ports import AgentCoreDeps, IResponsesClient, default_rule_match_data
from .tool_specs import (
    AgentDurableObjectToolSpec,
    LocalFunctionToolSpec,
    OpenAIBuiltinToolSpec,
    SerializedCallableToolSpec,
    ToolSpec,
    parse_tool_specs,
    tool_spec_name,
)

__all__ = [
    # Entities
    "AgentCoreState",
    "Event",
    "EventInput",
    "LLMRequestState",
    "LLMRequestStatus",
    "RuntimeTool",
    "ToolCall",
    "ToolOutcome",
    # Errors
    "AgentCoreError",
    "BackgroundCapacityError",
    "ConcurrencyViolation",
    "DispatchError",
    "ErrorType",
    "StreamError",
    "ToolExecutionError",
    "ValidationError",
    # Events
    "CORE_EVENT_SCHEMAS",
    "CoreEventType",
    "EventData",
    "parse_event_data",
    # Ports
    "AgentCoreDeps",
    "IResponsesClient",
    "default_rule_match_data",
    # Tool specs
    "AgentDurableObjectToolSpec",
    "LocalFunctionToolSpec",
    "OpenAIBuiltinToolSpec",
    "SerializedCallableToolSpec",
    "ToolSpec",
    "parse_tool_specs",
    "tool_spec_name",
]
