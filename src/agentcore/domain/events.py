"""
Core event vocabulary.

Each core event type has a pydantic model describing its ``data`` payload.
Payload models allow unknown keys: the wire contract only ever grows, and an
older log must still fold after new fields are added.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .tool_specs import ToolSpec


class CoreEventType(str, Enum):
    """Built-in event types."""

    SET_SYSTEM_PROMPT = "CORE:SET_SYSTEM_PROMPT"
    SET_MODEL_OPTS = "CORE:SET_MODEL_OPTS"
    LLM_INPUT_ITEM = "CORE:LLM_INPUT_ITEM"
    LLM_REQUEST_START = "CORE:LLM_REQUEST_START"
    LLM_REQUEST_END = "CORE:LLM_REQUEST_END"
    LLM_REQUEST_CANCEL = "CORE:LLM_REQUEST_CANCEL"
    ADD_TOOL_SPECS = "CORE:ADD_TOOL_SPECS"
    REMOVE_TOOL_SPECS = "CORE:REMOVE_TOOL_SPECS"
    PAUSE_LLM_REQUESTS = "CORE:PAUSE_LLM_REQUESTS"
    RESUME_LLM_REQUESTS = "CORE:RESUME_LLM_REQUESTS"
    LOCAL_FUNCTION_TOOL_CALL = "CORE:LOCAL_FUNCTION_TOOL_CALL"


class EventData(BaseModel):
    """Base for event payload schemas."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class SetSystemPromptData(EventData):
    prompt: str


class SetModelOptsData(EventData):
    model: str


class LLMInputItemData(EventData):
    """A conversation item in the provider's input format (message, function_call...)."""

    type: str


class LLMRequestStartData(EventData):
    request_id: str = Field(alias="requestId")


class LLMRequestEndData(EventData):
    request_id: str = Field(alias="requestId")
    outcome: Literal["success", "error"]
    detail: Optional[str] = None
    error_type: Optional[str] = Field(default=None, alias="errorType")


class LLMRequestCancelData(EventData):
    request_id: str = Field(alias="requestId")
    reason: Optional[str] = None


class ToolSpecsData(EventData):
    model_config = ConfigDict(populate_by_name=True, extra="allow", arbitrary_types_allowed=True)

    specs: list[ToolSpec]


class EmptyData(EventData):
    pass


class ToolCallData(EventData):
    call_id: str = Field(alias="callId")
    name: str
    arguments: str = "{}"


class ToolCallResultData(EventData):
    success: bool
    output: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = Field(default=None, alias="errorType")


class LocalFunctionToolCallData(EventData):
    call: ToolCallData
    result: ToolCallResultData


CORE_EVENT_SCHEMAS: dict[str, type[EventData]] = {
    CoreEventType.SET_SYSTEM_PROMPT.value: SetSystemPromptData,
    CoreEventType.SET_MODEL_OPTS.value: SetModelOptsData,
    CoreEventType.LLM_INPUT_ITEM.value: LLMInputItemData,
    CoreEventType.LLM_REQUEST_START.value: LLMRequestStartData,
    CoreEventType.LLM_REQUEST_END.value: LLMRequestEndData,
    CoreEventType.LLM_REQUEST_CANCEL.value: LLMRequestCancelData,
    CoreEventType.ADD_TOOL_SPECS.value: ToolSpecsData,
    CoreEventType.REMOVE_TOOL_SPECS.value: ToolSpecsData,
    CoreEventType.PAUSE_LLM_REQUESTS.value: EmptyData,
    CoreEventType.RESUME_LLM_REQUESTS.value: EmptyData,
    CoreEventType.LOCAL_FUNCTION_TOOL_CALL.value: LocalFunctionToolCallData,
}


def parse_event_data(
    schemas: Mapping[str, type[BaseModel]],
    event_type: str,
    data: Any,
) -> BaseModel:
    """Validate an event payload against the schema registered for its type.

    Args:
        schemas: Merged event schema table (core and slices)
        event_type: Namespaced event type
        data: Raw payload

    Returns:
        The parsed payload model

    Raises:
        ValidationError: If no schema claims the type or the payload is malformed
    """
    schema = schemas.get(event_type)
    if schema is None:
        raise ValidationError(f"Unknown event type '{event_type}'")
    try:
        return schema.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid data for event '{event_type}': {e}", original_error=e
        ) from e
