"""
Durable-object tool definitions.

A durable-object tool spec only names a method on the hosting actor. The
definition registered for that method supplies what the model sees
(description and JSON schema) and validates arguments before the call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..domain.errors import ToolExecutionError


@dataclass(frozen=True)
class DurableObjectToolDefinition:
    """Schema and description of a method exposed as a tool.

    Attributes:
        name: Method name on the durable object
        description: Description shown to the model
        input_model: Pydantic model validating the tool arguments
        status_indicator_text: Default ``${...}`` template for busy indicators
    """

    name: str
    description: str
    input_model: type[BaseModel]
    status_indicator_text: Optional[str] = None

    def parameters_schema(self) -> dict[str, Any]:
        """JSON schema of the arguments, as sent to the provider."""
        schema = self.input_model.model_json_schema()
        schema.setdefault("type", "object")
        schema.setdefault("properties", {})
        return schema

    def validate_arguments(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        """Validate arguments and return them as keyword arguments.

        Raises:
            ToolExecutionError: If the arguments do not match the input model
        """
        try:
            validated = self.input_model.model_validate(dict(arguments))
        except PydanticValidationError as e:
            raise ToolExecutionError(
                f"Invalid arguments for {self.name}: {e}", self.name, original_error=e
            ) from e
        return validated.model_dump(exclude_unset=True)


def define_durable_object_tools(
    tools: Mapping[str, Mapping[str, Any]],
) -> dict[str, DurableObjectToolDefinition]:
    """Build definitions keyed by method name.

    Usage:
        TOOLS = define_durable_object_tools({
            "addReaction": {
                "description": "React to a message",
                "input_model": AddReactionInput,
                "status_indicator_text": "adding reaction... 👍",
            },
        })
    """
    return {
        name: DurableObjectToolDefinition(
            name=name,
            description=definition.get("description", ""),
            input_model=definition["input_model"],
            status_indicator_text=definition.get("status_indicator_text"),
        )
        for name, definition in tools.items()
    }
