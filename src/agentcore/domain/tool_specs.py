"""
Tool specification wire contract.

A ToolSpec declares a tool the model may call. It is a discriminated union on
the ``type`` field; fields are only ever added so that older persisted logs
keep validating.
"""

from __future__ import annotations

from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _ToolSpecBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)


class OpenAIBuiltinToolSpec(_ToolSpecBase):
    """A provider-native tool (web search, code interpreter...) passed through."""

    type: Literal["openai_builtin"] = "openai_builtin"
    openai_tool: dict[str, Any] = Field(alias="openAITool")


class AgentDurableObjectToolSpec(_ToolSpecBase):
    """Invokes a named method on the hosting durable actor."""

    type: Literal["agent_durable_object_tool"] = "agent_durable_object_tool"
    method_name: str = Field(alias="methodName")
    override_name: Optional[str] = Field(default=None, alias="overrideName")
    override_description: Optional[str] = Field(default=None, alias="overrideDescription")
    status_indicator_text: Optional[str] = Field(default=None, alias="statusIndicatorText")
    pass_through_args: Optional[dict[str, Any]] = Field(default=None, alias="passThroughArgs")

    @property
    def tool_name(self) -> str:
        return self.override_name or self.method_name


class SerializedCallableToolSpec(_ToolSpecBase):
    """Invokes a previously registered callback by reference."""

    type: Literal["serialized_callable_tool"] = "serialized_callable_tool"
    callable_ref: str = Field(alias="callableRef")
    override_name: Optional[str] = Field(default=None, alias="overrideName")
    override_description: Optional[str] = Field(default=None, alias="overrideDescription")
    override_input_schema: Optional[dict[str, Any]] = Field(
        default=None, alias="overrideInputJSONSchema"
    )
    status_indicator_text: Optional[str] = Field(default=None, alias="statusIndicatorText")

    @property
    def tool_name(self) -> str:
        return self.override_name or self.callable_ref


class LocalFunctionToolSpec(_ToolSpecBase):
    """A directly invocable function. Used for tests and static tools."""

    model_config = ConfigDict(
        populate_by_name=True, extra="allow", frozen=True, arbitrary_types_allowed=True
    )

    type: Literal["local_function"] = "local_function"
    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    strict: bool = False
    execute: Callable[..., Any] = Field(exclude=True)
    status_indicator_text: Optional[str] = Field(default=None, alias="statusIndicatorText")

    @property
    def tool_name(self) -> str:
        return self.name


ToolSpec = Annotated[
    Union[
        OpenAIBuiltinToolSpec,
        AgentDurableObjectToolSpec,
        SerializedCallableToolSpec,
        LocalFunctionToolSpec,
    ],
    Field(discriminator="type"),
]

_TOOL_SPEC_LIST = TypeAdapter(list[ToolSpec])


def parse_tool_specs(raw: list[Any]) -> list[ToolSpec]:
    """Validate wire-form tool specs (dicts or models) into ToolSpec models.

    Raises:
        pydantic.ValidationError: If a spec is malformed
    """
    return _TOOL_SPEC_LIST.validate_python(list(raw))


def tool_spec_name(spec: ToolSpec) -> Optional[str]:
    """Name the model will see for a spec (None for builtin tools)."""
    if isinstance(spec, OpenAIBuiltinToolSpec):
        return spec.openai_tool.get("name")
    return spec.tool_name
