"""
Tool Dispatcher.

Resolves ToolSpecs into invocable RuntimeTools and executes the function calls
requested by the model. Every execution ends in exactly one
CORE:LOCAL_FUNCTION_TOOL_CALL result event; implementation errors are turned
into failed results instead of propagating.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..domain.entities import EventInput, RuntimeTool, ToolCall, ToolOutcome
from ..domain.errors import AgentCoreError, DispatchError, ToolExecutionError, ValidationError
from ..domain.events import CoreEventType
from ..domain.tool_specs import (
    AgentDurableObjectToolSpec,
    LocalFunctionToolSpec,
    OpenAIBuiltinToolSpec,
    SerializedCallableToolSpec,
    ToolSpec,
    parse_tool_specs,
)
from ..utils import try_parse_json
from .definitions import DurableObjectToolDefinition

logger = logging.getLogger(__name__)

_EMPTY_SCHEMA = {"type": "object", "properties": {}, "required": []}


@dataclass(frozen=True)
class RegisteredCallable:
    """A callback registered for ``serialized_callable_tool`` specs.

    The function receives the parsed arguments dict.
    """

    fn: Callable[[dict[str, Any]], Any]
    description: str = ""
    parameters: Mapping[str, Any] = field(default_factory=lambda: dict(_EMPTY_SCHEMA))


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _plain_output(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


class ToolDispatcher:
    """Maps tool specs to implementations and runs tool calls.

    Usage:
        dispatcher = ToolDispatcher(
            durable_object=agent,
            durable_object_tools=SLACK_AGENT_TOOLS,
        )
        dispatcher.register_callable("lookup", lookup_fn, "Look things up")

        deps = AgentCoreDeps(
            ...,
            tool_specs_to_implementations=dispatcher.resolve,
        )

    Resolution is deterministic: a spec either resolves to its registered
    implementation or fails with DispatchError. There is no fallback tool.
    """

    def __init__(
        self,
        durable_object: Any = None,
        durable_object_tools: Optional[Mapping[str, DurableObjectToolDefinition]] = None,
        callables: Optional[Mapping[str, RegisteredCallable]] = None,
    ):
        self.durable_object = durable_object
        self.durable_object_tools: dict[str, DurableObjectToolDefinition] = dict(
            durable_object_tools or {}
        )
        self._callables: dict[str, RegisteredCallable] = dict(callables or {})

    def register_callable(
        self,
        ref: str,
        fn: Callable[[dict[str, Any]], Any],
        description: str = "",
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Register a callback addressable by ``serialized_callable_tool`` specs."""
        self._callables[ref] = RegisteredCallable(
            fn=fn,
            description=description,
            parameters=dict(parameters or _EMPTY_SCHEMA),
        )
        logger.debug(f"Registered callable tool '{ref}'")

    # ========================================
    # Resolution
    # ========================================

    async def resolve(
        self, specs: Iterable[Union[ToolSpec, Mapping[str, Any]]]
    ) -> list[Union[RuntimeTool, dict[str, Any]]]:
        """Resolve specs into runtime tools (builtin tools stay dicts).

        Raises:
            ValidationError: If a spec is malformed
            DispatchError: If a spec has no registered implementation
        """
        try:
            parsed = parse_tool_specs(list(specs))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid tool specs: {e}", original_error=e) from e
        return [self.resolve_spec(spec) for spec in parsed]

    def resolve_spec(self, spec: ToolSpec) -> Union[RuntimeTool, dict[str, Any]]:
        if isinstance(spec, OpenAIBuiltinToolSpec):
            return dict(spec.openai_tool)
        if isinstance(spec, AgentDurableObjectToolSpec):
            return self._resolve_durable_object(spec)
        if isinstance(spec, SerializedCallableToolSpec):
            return self._resolve_callable(spec)
        if isinstance(spec, LocalFunctionToolSpec):
            return self._resolve_local_function(spec)
        raise DispatchError(str(getattr(spec, "type", spec)), "Unsupported tool spec type")

    def _resolve_durable_object(self, spec: AgentDurableObjectToolSpec) -> RuntimeTool:
        name = spec.tool_name
        definition = self.durable_object_tools.get(spec.method_name)
        if definition is None:
            raise DispatchError(name)
        if self.durable_object is None or not callable(
            getattr(self.durable_object, spec.method_name, None)
        ):
            raise DispatchError(
                name, f"Durable object has no method '{spec.method_name}' for tool '{name}'"
            )

        target = self.durable_object
        pass_through = dict(spec.pass_through_args or {})

        async def execute(call: ToolCall, args: dict[str, Any]) -> Any:
            kwargs = definition.validate_arguments({**args, **pass_through})
            method = getattr(target, spec.method_name)
            return await _maybe_await(method(**kwargs))

        return RuntimeTool(
            name=name,
            description=spec.override_description or definition.description,
            parameters=definition.parameters_schema(),
            execute=execute,
            status_indicator_text=spec.status_indicator_text or definition.status_indicator_text,
        )

    def _resolve_callable(self, spec: SerializedCallableToolSpec) -> RuntimeTool:
        registered = self._callables.get(spec.callable_ref)
        if registered is None:
            raise DispatchError(spec.tool_name)

        async def execute(call: ToolCall, args: dict[str, Any]) -> Any:
            return await _maybe_await(registered.fn(args))

        return RuntimeTool(
            name=spec.tool_name,
            description=spec.override_description or registered.description,
            parameters=spec.override_input_schema or registered.parameters,
            execute=execute,
            status_indicator_text=spec.status_indicator_text,
        )

    def _resolve_local_function(self, spec: LocalFunctionToolSpec) -> RuntimeTool:
        async def execute(call: ToolCall, args: dict[str, Any]) -> Any:
            return await _maybe_await(spec.execute(call, args))

        return RuntimeTool(
            name=spec.name,
            description=spec.description,
            parameters=spec.parameters,
            execute=execute,
            strict=spec.strict,
            status_indicator_text=spec.status_indicator_text,
        )

    # ========================================
    # Execution
    # ========================================

    async def execute(self, tool: RuntimeTool, call: ToolCall) -> EventInput:
        """Execute one call and return its result event."""
        result, _ = await self._invoke(tool, call)
        return result

    async def execute_calls(
        self,
        calls: Iterable[ToolCall],
        tools: Iterable[Union[RuntimeTool, Mapping[str, Any]]],
    ) -> list[EventInput]:
        """Execute calls sequentially, in order.

        Returns:
            Result events followed by each outcome's extra events, ready to be
            appended in a single batch
        """
        by_name = {tool.name: tool for tool in tools if isinstance(tool, RuntimeTool)}
        events: list[EventInput] = []
        for call in calls:
            tool = by_name.get(call.name)
            if tool is None:
                error = DispatchError(call.name)
                logger.warning(f"Model called unknown tool '{call.name}'")
                events.append(self.error_event(call, error))
                continue
            result, extra = await self._invoke(tool, call)
            events.append(result)
            events.extend(extra)
        return events

    async def _invoke(self, tool: RuntimeTool, call: ToolCall) -> tuple[EventInput, list[Any]]:
        logger.info(f"Executing tool: {call.name}")
        start = time.monotonic()

        try:
            args = try_parse_json(call.arguments or "{}")
            if not isinstance(args, dict):
                raise ToolExecutionError(
                    f"Arguments for {call.name} are not a JSON object", call.name
                )
            result = await tool.execute(call, args)
        except Exception as e:
            if isinstance(e, ToolExecutionError):
                error = e
            else:
                error = ToolExecutionError(
                    str(e) or type(e).__name__,
                    call.name,
                    e.error_type if isinstance(e, AgentCoreError) else None,
                    original_error=e,
                )
            logger.error(f"Tool execution failed: {call.name}: {error}")
            return self.error_event(call, error), []

        outcome = result if isinstance(result, ToolOutcome) else ToolOutcome(output=result)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug(f"Tool {call.name} completed in {elapsed_ms}ms")

        event = EventInput(
            CoreEventType.LOCAL_FUNCTION_TOOL_CALL.value,
            {
                "call": call.to_dict(),
                "result": {"success": True, "output": _plain_output(outcome.output)},
            },
            trigger_llm_request=outcome.trigger_llm_request,
        )
        return event, list(outcome.events)

    @staticmethod
    def error_event(call: ToolCall, error: AgentCoreError) -> EventInput:
        """Terminal result event for a failed call (does not trigger a turn)."""
        return EventInput(
            CoreEventType.LOCAL_FUNCTION_TOOL_CALL.value,
            {
                "call": call.to_dict(),
                "result": {
                    "success": False,
                    "error": str(error),
                    "errorType": error.error_type.value,
                },
            },
            trigger_llm_request=False,
        )
