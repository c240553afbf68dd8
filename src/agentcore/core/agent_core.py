"""
Agent Core.

The event-sourced engine at the center of an agent conversation. All state is
derived by folding an append-only event log; rules react to each new state
with commands (start or cancel an LLM request, append events, run tools,
schedule background work) which the engine applies before ``add_events``
returns.

Usage:
    tracker = BackgroundTaskTracker()
    dispatcher = ToolDispatcher()
    deps = AgentCoreDeps(
        store_events=store.save,
        background=tracker,
        get_openai_client=get_client,
        tool_specs_to_implementations=dispatcher.resolve,
    )
    core = AgentCore(deps, slices=[SlackSlice()])

    await core.initialize_with_events(await store.load())
    await core.add_events([
        {"type": "CORE:SET_SYSTEM_PROMPT", "data": {"prompt": "Be brief."}},
        {"type": "CORE:LLM_INPUT_ITEM", "data": user_message, "triggerLLMRequest": True},
    ])
    await tracker.drain()
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from ..config import AgentCoreConfig
from ..domain.entities import AgentCoreState, Event, EventInput, RuntimeTool, ToolCall
from ..domain.errors import AgentCoreError, ErrorType, ToolExecutionError, ValidationError
from ..domain.events import parse_event_data
from ..domain.ports import AgentCoreDeps
from ..ids import IdGenerator, RandomIdGenerator
from ..orchestrator.llm_request_manager import LLMRequestManager
from ..tools.dispatcher import ToolDispatcher
from .commands import (
    AppendEvents,
    CancelLLMRequest,
    Command,
    InvokeTools,
    ScheduleBackground,
    StartLLMRequest,
    core_rule,
)
from .fold import check_event_order, fold_event, fold_events, initial_state
from .slices import AgentCoreSlice, SliceRegistry

EventLike = Union[EventInput, Mapping[str, Any]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AgentCore:
    """Event log, fold, rules and the LLM request lifecycle of one conversation.

    Calls to ``add_events`` are serialized with an ``asyncio.Lock``. Work that
    outlives a call (LLM streams, tool calls, slice side effects) runs through
    ``deps.background`` and re-enters via ``add_events``.

    Args:
        deps: Host capabilities
        slices: Slices in registration order
        config: Engine configuration (environment defaults when omitted)
        id_generator: Source of request ids
        clock: Returns the current time, used for event timestamps
        dispatcher: Executes tool calls
    """

    def __init__(
        self,
        deps: AgentCoreDeps,
        slices: Sequence[AgentCoreSlice] = (),
        config: Optional[AgentCoreConfig] = None,
        id_generator: Optional[IdGenerator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        dispatcher: Optional[ToolDispatcher] = None,
    ):
        self.deps = deps
        self.config = config or AgentCoreConfig()
        self.registry = SliceRegistry(slices)
        self.registry.validate_deps(deps)
        self.ids = id_generator or RandomIdGenerator()
        self.dispatcher = dispatcher or ToolDispatcher()
        self.logger = deps.logger

        self._clock = clock or _utc_now
        self._events: list[Event] = []
        self._state: AgentCoreState = initial_state(self.registry)
        self._lock = asyncio.Lock()
        self._rules_dirty = False
        self._replayed_open_request: Optional[str] = None
        self._llm = LLMRequestManager(self, deps, self.config, self.ids)

    # ========================================
    # Read accessors
    # ========================================

    @property
    def state(self) -> AgentCoreState:
        return self._state

    @property
    def events(self) -> tuple[Event, ...]:
        return tuple(self._events)

    def llm_request_in_progress(self) -> bool:
        return self._state.llm_request is not None

    # ========================================
    # Log mutation
    # ========================================

    async def initialize_with_events(self, events: Iterable[Union[Event, Mapping[str, Any]]]) -> None:
        """Replace the log with persisted events and fold them.

        No rules run and nothing is persisted.

        Raises:
            ValidationError: On out-of-order indices or unknown/malformed events
        """
        parsed = [Event.from_dict(event) for event in events]
        async with self._lock:
            state = fold_events(parsed, self.registry)
            self._events = parsed
            self._state = state
            self._llm.reconcile(state)
            self.logger.info(f"Agent core initialized with {len(parsed)} events")
            self._replayed_open_request = state.llm_request.request_id if state.llm_request else None
            if self._replayed_open_request is not None:
                self.logger.warning(
                    f"LLM request {state.llm_request.request_id} was still open in the log; "
                    f"it is cancelled on the next add_events"
                )

    async def add_events(self, inputs: Iterable[EventLike]) -> list[Event]:
        """Append events, fold them and apply rules until they settle.

        Does not wait for LLM requests or tool executions started as a result.

        Returns:
            Every event appended by this call, including events appended by
            rule commands

        Raises:
            ValidationError: If any input is malformed (nothing is appended)
            AgentCoreError: If rules keep emitting commands past the round limit
        """
        inputs = list(inputs)
        if not inputs:
            return []

        async with self._lock:
            first = len(self._events)
            await self._append_locked(inputs)
            await self._cancel_orphaned_request()
            await self._settle_rules()
            return self._events[first:]

    async def add_events_for_request(self, request_id: str, inputs: Iterable[EventLike]) -> bool:
        """Append events on behalf of an LLM request, if it is still the open one.

        Returns:
            False if the request was already terminated and the events discarded
        """
        async with self._lock:
            current = self._state.llm_request
            if current is None or current.request_id != request_id:
                return False
            await self._append_locked(list(inputs))
            await self._settle_rules()
            return True

    async def cancel_llm_request(self, reason: str = "canceled") -> Optional[str]:
        """Cancel the open LLM request.

        Returns:
            The cancelled request id, or None if no request was open
        """
        async with self._lock:
            request_id = await self._llm.cancel(reason)
            await self._settle_rules()
            return request_id

    async def execute_tool_calls(
        self,
        calls: Sequence[ToolCall],
        tools: Optional[Sequence[Union[RuntimeTool, Mapping[str, Any]]]] = None,
    ) -> list[Event]:
        """Run tool calls sequentially and append all results in one batch.

        Args:
            calls: Calls to execute, in order
            tools: Resolved tools; resolved from the current tool specs if omitted
        """
        if not calls:
            return []

        if tools is None:
            try:
                tools = await self.deps.tool_specs_to_implementations(list(self._state.tool_specs))
            except AgentCoreError as e:
                self.logger.error(f"Could not resolve tools for {len(calls)} calls: {e}")
                tools = []

        results = await self.dispatcher.execute_calls(calls, tools)
        return await self.add_events(results)

    async def _cancel_orphaned_request(self) -> None:
        """Cancel a request replayed as open; its stream died with the previous process."""
        orphan, self._replayed_open_request = self._replayed_open_request, None
        current = self._state.llm_request
        if orphan is not None and current is not None and current.request_id == orphan:
            await self._llm.cancel("restarted")

    async def _append_locked(self, inputs: Sequence[EventLike]) -> None:
        """Validate, append, persist and fold a batch. Caller holds the lock."""
        coerced = [EventInput.coerce(value) for value in inputs]
        for event_input in coerced:
            parse_event_data(self.registry.event_schemas, event_input.type, event_input.data)

        next_index = self._events[-1].event_index + 1 if self._events else 0
        timestamp = self._clock().isoformat()
        batch = [
            Event(
                type=event_input.type,
                data=copy.deepcopy(dict(event_input.data)),
                event_index=next_index + offset,
                timestamp=timestamp,
                trigger_llm_request=event_input.trigger_llm_request,
            )
            for offset, event_input in enumerate(coerced)
        ]
        check_event_order(batch, after_index=next_index - 1)

        # Fold before persisting so an event that cannot fold is never stored
        state = self._state
        for event in batch:
            state = fold_event(state, event, self.registry)

        self._events.extend(batch)
        try:
            await self.deps.store_events(list(self._events))
        except Exception:
            del self._events[len(self._events) - len(batch):]
            self.logger.error(f"Persisting {len(batch)} events failed, batch rolled back")
            raise

        self._state = state
        self._rules_dirty = True
        self._llm.reconcile(state)
        self.logger.debug(
            f"Appended {len(batch)} events: {', '.join(event.type for event in batch)}"
        )

    # ========================================
    # Rules
    # ========================================

    async def _settle_rules(self) -> None:
        rounds = 0
        while self._rules_dirty:
            if rounds >= self.config.max_rule_rounds:
                self._rules_dirty = False
                raise AgentCoreError(
                    f"Rules did not settle after {self.config.max_rule_rounds} rounds",
                    ErrorType.FATAL,
                )
            rounds += 1
            self._rules_dirty = False

            state = self._state
            commands: list[Command] = list(core_rule(state))
            commands.extend(
                self.registry.evaluate_rules(state, self.deps.get_rule_match_data(state))
            )
            for command in commands:
                await self._apply_command(command)

    async def _apply_command(self, command: Command) -> None:
        if isinstance(command, StartLLMRequest):
            await self._llm.start(command.reason)
        elif isinstance(command, CancelLLMRequest):
            await self._llm.cancel(command.reason)
        elif isinstance(command, AppendEvents):
            await self._append_locked(list(command.events))
        elif isinstance(command, InvokeTools):
            calls = list(command.calls)
            try:
                self.deps.background(lambda: self.execute_tool_calls(calls))
            except Exception as e:
                self.logger.error(f"Could not schedule execution of {len(calls)} tool calls: {e}")
                await self._append_locked([
                    ToolDispatcher.error_event(
                        call,
                        ToolExecutionError(
                            f"Could not schedule tool execution: {e}",
                            call.name,
                            error_type=getattr(e, "error_type", None),
                            original_error=e,
                        ),
                    )
                    for call in calls
                ])
        elif isinstance(command, ScheduleBackground):
            fn = command.fn
            try:
                self.deps.background(lambda: fn(self.deps))
            except Exception as e:
                self.logger.error(f"Could not schedule background work {command.name!r}: {e}")
        else:
            raise ValidationError(f"Unknown command: {command!r}")
