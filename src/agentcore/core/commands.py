"""
Commands emitted by rules.

Rules never perform side effects themselves; they return commands which the
engine applies in the order produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Union

from ..domain.entities import AgentCoreState, EventInput, ToolCall

if TYPE_CHECKING:
    from ..domain.ports import AgentCoreDeps


@dataclass(frozen=True)
class StartLLMRequest:
    """Start a new LLM request, superseding any open one."""

    reason: str = "triggered"


@dataclass(frozen=True)
class CancelLLMRequest:
    """Cancel the open LLM request, if any."""

    reason: str = "canceled"


@dataclass(frozen=True)
class InvokeTools:
    """Execute tool calls sequentially and append their results in one batch."""

    calls: tuple[ToolCall, ...]


@dataclass(frozen=True)
class AppendEvents:
    """Append events (folded before rules run again)."""

    events: tuple[Union[EventInput, Mapping[str, Any]], ...]


@dataclass(frozen=True)
class ScheduleBackground:
    """Run ``fn(deps)`` as fire-and-forget background work."""

    fn: Callable[[AgentCoreDeps], Awaitable[Any]] = field(compare=False)
    name: str = ""


Command = Union[StartLLMRequest, CancelLLMRequest, InvokeTools, AppendEvents, ScheduleBackground]


def core_rule(state: AgentCoreState) -> list[Command]:
    """Built-in rule evaluated before any slice rule.

    - While requests are paused, an open request is cancelled.
    - A pending trigger starts a request unless requests are paused.
    """
    if state.paused:
        if state.llm_request is not None:
            return [CancelLLMRequest(reason="paused")]
        return []
    if state.trigger_pending:
        return [StartLLMRequest()]
    return []
