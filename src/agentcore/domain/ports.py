"""
Port interfaces for the agent core.

These define the contracts the hosting layer must satisfy.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Optional, Protocol

from .errors import ValidationError

if TYPE_CHECKING:
    from .entities import AgentCoreState, Event, RuntimeTool
    from .tool_specs import ToolSpec


# ============================================
# LLM Provider Interface
# ============================================


class IResponsesAPI(Protocol):
    """The slice of the provider client the core uses."""

    async def create(self, **params: Any) -> AsyncIterator[Any]:
        """Open a streaming response; yields provider chunks."""
        ...


class IResponsesClient(Protocol):
    """A client exposing ``responses.create`` (``openai.AsyncOpenAI`` does)."""

    responses: IResponsesAPI


# ============================================
# Host Capabilities
# ============================================


def default_rule_match_data(state: AgentCoreState) -> dict[str, Any]:
    """Match data handed to rules when the host supplies nothing richer."""
    return {"agent_core_state": state}


@dataclass
class AgentCoreDeps:
    """Capabilities the hosting actor provides to an AgentCore.

    Attributes:
        store_events: Persist the full event list; raising aborts add_events
        background: Schedule fire-and-forget work (see BackgroundTaskTracker)
        get_openai_client: Resolve a client able to open a streaming response
        tool_specs_to_implementations: Resolve ToolSpecs to runtime tools
        get_rule_match_data: Auxiliary context handed to slice rules
        on_llm_stream_chunk: Optional live forwarding of provider chunks
        logger: Diagnostic logging sink
        slice_deps: Named capabilities required by registered slices
    """

    store_events: Callable[[list[Event]], Awaitable[None]]
    background: Callable[[Callable[[], Awaitable[Any]]], Any]
    get_openai_client: Callable[[], Awaitable[IResponsesClient]]
    tool_specs_to_implementations: Callable[
        [list[ToolSpec]], Awaitable[list[RuntimeTool | dict[str, Any]]]
    ]
    get_rule_match_data: Callable[[AgentCoreState], Any] = default_rule_match_data
    on_llm_stream_chunk: Optional[Callable[[Any], Any]] = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("agentcore"))
    slice_deps: dict[str, Any] = field(default_factory=dict)

    def require(self, name: str) -> Any:
        """Look up a slice capability by name.

        Raises:
            ValidationError: If the host did not provide it
        """
        try:
            return self.slice_deps[name]
        except KeyError:
            raise ValidationError(f"Missing dependency '{name}'") from None
