"""
Slack slice.

Connects a Slack thread to the agent core:

- inbound webhook messages are forwarded to the model as user input items,
  starting a turn unless the agent was told to stay quiet (a mention of the
  bot lifts that)
- the thread's "is thinking / is typing" indicator follows the core state
- the durable-object tools the model uses to act in the thread
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, replace
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.commands import AppendEvents, Command, ScheduleBackground
from ..core.slices import AgentCoreSlice
from ..domain.entities import (
    AgentCoreState,
    Event,
    EventInput,
    LLMRequestStatus,
    ToolOutcome,
)
from ..domain.events import CoreEventType, EventData
from ..domain.ports import AgentCoreDeps
from ..domain.tool_specs import AgentDurableObjectToolSpec, tool_spec_name
from ..status_indicator import (
    THINKING_STATUS,
    WRITING_RESPONSE_STATUS,
    build_slack_thread_status_payload,
    resolve_status_indicator_text,
)
from ..tools.definitions import define_durable_object_tools
from ..utils import to_json

logger = logging.getLogger(__name__)

SET_THREAD_STATUS_DEP = "set_slack_thread_status"


class SlackEventType:
    WEBHOOK_EVENT_RECEIVED = "SLACK:WEBHOOK_EVENT_RECEIVED"
    MESSAGE_FORWARDED = "SLACK:MESSAGE_FORWARDED"
    STOP_RESPONDING_UNTIL_MENTIONED = "SLACK:STOP_RESPONDING_UNTIL_MENTIONED"
    THREAD_STATUS_CHANGED = "SLACK:THREAD_STATUS_CHANGED"


# ============================================
# Event schemas
# ============================================


class WebhookEventReceivedData(EventData):
    ts: str
    user: str
    text: str = ""
    thread_ts: Optional[str] = Field(default=None, alias="threadTs")


class MessageForwardedData(EventData):
    ts: str


class StopRespondingData(EventData):
    reason: str = ""


class ThreadStatusChangedData(EventData):
    status: Optional[str] = None


# ============================================
# Substate
# ============================================


@dataclass(frozen=True)
class SlackMessage:
    ts: str
    user: str
    text: str
    thread_ts: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = {"ts": self.ts, "user": self.user, "text": self.text}
        if self.thread_ts:
            result["threadTs"] = self.thread_ts
        return result


@dataclass(frozen=True)
class SlackSliceState:
    """Substate of the Slack slice.

    Attributes:
        pending_messages: Inbound messages not yet forwarded to the model
        forwarded_count: Number of messages forwarded so far
        muted: True after the agent was told to stop responding
        mute_reason: Why the agent went quiet
        thread_status: Indicator text last published (None when cleared)
    """

    pending_messages: tuple[SlackMessage, ...] = ()
    forwarded_count: int = 0
    muted: bool = False
    mute_reason: Optional[str] = None
    thread_status: Optional[str] = None


# ============================================
# Tools
# ============================================


class _ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MessageMetadata(_ToolInput):
    event_type: str
    event_payload: Any = None


class SendSlackMessageInput(_ToolInput):
    text: str = Field(description="The message text (required if blocks not provided)")
    blocks: Optional[list[dict[str, Any]]] = Field(
        default=None, description="Array of slack block objects"
    )
    ephemeral: Optional[bool] = Field(
        default=None,
        description=(
            "Whether to send as ephemeral message (visible only to specific user). "
            "Requires 'user' field when true."
        ),
    )
    user: Optional[str] = Field(
        default=None,
        description="Slack user ID to send ephemeral message to (required when ephemeral=true)",
    )
    metadata: Optional[MessageMetadata] = Field(
        default=None, description="Optional metadata for tracking message events"
    )
    modal_definitions: Optional[dict[str, Any]] = Field(
        default=None,
        alias="modalDefinitions",
        description="Modal definitions for button interactions - maps action_id to modal view definition",
    )
    unfurl: Literal["never", "auto", "all"] = Field(
        default="auto", description="Whether to unfurl links and media."
    )
    end_turn: bool = Field(
        default=False,
        alias="endTurn",
        description=(
            "Set this to true only if you want to yield to the user and end your turn, "
            "for example after asking them for input."
        ),
    )


class SlackReactionInput(_ToolInput):
    message_ts: str = Field(alias="messageTs", description="The ts of the message")
    name: str = Field(description="The emoji name (without colons, e.g., 'thumbsup')")


class UpdateSlackMessageInput(_ToolInput):
    ts: str = Field(description="The timestamp of the message to update")
    text: Optional[str] = Field(default=None, description="Updated message text")


class StopRespondingInput(_ToolInput):
    reason: str = Field(
        description=(
            "Very short reason for why you want to disengage from this slack thread "
            "until mentioned."
        )
    )


SLACK_AGENT_TOOLS = define_durable_object_tools({
    "send_slack_message": {
        "description": "Send a slack message to the thread you are currently active in.",
        "input_model": SendSlackMessageInput,
        "status_indicator_text": "sending message... 💬",
    },
    "add_slack_reaction": {
        "description": "Add an emoji reaction to a Slack message",
        "input_model": SlackReactionInput,
        "status_indicator_text": "adding reaction... 👍",
    },
    "remove_slack_reaction": {
        "description": "Remove an emoji reaction from a Slack message",
        "input_model": SlackReactionInput,
        "status_indicator_text": "removing reaction... ✖️",
    },
    "update_slack_message": {
        "description": (
            "Update a message in a Slack channel. This is useful for updating the "
            "content of a message after it has been sent."
        ),
        "input_model": UpdateSlackMessageInput,
        "status_indicator_text": "updating message... ✏️",
    },
    "stop_responding_until_mentioned": {
        "description": (
            "After you call this tool, you will not get a turn after any user messages, "
            "unless they explicitly mention you. Use this only when someone asks you to "
            "stop or be quiet, or when you are explicitly asked to use it."
        ),
        "input_model": StopRespondingInput,
        "status_indicator_text": "going quiet... 🤐",
    },
})


def slack_tool_specs() -> list[dict[str, Any]]:
    """Wire-form tool specs exposing every Slack tool, for CORE:ADD_TOOL_SPECS."""
    return [
        AgentDurableObjectToolSpec(method_name=name).model_dump(by_alias=True, exclude_none=True)
        for name in SLACK_AGENT_TOOLS
    ]


def stop_responding_outcome(reason: str) -> ToolOutcome:
    """Result for ``stop_responding_until_mentioned`` implementations.

    Records the mute and ends the turn.
    """
    return ToolOutcome(
        output={"success": True},
        trigger_llm_request=False,
        events=[
            EventInput(SlackEventType.STOP_RESPONDING_UNTIL_MENTIONED, {"reason": reason})
        ],
    )


# ============================================
# Slice
# ============================================


def _is_assistant_message(item: Any) -> bool:
    return item.get("type") == "message" and item.get("role") == "assistant"


def _publish_status(status: Optional[str]):
    payload = build_slack_thread_status_payload(status)

    async def publish(deps: AgentCoreDeps) -> None:
        logger.debug(f"Publishing Slack thread status: {payload}")
        result = deps.require(SET_THREAD_STATUS_DEP)(payload)
        if inspect.isawaitable(result):
            await result

    return publish


class SlackSlice(AgentCoreSlice):
    """Slice mirroring a Slack thread.

    Args:
        bot_user_id: Slack user id of the agent; its own messages are ignored
            and ``<@bot_user_id>`` in a message counts as a mention
    """

    name = "slack"
    event_schemas = {
        SlackEventType.WEBHOOK_EVENT_RECEIVED: WebhookEventReceivedData,
        SlackEventType.MESSAGE_FORWARDED: MessageForwardedData,
        SlackEventType.STOP_RESPONDING_UNTIL_MENTIONED: StopRespondingData,
        SlackEventType.THREAD_STATUS_CHANGED: ThreadStatusChangedData,
    }
    required_deps = (SET_THREAD_STATUS_DEP,)

    def __init__(self, bot_user_id: Optional[str] = None):
        self.bot_user_id = bot_user_id

    def initial_state(self) -> SlackSliceState:
        return SlackSliceState()

    def is_mention(self, text: str) -> bool:
        return bool(self.bot_user_id) and f"<@{self.bot_user_id}>" in text

    def reduce(
        self,
        substate: SlackSliceState,
        event: Event,
        payload: BaseModel,
        state: AgentCoreState,
    ) -> SlackSliceState:
        if event.type == SlackEventType.WEBHOOK_EVENT_RECEIVED:
            if self.bot_user_id and payload.user == self.bot_user_id:
                return substate
            message = SlackMessage(
                ts=payload.ts, user=payload.user, text=payload.text, thread_ts=payload.thread_ts
            )
            substate = replace(substate, pending_messages=substate.pending_messages + (message,))
            if substate.muted and self.is_mention(payload.text):
                substate = replace(substate, muted=False, mute_reason=None)
            return substate

        if event.type == SlackEventType.MESSAGE_FORWARDED:
            return replace(
                substate,
                pending_messages=tuple(
                    m for m in substate.pending_messages if m.ts != payload.ts
                ),
                forwarded_count=substate.forwarded_count + 1,
            )

        if event.type == SlackEventType.STOP_RESPONDING_UNTIL_MENTIONED:
            return replace(substate, muted=True, mute_reason=payload.reason)

        if event.type == SlackEventType.THREAD_STATUS_CHANGED:
            return replace(substate, thread_status=payload.status)

        return substate

    def desired_status(self, state: AgentCoreState) -> Optional[str]:
        """Indicator text the thread should show for ``state``."""
        last = state.last_llm_request
        if state.llm_request is None and last is not None and last.status == LLMRequestStatus.COMPLETED:
            pending = state.pending_tool_calls()
            if pending:
                call = pending[0]
                return resolve_status_indicator_text(
                    call.name, self._status_template(state, call.name), call.arguments
                )
        if state.llm_request is not None:
            if any(_is_assistant_message(item) for item in state.request_items()):
                return WRITING_RESPONSE_STATUS
            return THINKING_STATUS
        return None

    def _status_template(self, state: AgentCoreState, tool_name: str) -> Optional[str]:
        for spec in state.tool_specs:
            if tool_spec_name(spec) != tool_name:
                continue
            template = getattr(spec, "status_indicator_text", None)
            if template:
                return template
            if isinstance(spec, AgentDurableObjectToolSpec):
                definition = SLACK_AGENT_TOOLS.get(spec.method_name)
                if definition is not None:
                    return definition.status_indicator_text
        return None

    def rules(self, state: AgentCoreState, match_data: Any) -> list[Command]:
        substate: SlackSliceState = state.slice_state(self.name)
        commands: list[Command] = []

        for message in substate.pending_messages:
            commands.append(
                AppendEvents(
                    events=(
                        EventInput(
                            CoreEventType.LLM_INPUT_ITEM.value,
                            {
                                "type": "message",
                                "role": "user",
                                "content": [
                                    {"type": "input_text", "text": to_json(message.to_dict())}
                                ],
                            },
                            trigger_llm_request=not substate.muted,
                        ),
                        EventInput(SlackEventType.MESSAGE_FORWARDED, {"ts": message.ts}),
                    )
                )
            )

        status = self.desired_status(state)
        if status != substate.thread_status:
            commands.append(
                AppendEvents(
                    events=(EventInput(SlackEventType.THREAD_STATUS_CHANGED, {"status": status}),)
                )
            )
            commands.append(ScheduleBackground(fn=_publish_status(status), name="slack-status"))

        return commands
