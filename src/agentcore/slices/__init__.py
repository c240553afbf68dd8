"""Slices shipped with the agent core."""

from .slack import (
    SLACK_AGENT_TOOLS,
    SlackEventType,
    SlackSlice,
    SlackSliceState,
    slack_tool_specs,
    stop_responding_outcome,
)

__all__ = [
    "SLACK_AGENT_TOOLS",
    "SlackEventType",
    "SlackSlice",
    "SlackSliceState",
    "slack_tool_specs",
    "stop_responding_outcome",
]
