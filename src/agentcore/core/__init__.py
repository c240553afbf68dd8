"""Event-sourced engine: fold, slices, rules and the AgentCore."""

from .agent_core import AgentCore
from .commands import (
    AppendEvents,
    CancelLLMRequest,
    Command,
    InvokeTools,
    ScheduleBackground,
    StartLLMRequest,
    core_rule,
)
from .fold import fold_event, fold_events, initial_state
from .slices import AgentCoreSlice, SliceRegistry

__all__ = [
    "AgentCore",
    "AgentCoreSlice",
    "AppendEvents",
    "CancelLLMRequest",
    "Command",
    "InvokeTools",
    "ScheduleBackground",
    "SliceRegistry",
    "StartLLMRequest",
    "core_rule",
    "fold_event",
    "fold_events",
    "initial_state",
]
