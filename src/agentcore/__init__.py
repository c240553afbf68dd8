"""
agentcore - event-sourced core for LLM agents.

An AgentCore folds an append-only event log into conversation state, runs
slice rules against every new state, and drives at most one streaming LLM
request at a time.
"""

from .background_worker import BackgroundTaskTracker
from .config import AgentCoreConfig, configure_logging, load_config
from .core import AgentCore, AgentCoreSlice, SliceRegistry
from .domain import (
    AgentCoreDeps,
    AgentCoreError,
    AgentCoreState,
    BackgroundCapacityError,
    ConcurrencyViolation,
    DispatchError,
    ErrorType,
    Event,
    EventInput,
    StreamError,
    ToolCall,
    ToolExecutionError,
    ToolOutcome,
    ValidationError,
)
from .ids import IdGenerator, RandomIdGenerator, SequentialIdGenerator
from .providers import create_openai_client
from .status_indicator import build_slack_thread_status_payload, resolve_status_indicator_text
from .tools import ToolDispatcher

__version__ = "0.1.0"

__all__ = [
    "AgentCore",
    "AgentCoreConfig",
    "AgentCoreDeps",
    "AgentCoreError",
    "AgentCoreSlice",
    "AgentCoreState",
    "BackgroundCapacityError",
    "BackgroundTaskTracker",
    "ConcurrencyViolation",
    "DispatchError",
    "ErrorType",
    "Event",
    "EventInput",
    "IdGenerator",
    "RandomIdGenerator",
    "SequentialIdGenerator",
    "SliceRegistry",
    "StreamError",
    "ToolCall",
    "ToolDispatcher",
    "ToolExecutionError",
    "ToolOutcome",
    "ValidationError",
    "build_slack_thread_status_payload",
    "configure_logging",
    "create_openai_client",
    "load_config",
    "resolve_status_indicator_text",
]
