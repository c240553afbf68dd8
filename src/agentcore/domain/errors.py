"""
Error taxonomy for the agent core.

Every error raised by the core derives from AgentCoreError and carries an
ErrorType so that surfaces rendering terminal events can tell a transient
failure from a fatal one.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorType(str, Enum):
    """Types of errors surfaced by the core."""

    RECOVERABLE = "recoverable"  # Can retry
    FATAL = "fatal"  # Must abort
    TIMEOUT = "timeout"  # Tool/LLM timeout
    RATE_LIMIT = "rate_limit"  # Rate limited, back off


class AgentCoreError(Exception):
    """Base exception for agent core errors."""

    default_error_type = ErrorType.RECOVERABLE

    def __init__(
        self,
        message: str,
        error_type: Optional[ErrorType] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.error_type = error_type or self.default_error_type
        self.original_error = original_error


class ValidationError(AgentCoreError):
    """Malformed event or tool spec, or an out-of-order event log."""

    default_error_type = ErrorType.FATAL


class StreamError(AgentCoreError):
    """The provider transport failed while streaming a response."""


class ToolExecutionError(AgentCoreError):
    """A tool implementation raised while executing."""

    def __init__(
        self,
        message: str,
        tool_name: str,
        error_type: Optional[ErrorType] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message, error_type, original_error)
        self.tool_name = tool_name


class DispatchError(AgentCoreError):
    """No implementation is registered for a requested tool."""

    default_error_type = ErrorType.FATAL

    def __init__(self, tool_name: str, message: Optional[str] = None):
        super().__init__(message or f"No implementation registered for tool '{tool_name}'")
        self.tool_name = tool_name


class ConcurrencyViolation(AgentCoreError):
    """A second LLM request was opened while one was still in flight."""

    default_error_type = ErrorType.FATAL


class BackgroundCapacityError(AgentCoreError):
    """Background work was refused because the tracked set is full."""

    default_error_type = ErrorType.RATE_LIMIT
