"""LLM request orchestration: request lifecycle and the chunk channel."""

from .llm_request_manager import ActiveRequest, LLMRequestManager
from .stream_channel import StreamChannel, TransportFailure

__all__ = [
    "ActiveRequest",
    "LLMRequestManager",
    "StreamChannel",
    "TransportFailure",
]
