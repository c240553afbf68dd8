"""Tool resolution and execution."""

from .definitions import DurableObjectToolDefinition, define_durable_object_tools
from .dispatcher import RegisteredCallable, ToolDispatcher

__all__ = [
    "DurableObjectToolDefinition",
    "RegisteredCallable",
    "ToolDispatcher",
    "define_durable_object_tools",
]
