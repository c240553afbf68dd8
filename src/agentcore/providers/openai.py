"""
OpenAI Responses API adapter.

Builds streaming request parameters from an AgentCoreState snapshot, normalizes
stream chunks, and maps client exceptions onto ErrorType.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, AsyncIterator, Iterable, Optional, Union

import openai
from openai import AsyncOpenAI

from ..config import AgentCoreConfig
from ..domain.entities import AgentCoreState, RuntimeTool
from ..domain.errors import AgentCoreError, ErrorType, StreamError
from ..domain.ports import IResponsesClient

logger = logging.getLogger(__name__)


class ChunkType(str, Enum):
    """Stream chunk types the request manager acts on."""

    RESPONSE_CREATED = "response.created"
    OUTPUT_TEXT_DELTA = "response.output_text.delta"
    OUTPUT_ITEM_DONE = "response.output_item.done"
    RESPONSE_COMPLETED = "response.completed"
    RESPONSE_FAILED = "response.failed"
    ERROR = "error"


def create_openai_client(config: Optional[AgentCoreConfig] = None) -> AsyncOpenAI:
    """Create the default client for ``AgentCoreDeps.get_openai_client``.

    Retries are disabled: a failed stream ends the request with an error and
    the host decides whether to trigger another turn.
    """
    config = config or AgentCoreConfig()
    return AsyncOpenAI(
        api_key=config.openai_api_key,
        base_url=config.openai_base_url,
        timeout=config.openai_timeout,
        max_retries=0,
    )


def _tool_param(tool: Union[RuntimeTool, dict[str, Any]]) -> dict[str, Any]:
    if isinstance(tool, RuntimeTool):
        return tool.to_openai_format()
    # Provider builtin tools are passed through as-is
    return dict(tool)


def build_response_params(
    state: AgentCoreState,
    tools: Iterable[Union[RuntimeTool, dict[str, Any]]] = (),
    default_model: str = "gpt-4.1-mini",
) -> dict[str, Any]:
    """Build ``responses.create`` parameters from a state snapshot.

    Args:
        state: Snapshot taken when the request started
        tools: Resolved runtime tools and builtin tool dicts
        default_model: Model used when no model options were folded

    Returns:
        Keyword arguments for ``client.responses.create``
    """
    params: dict[str, Any] = {"model": default_model}
    params.update(state.model_opts)
    if state.system_prompt:
        params["instructions"] = state.system_prompt
    params["input"] = [dict(item) for item in state.input_items]

    tool_params = [_tool_param(tool) for tool in tools]
    if tool_params:
        params["tools"] = tool_params

    params["stream"] = True
    return params


async def open_response_stream(client: IResponsesClient, params: dict[str, Any]) -> AsyncIterator[Any]:
    """Open a streaming response, awaiting the client call if it is async."""
    stream = client.responses.create(**params)
    if inspect.isawaitable(stream):
        stream = await stream
    return stream


async def close_stream(stream: Any) -> None:
    """Release the underlying HTTP response of a stream, if it has one."""
    for name in ("close", "aclose"):
        closer = getattr(stream, name, None)
        if closer is None:
            continue
        try:
            result = closer()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.debug(f"Ignoring error while closing stream: {e}")
        return


def chunk_to_dict(chunk: Any) -> dict[str, Any]:
    """Normalize an SDK event object or a plain dict into a dict."""
    if isinstance(chunk, dict):
        return chunk
    if hasattr(chunk, "model_dump"):
        return chunk.model_dump(mode="json", exclude_none=True)
    return {"type": getattr(chunk, "type", None)}


def chunk_error_detail(chunk: dict[str, Any]) -> str:
    """Extract a readable message from an ``error`` or ``response.failed`` chunk."""
    if chunk.get("type") == ChunkType.ERROR.value:
        message = chunk.get("message") or "Provider reported an error"
        code = chunk.get("code")
        return f"{message} ({code})" if code else message

    error = (chunk.get("response") or {}).get("error") or {}
    return error.get("message") or "Response failed"


def classify_provider_error(error: BaseException) -> AgentCoreError:
    """Map a transport exception onto a StreamError with an ErrorType."""
    if isinstance(error, AgentCoreError):
        return error
    if isinstance(error, openai.RateLimitError):
        logger.warning(f"Rate limited by OpenAI: {error}")
        return StreamError(f"Rate limited: {error}", ErrorType.RATE_LIMIT, error)
    if isinstance(error, openai.APITimeoutError):
        logger.error(f"OpenAI API timeout: {error}")
        return StreamError(f"Request timed out: {error}", ErrorType.TIMEOUT, error)
    if isinstance(error, openai.APIError):
        logger.error(f"OpenAI API error: {error}")
        return StreamError(f"API error: {error}", ErrorType.RECOVERABLE, error)
    logger.error(f"Unexpected error in OpenAI stream: {error}", exc_info=error)
    return StreamError(str(error) or type(error).__name__, ErrorType.FATAL, error)
