"""LLM provider adapters."""

from .openai import (
    ChunkType,
    build_response_params,
    chunk_error_detail,
    chunk_to_dict,
    classify_provider_error,
    close_stream,
    create_openai_client,
    open_response_stream,
)

__all__ = [
    "ChunkType",
    "build_response_params",
    "chunk_error_detail",
    "chunk_to_dict",
    "classify_provider_error",
    "close_stream",
    "create_openai_client",
    "open_response_stream",
]
