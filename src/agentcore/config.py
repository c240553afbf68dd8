"""
Configuration for the agent core.

Defaults are read from the environment (optionally from a ``.env`` file via
python-dotenv) when the dataclass is instantiated by ``load_config``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


@dataclass
class AgentCoreConfig:
    """Configuration for an AgentCore and its collaborators.

    Attributes:
        default_model: Model used when no CORE:SET_MODEL_OPTS was folded
        max_rule_rounds: Upper bound on rule re-evaluation per add_events call
        stream_channel_size: Capacity of the provider chunk channel
        max_background_tasks: Capacity of the background task set
        drain_timeout_seconds: Default timeout for draining background work
        openai_api_key: API key for the OpenAI client
        openai_base_url: Optional custom base URL
        openai_timeout: Request timeout in seconds
        log_level: Root logging level name
    """

    default_model: str = field(
        default_factory=lambda: os.getenv("AGENT_CORE_DEFAULT_MODEL", "gpt-4.1-mini")
    )
    max_rule_rounds: int = field(
        default_factory=lambda: _env_int("AGENT_CORE_MAX_RULE_ROUNDS", 25)
    )
    stream_channel_size: int = field(
        default_factory=lambda: _env_int("AGENT_CORE_STREAM_CHANNEL_SIZE", 64)
    )
    max_background_tasks: int = field(
        default_factory=lambda: _env_int("AGENT_CORE_MAX_BACKGROUND_TASKS", 256)
    )
    drain_timeout_seconds: float = field(
        default_factory=lambda: _env_float("AGENT_CORE_DRAIN_TIMEOUT_SECONDS", 30.0)
    )
    openai_api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    openai_base_url: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_BASE_URL"))
    openai_timeout: float = field(default_factory=lambda: _env_float("OPENAI_TIMEOUT", 60.0))
    log_level: str = field(
        default_factory=lambda: os.getenv("AGENT_CORE_LOG_LEVEL", "INFO").upper()
    )

    def __post_init__(self):
        if self.max_rule_rounds < 1:
            raise ValueError("max_rule_rounds must be at least 1")
        if self.stream_channel_size < 1:
            raise ValueError("stream_channel_size must be at least 1")
        if self.max_background_tasks < 1:
            raise ValueError("max_background_tasks must be at least 1")


def load_config(dotenv_path: Optional[str] = None) -> AgentCoreConfig:
    """Load configuration, reading a ``.env`` file first if present."""
    load_dotenv(dotenv_path=dotenv_path, override=False)
    return AgentCoreConfig()


def configure_logging(config: Optional[AgentCoreConfig] = None) -> None:
    """Configure root logging the way the service entry points do."""
    level_name = (config or AgentCoreConfig()).log_level
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )
