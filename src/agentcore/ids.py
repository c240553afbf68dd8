"""
Identifier generation.

Production code uses random ids; tests inject SequentialIdGenerator so that
request, message and call ids are predictable.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod


class IdGenerator(ABC):
    """Strategy for minting identifiers."""

    @abstractmethod
    def request_id(self) -> str:
        """Identifier for an LLM request."""

    @abstractmethod
    def message_id(self) -> str:
        """Identifier for a message item."""

    @abstractmethod
    def call_id(self) -> str:
        """Identifier for a function call."""


class RandomIdGenerator(IdGenerator):
    """Prefixed uuid4 identifiers."""

    def request_id(self) -> str:
        return f"req_{uuid.uuid4().hex}"

    def message_id(self) -> str:
        return f"msg_{uuid.uuid4().hex}"

    def call_id(self) -> str:
        return f"call_{uuid.uuid4().hex}"


class SequentialIdGenerator(IdGenerator):
    """Deterministic counters: ``req_1``, ``msg_1``, ``call_1``..."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._counters = {"req": 0, "msg": 0, "call": 0, "resp": 0}

    def _next(self, prefix: str) -> str:
        self._counters[prefix] += 1
        return f"{prefix}_{self._counters[prefix]}"

    def request_id(self) -> str:
        return self._next("req")

    def message_id(self) -> str:
        return self._next("msg")

    def call_id(self) -> str:
        return self._next("call")

    def response_id(self) -> str:
        return self._next("resp")
