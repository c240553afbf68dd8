"""
Slice composition.

A slice is an independently authored extension of the core. It contributes
event types (each with a payload schema), the names of capabilities the host
must provide, a substate with a pure reducer, and a rule reacting to new state
with commands. The registry merges a fixed, ordered list of slices once, at
construction time.
"""

from __future__ import annotations

import logging
from abc import ABC
from typing import Any, ClassVar, Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel

from ..domain.entities import AgentCoreState, Event
from ..domain.errors import ValidationError
from ..domain.events import CORE_EVENT_SCHEMAS
from ..domain.ports import AgentCoreDeps
from .commands import Command

logger = logging.getLogger(__name__)


class AgentCoreSlice(ABC):
    """Base class for slices.

    Subclasses set ``name``, ``event_schemas`` and ``required_deps`` and
    override whichever of ``initial_state``, ``reduce`` and ``rules`` they
    need. ``reduce`` and ``rules`` must be pure: the same inputs always give
    the same outputs, and neither may touch the outside world.

    Usage:
        class CounterSlice(AgentCoreSlice):
            name = "counter"
            event_schemas = {"COUNTER:INCREMENT": IncrementData}

            def initial_state(self):
                return 0

            def reduce(self, substate, event, payload, state):
                if event.type == "COUNTER:INCREMENT":
                    return substate + payload.by
                return substate
    """

    name: ClassVar[str]
    event_schemas: ClassVar[Mapping[str, type[BaseModel]]] = {}
    required_deps: ClassVar[tuple[str, ...]] = ()

    def initial_state(self) -> Any:
        """Substate before any event is folded."""
        return None

    def reduce(
        self,
        substate: Any,
        event: Event,
        payload: BaseModel,
        state: AgentCoreState,
    ) -> Any:
        """Fold one event (of any type) into the slice substate.

        Args:
            substate: Current slice substate
            event: Event being folded
            payload: The event data parsed with its schema
            state: Core state with this event's core effects applied

        Returns:
            The next substate
        """
        return substate

    def rules(self, state: AgentCoreState, match_data: Any) -> Iterable[Command]:
        """React to new state with zero or more commands."""
        return ()


class SliceRegistry:
    """Fixed-order registry of slices with their merged contributions.

    Attributes:
        slices: Registered slices in registration order
        event_schemas: Core and slice event schemas merged by type
        required_deps: Union of dependency names required by slices
    """

    def __init__(self, slices: Sequence[AgentCoreSlice] = ()):
        """Merge slice contributions.

        Raises:
            ValidationError: On duplicate slice names or overlapping event types
        """
        self.slices: tuple[AgentCoreSlice, ...] = tuple(slices)
        self.event_schemas: dict[str, type[BaseModel]] = dict(CORE_EVENT_SCHEMAS)
        self._owners: dict[str, str] = {t: "core" for t in CORE_EVENT_SCHEMAS}

        names: set[str] = set()
        required: dict[str, None] = {}

        for slice_ in self.slices:
            name = getattr(slice_, "name", None)
            if not name:
                raise ValidationError(f"Slice {type(slice_).__name__} has no name")
            if name in names:
                raise ValidationError(f"Duplicate slice name '{name}'")
            names.add(name)

            for event_type, schema in slice_.event_schemas.items():
                owner = self._owners.get(event_type)
                if owner is not None:
                    raise ValidationError(
                        f"Event type '{event_type}' from slice '{name}' "
                        f"is already defined by '{owner}'"
                    )
                self.event_schemas[event_type] = schema
                self._owners[event_type] = name

            for dep in slice_.required_deps:
                required[dep] = None

        self.required_deps: tuple[str, ...] = tuple(required)
        logger.debug(
            f"Slice registry loaded {len(self.slices)} slices, "
            f"{len(self.event_schemas)} event types"
        )

    def owner_of(self, event_type: str) -> Optional[str]:
        """Name of the slice (or ``core``) defining an event type."""
        return self._owners.get(event_type)

    def validate_deps(self, deps: AgentCoreDeps) -> None:
        """Check the host provides every capability slices require.

        Raises:
            ValidationError: Naming the missing dependencies
        """
        missing = [dep for dep in self.required_deps if dep not in deps.slice_deps]
        if missing:
            raise ValidationError(f"Missing dependencies required by slices: {', '.join(missing)}")

    def initial_substates(self) -> dict[str, Any]:
        return {slice_.name: slice_.initial_state() for slice_ in self.slices}

    def reduce(self, state: AgentCoreState, event: Event, payload: BaseModel) -> dict[str, Any]:
        """Apply one event to every slice substate."""
        return {
            slice_.name: slice_.reduce(state.slices.get(slice_.name), event, payload, state)
            for slice_ in self.slices
        }

    def evaluate_rules(self, state: AgentCoreState, match_data: Any) -> list[Command]:
        """Run slice rules in registration order and collect their commands."""
        commands: list[Command] = []
        for slice_ in self.slices:
            commands.extend(slice_.rules(state, match_data) or ())
        return commands
