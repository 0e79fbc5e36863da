"""
sshuserauth State Machine Base

Authentication methods are driven through an explicit state machine:
every protocol step is an event, every event either matches a row of the
transition table or is refused, and the resulting (state, context) pair
must satisfy the registered invariants before it is committed.

Refused events come back as returns.result.Failure; a broken invariant
raises InvariantViolation. Every committed step is kept as a Transition
so a whole exchange can be replayed, exported as JSON and checked
against a table of allowed moves.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

import attrs
import structlog
from returns.result import Failure, Result, Success

from sshuserauth.core.exceptions import InvariantViolation

logger = structlog.get_logger()


S = TypeVar("S", bound=Enum)
E = TypeVar("E")
C = TypeVar("C")

# (state, context) -> holds?
InvariantFn = Callable[[S, Any], bool]

# next_state, (event, context) -> new context
TransitionEntry = Tuple[S, Callable[[Any, Any], Any]]


@attrs.define(frozen=True, slots=True)
class Transition(Generic[S, E]):
    """One committed step of a state machine."""

    from_state: S
    event_type: str
    to_state: S
    timestamp: datetime
    context_snapshot: Dict[str, Any] = attrs.Factory(dict)
    event_data: Dict[str, Any] = attrs.Factory(dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_state": self.from_state.name,
            "event_type": self.event_type,
            "to_state": self.to_state.name,
            "timestamp": self.timestamp.isoformat(),
            "context_snapshot": self.context_snapshot,
            "event_data": self.event_data,
        }


def _json_value(inst: Any, field: attrs.Attribute, value: Any) -> Any:  # noqa: ARG001
    # Key material is reduced to its length
    if isinstance(value, bytes):
        return f"<bytes:{len(value)}>"
    if isinstance(value, (frozenset, set)):
        return sorted(str(v) for v in value)
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, datetime):
        return value.isoformat()
    if attrs.has(type(value)):
        return f"<{type(value).__name__}>"
    return value


def snapshot(obj: Any) -> Dict[str, Any]:
    """JSON-safe dict of an attrs instance's public fields."""
    if not attrs.has(type(obj)):
        return {"type": type(obj).__name__}
    return attrs.asdict(
        obj,
        filter=lambda attr, _: not attr.name.startswith("_"),
        value_serializer=_json_value,
    )


@attrs.define
class StateMachineBase(ABC, Generic[S, E, C]):
    """
    Table-driven state machine with invariant hooks.

    Subclasses provide the initial state and a transition table mapping
    (state, event class) to (next state, context updater). Updaters are
    pure: they return a new context and never touch the outside world.

    Example:
        class DoorMachine(StateMachineBase[Door, Any, DoorContext]):
            def initial_state(self) -> Door:
                return Door.CLOSED

            def transition_table(self):
                return {(Door.CLOSED, Opened): (Door.OPEN, self._opened)}

            @staticmethod
            def _opened(event: Opened, ctx: DoorContext) -> DoorContext:
                return attrs.evolve(ctx, openings=ctx.openings + 1)
    """

    _state: S = attrs.field(alias="_state")
    _context: C = attrs.field(alias="_context")
    _history: List[Transition[S, E]] = attrs.field(factory=list, alias="_history")
    _invariants: List[Tuple[str, InvariantFn]] = attrs.field(factory=list, alias="_invariants")
    _logger: Any = attrs.field(factory=lambda: structlog.get_logger(), alias="_logger")

    @abstractmethod
    def initial_state(self) -> S:
        ...

    @abstractmethod
    def transition_table(self) -> Dict[Tuple[S, type], TransitionEntry]:
        ...

    @property
    def state(self) -> S:
        return self._state

    @property
    def context(self) -> C:
        return self._context

    def add_invariant(self, name: str, invariant: InvariantFn) -> None:
        """Register a (state, context) -> bool check run on every transition."""
        self._invariants.append((name, invariant))

    def process_event(self, event: E) -> Result[S, str]:
        """
        Apply an event.

        Returns:
            Success(new_state), or Failure(reason) when the table has no
            row for the event or the context updater rejects it. The
            machine is unchanged after a Failure.

        Raises:
            InvariantViolation: If the resulting state breaks an invariant
        """
        name = type(event).__name__
        row = self.transition_table().get((self._state, type(event)))
        if row is None:
            self._logger.warning(
                "invalid_transition", current_state=self._state.name, event_type=name
            )
            return Failure(f"No transition for state {self._state.name} with event {name}")

        next_state, update = row
        try:
            new_context = update(event, self._context)
        except Exception as e:
            self._logger.error(
                "context_update_failed",
                current_state=self._state.name,
                event_type=name,
                error=str(e),
            )
            return Failure(f"Context update failed: {e}")

        error = self._check_invariants(next_state, new_context)
        if error is not None:
            return Failure(error)

        self._history.append(
            Transition(
                from_state=self._state,
                event_type=name,
                to_state=next_state,
                timestamp=datetime.now(timezone.utc),
                context_snapshot=snapshot(new_context),
                event_data=snapshot(event),
            )
        )
        self._logger.debug(
            "state_transition",
            from_state=self._state.name,
            to_state=next_state.name,
            event_type=name,
        )
        self._state = next_state
        self._context = new_context
        return Success(next_state)

    def _check_invariants(self, state: S, context: C) -> Optional[str]:
        """Raise on a violated invariant; return an error if a check itself fails."""
        for name, invariant in self._invariants:
            try:
                holds = invariant(state, context)
            except Exception as e:
                self._logger.error("invariant_check_failed", invariant=name, error=str(e))
                return f"Invariant check '{name}' failed: {e}"
            if not holds:
                self._logger.error(
                    "invariant_violated",
                    invariant=name,
                    from_state=self._state.name,
                    to_state=state.name,
                )
                raise InvariantViolation(f"Invariant '{name}' violated")
        return None

    def get_trace(self) -> List[Transition[S, E]]:
        """Copy of the committed transitions, oldest first."""
        return list(self._history)

    def export_trace(self) -> Dict[str, Any]:
        """Visited states, events and timestamps as parallel lists."""
        states = [t.from_state.name for t in self._history]
        states.append(self._state.name)
        return {
            "states": states,
            "events": [t.event_type for t in self._history],
            "timestamps": [t.timestamp.isoformat() for t in self._history],
        }

    def export_trace_json(self) -> str:
        return json.dumps(
            {
                "initial_state": self.initial_state().name,
                "final_state": self._state.name,
                "transitions": [t.to_dict() for t in self._history],
                "sequence": self.export_trace(),
            },
            indent=2,
        )


# =============================================================================
# TRACE CHECKS
# =============================================================================


def verify_trace(
    trace: List[Transition],
    allowed_transitions: Dict[Tuple[str, str], str],
) -> List[str]:
    """
    Check every step of a trace against (from_state, event) -> to_state.

    Returns:
        One message per offending step; empty if the trace is valid
    """
    errors = []
    for i, t in enumerate(trace):
        expected = allowed_transitions.get((t.from_state.name, t.event_type))
        if expected is None:
            errors.append(
                f"Transition {i}: {t.from_state.name} --[{t.event_type}]--> "
                f"{t.to_state.name} is not allowed"
            )
        elif expected != t.to_state.name:
            errors.append(
                f"Transition {i}: {t.from_state.name} --[{t.event_type}]--> "
                f"{t.to_state.name}, expected {expected}"
            )
    return errors


def check_invariant_over_trace(
    trace: List[Transition],
    invariant: Callable[[str, Dict[str, Any]], bool],
    invariant_name: str,
) -> List[str]:
    """Evaluate invariant(state_name, context_snapshot) after every step."""
    return [
        f"Invariant '{invariant_name}' violated at transition {i}: state={t.to_state.name}"
        for i, t in enumerate(trace)
        if not invariant(t.to_state.name, t.context_snapshot)
    ]
