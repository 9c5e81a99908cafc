"""
Workflow types (``estate_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing entity lifecycles (plot, sale, cancellation,
refund payment) as closed transition tables.  Services call
``Workflow.require()`` instead of comparing status strings ad hoc, so an
illegal move is rejected in exactly one place.

Architecture position
---------------------
**Kernel domain layer**.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from estate_kernel.exceptions import InvalidStateTransitionError


def _value(state: str | Enum) -> str:
    return state.value if isinstance(state, Enum) else state


@dataclass(frozen=True)
class Guard:
    """Named precondition a service checks before a transition fires."""

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid move.  ``posts_entry`` marks ledger-posting transitions."""

    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    posts_entry: bool = False


@dataclass(frozen=True)
class Workflow:
    """A lifecycle definition for one entity type."""

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state {self.initial_state} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.action} references unknown state"
                )

    def find(self, from_state: str | Enum, to_state: str | Enum) -> Transition | None:
        src, dst = _value(from_state), _value(to_state)
        for t in self.transitions:
            if t.from_state == src and t.to_state == dst:
                return t
        return None

    def allowed_targets(self, from_state: str | Enum) -> frozenset[str]:
        src = _value(from_state)
        return frozenset(t.to_state for t in self.transitions if t.from_state == src)

    def require(self, from_state: str | Enum, to_state: str | Enum) -> Transition:
        """
        Return the transition or raise.

        Raises:
            InvalidStateTransitionError: if ``from_state -> to_state`` is not
                declared.
        """
        transition = self.find(from_state, to_state)
        if transition is None:
            raise InvalidStateTransitionError(
                self.name, _value(from_state), _value(to_state)
            )
        return transition
