"""
State machine value objects (``asset_kernel.domain.workflow``).

A module declares its document lifecycle once as a ``Workflow``; services
ask it whether a status move is legal before writing anything.  Nothing
here touches the database or the clock.

Construction checks:

* the initial state and both ends of every transition are declared states;
* a terminal state has no outgoing transition.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """Named precondition on a transition.  Evaluated by the owning service."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """
    Immutable transition table for one document type.

    ``allows`` is the only question services need; ``targets_from`` and
    ``transition`` exist for error messages and display.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        declared = frozenset(self.states)
        if self.initial_state not in declared:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for edge in self.transitions:
            if not {edge.from_state, edge.to_state} <= declared:
                raise ValueError(
                    f"Workflow {self.name}: transition {edge.from_state!r} -> "
                    f"{edge.to_state!r} references an undeclared state"
                )
            if edge.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {edge.from_state!r} "
                    "cannot have outgoing transitions"
                )

    def transition(self, from_state: str, to_state: str) -> Transition | None:
        for edge in self.transitions:
            if edge.from_state == from_state and edge.to_state == to_state:
                return edge
        return None

    def targets_from(self, state: str) -> frozenset[str]:
        return frozenset(
            edge.to_state for edge in self.transitions if edge.from_state == state
        )

    def allows(self, from_state: str, to_state: str) -> bool:
        return self.transition(from_state, to_state) is not None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
