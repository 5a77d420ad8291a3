"""
Canonical workflow types (``payout_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the statement lifecycle and payout state machines.
A ``Workflow`` is the single source of truth for which action moves a
document from one state to the next; services ask it for the target state
instead of comparing status strings themselves.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
* An (from_state, action) pair resolves to at most one transition.
"""

from __future__ import annotations

from dataclasses import dataclass

from payout_kernel.exceptions import WorkflowTransitionError


@dataclass(frozen=True)
class Guard:
    """A precondition checked by the service before the transition fires.

    Descriptive only: the workflow names the guard, the owning service
    evaluates it.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial state '{self.initial_state}' not in states"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.from_state}->{t.to_state} "
                    "references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state '{t.from_state}' has an "
                    "outgoing transition"
                )
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(
                    f"{self.name}: action '{t.action}' is ambiguous from "
                    f"'{t.from_state}'"
                )
            seen.add(key)

    def allowed_actions(self, state: str) -> list[str]:
        return sorted(t.action for t in self.transitions if t.from_state == state)

    def find_transition(self, state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == state and t.action == action:
                return t
        return None

    def can(self, state: str, action: str) -> bool:
        return self.find_transition(state, action) is not None

    def sources_for(self, action: str) -> frozenset[str]:
        """States from which ``action`` is legal."""
        return frozenset(t.from_state for t in self.transitions if t.action == action)

    def apply(
        self,
        state: str,
        action: str,
        error_cls: type[WorkflowTransitionError] = WorkflowTransitionError,
    ) -> Transition:
        """Resolve ``action`` from ``state`` or raise ``error_cls``."""
        transition = self.find_transition(state, action)
        if transition is None:
            raise error_cls(self.name, state, action, self.allowed_actions(state))
        return transition
