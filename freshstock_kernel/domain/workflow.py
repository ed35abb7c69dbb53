"""
Canonical workflow types (``freshstock_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines, and the declared transfer
workflow.  The transfer service asks ``TRANSFER_WORKFLOW`` whether an action
is legal instead of hard-coding status checks.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/`` or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the owning service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``requires_approval=True`` marks the transition that
    is gated by the approval engine.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    requires_approval: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self):
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state!r} "
                    f"has outgoing transition {t.action}"
                )

    def find_transition(self, current_state: str, action: str) -> Transition | None:
        """The transition for ``action`` out of ``current_state``, if legal."""
        for t in self.transitions:
            if t.from_state == current_state and t.action == action:
                return t
        return None

    def actions_from(self, current_state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == current_state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states


STOCK_AVAILABLE = Guard(
    name="stock_available",
    description="Source branch holds enough unreserved sellable stock",
)

APPROVER_AUTHORIZED = Guard(
    name="approver_authorized",
    description="Approver role and branch scope cover the transfer value",
)


TRANSFER_WORKFLOW = Workflow(
    name="inventory_transfer",
    description="Movement of stock between two branches",
    initial_state="requested",
    states=(
        "requested",
        "approved",
        "shipped",
        "received",
        "rejected",
        "cancelled",
    ),
    transitions=(
        Transition(
            "requested", "approved", action="approve",
            guard=APPROVER_AUTHORIZED, requires_approval=True,
        ),
        Transition("requested", "rejected", action="reject"),
        Transition("requested", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel"),
        Transition("approved", "shipped", action="ship", guard=STOCK_AVAILABLE),
        Transition("shipped", "received", action="receive"),
    ),
    terminal_states=("received", "rejected", "cancelled"),
)
