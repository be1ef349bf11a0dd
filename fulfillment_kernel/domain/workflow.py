"""
Lifecycle state machines (``fulfillment_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing the order, shipment and per-item fulfillment
lifecycles, plus ``validate_transition`` which every status write in the
kernel goes through.  A transition that is not listed here does not exist:
there is no way to skip a state.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No imports from ``db/``,
``services/``, ``selectors/`` or ``repositories/``.

Order lifecycle::

    pending        confirmed --> allocating --> allocated --> fulfilled --> shipped
       |               |          ^    |             |            ^
       |               |          |    v             |            |
       |               |          +- partial --------+------------+
       v               v               v             v            v
    cancelled <---- (any non-terminal state) ----------------> cancelled

Guards are descriptive; the orchestrator evaluates them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fulfillment_kernel.exceptions import InvalidStatusTransitionError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("domain.workflow")


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires."""
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
    """A state machine definition.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    ``terminal_states`` have no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"{self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.from_state}->{t.to_state} "
                    "references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state {t.from_state!r} has an outgoing transition"
                )

    def find(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def allowed_targets(self, from_state: str) -> tuple[str, ...]:
        return tuple(t.to_state for t in self.transitions if t.from_state == from_state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states


def state_name(value: str | Enum) -> str:
    """Plain string value of a status, whether given as an Enum member or str."""
    if isinstance(value, Enum):
        return value.value
    return value


def validate_transition(workflow: Workflow, from_state: str, to_state: str) -> Transition:
    """
    Return the transition from ``from_state`` to ``to_state``.

    Raises:
        InvalidStatusTransitionError: if the workflow does not list it.
    """
    from_state, to_state = state_name(from_state), state_name(to_state)
    transition = workflow.find(from_state, to_state)
    if transition is None:
        raise InvalidStatusTransitionError(workflow.name, from_state, to_state)
    return transition


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ALL_ITEMS_COVERED = Guard(
    name="all_items_covered",
    description="Every order item has live allocations covering its ordered quantity",
)

ITEMS_UNDER_COVERED = Guard(
    name="items_under_covered",
    description="At least one order item is not fully allocated",
)

ALL_ALLOCATIONS_PACKED = Guard(
    name="all_allocations_packed",
    description="Every live allocation is packed into a shipment",
)

TRACKING_ATTACHED = Guard(
    name="tracking_attached",
    description="The shipment carries a tracking number",
)

ADMINISTRATIVE_ACTION = Guard(
    name="administrative_action",
    description="Cancellation was explicitly requested by an administrator",
)


# -----------------------------------------------------------------------------
# Order Workflow
# -----------------------------------------------------------------------------

_ORDER_CANCELLABLE = (
    "pending",
    "confirmed",
    "allocating",
    "partial",
    "allocated",
    "fulfilled",
)

ORDER_WORKFLOW = Workflow(
    name="order",
    description="Order allocation and fulfillment lifecycle",
    initial_state="pending",
    states=(
        "pending",
        "confirmed",
        "allocating",
        "partial",
        "allocated",
        "fulfilled",
        "shipped",
        "cancelled",
    ),
    transitions=(
        Transition("confirmed", "allocating", action="allocate"),
        Transition("partial", "allocating", action="retry_allocation"),
        Transition("allocating", "allocated", action="settle", guard=ALL_ITEMS_COVERED),
        Transition("allocating", "partial", action="settle", guard=ITEMS_UNDER_COVERED),
        Transition("allocated", "fulfilled", action="fulfill", guard=ALL_ALLOCATIONS_PACKED),
        Transition("partial", "fulfilled", action="fulfill", guard=ALL_ALLOCATIONS_PACKED),
        Transition("fulfilled", "shipped", action="ship", guard=TRACKING_ATTACHED),
    ) + tuple(
        Transition(state, "cancelled", action="cancel", guard=ADMINISTRATIVE_ACTION)
        for state in _ORDER_CANCELLABLE
    ),
    terminal_states=("shipped", "cancelled"),
)


# -----------------------------------------------------------------------------
# Shipment Workflow
# -----------------------------------------------------------------------------

SHIPMENT_WORKFLOW = Workflow(
    name="shipment",
    description="Outbound shipment lifecycle",
    initial_state="pending",
    states=("pending", "packed", "shipped", "cancelled"),
    transitions=(
        Transition("pending", "packed", action="pack"),
        Transition("packed", "shipped", action="dispatch", guard=TRACKING_ATTACHED),
        Transition("pending", "cancelled", action="cancel"),
        Transition("packed", "cancelled", action="cancel"),
    ),
    terminal_states=("shipped", "cancelled"),
)


# -----------------------------------------------------------------------------
# Fulfillment Workflow
# -----------------------------------------------------------------------------

FULFILLMENT_WORKFLOW = Workflow(
    name="fulfillment",
    description="Per-item pick/pack/ship lifecycle",
    initial_state="pending",
    states=("pending", "picking", "packed", "shipped", "cancelled"),
    transitions=(
        Transition("pending", "picking", action="pick"),
        Transition("picking", "packed", action="pack"),
        Transition("packed", "shipped", action="ship"),
        Transition("pending", "cancelled", action="cancel"),
        Transition("picking", "cancelled", action="cancel"),
        Transition("packed", "cancelled", action="cancel"),
    ),
    terminal_states=("shipped", "cancelled"),
)


logger.debug(
    "workflows_defined",
    extra={
        "workflows": [
            ORDER_WORKFLOW.name,
            SHIPMENT_WORKFLOW.name,
            FULFILLMENT_WORKFLOW.name,
        ],
    },
)
