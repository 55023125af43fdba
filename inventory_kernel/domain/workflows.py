"""
Lifecycle state machines for transfers, reservations and subscriptions.

Each workflow is a declarative table of legal transitions.  Coordinators
resolve an (current state, action) pair through ``require_transition``; any
pair not in the table is an ``InvalidStateTransitionError``.  Terminal
states have no outgoing transitions.
"""

from dataclasses import dataclass

from inventory_kernel.exceptions import InvalidStateTransitionError
from inventory_kernel.logging_config import get_logger

logger = get_logger("domain.workflows")


@dataclass(frozen=True)
class Guard:
    """A condition checked by the coordinator before a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    moves_stock: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]

    @property
    def terminal_states(self) -> tuple[str, ...]:
        sources = {t.from_state for t in self.transitions}
        return tuple(s for s in self.states if s not in sources)

    def find(self, from_state: str, action: str) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == from_state and transition.action == action:
                return transition
        return None


def require_transition(
    workflow: Workflow,
    entity_id: object,
    current_state: str,
    action: str,
) -> Transition:
    """Return the transition for ``action`` or raise InvalidStateTransitionError."""
    transition = workflow.find(current_state, action)
    if transition is None:
        logger.warning(
            "invalid_state_transition",
            extra={
                "workflow": workflow.name,
                "entity_id": str(entity_id),
                "current_state": current_state,
                "action": action,
            },
        )
        raise InvalidStateTransitionError(
            entity_type=workflow.name,
            entity_id=str(entity_id),
            current_state=current_state,
            action=action,
        )
    return transition


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

SOURCE_STOCK_AVAILABLE = Guard(
    name="source_stock_available",
    description="Requested quantity is available at the source location",
)

STOCK_AVAILABLE = Guard(
    name="stock_available",
    description="Requested quantity is available at the location",
)

EXPIRY_DUE = Guard(
    name="expiry_due",
    description="Reservation expires_at is at or before now",
)


# -----------------------------------------------------------------------------
# Transfer Workflow
# -----------------------------------------------------------------------------

TRANSFER_WORKFLOW = Workflow(
    name="StockTransfer",
    description="Inter-location stock transfer",
    initial_state="pending",
    states=(
        "pending",
        "in_transit",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("pending", "in_transit", action="ship", guard=SOURCE_STOCK_AVAILABLE, moves_stock=True),
        Transition("pending", "cancelled", action="cancel"),
        Transition("in_transit", "completed", action="complete", moves_stock=True),
        Transition("in_transit", "cancelled", action="cancel", moves_stock=True),
    ),
)


# -----------------------------------------------------------------------------
# Reservation Workflow
# -----------------------------------------------------------------------------

RESERVATION_WORKFLOW = Workflow(
    name="Reservation",
    description="Channel hold on available stock",
    initial_state="active",
    states=(
        "active",
        "fulfilled",
        "cancelled",
        "expired",
    ),
    transitions=(
        Transition("active", "fulfilled", action="fulfill", moves_stock=True),
        Transition("active", "cancelled", action="cancel"),
        Transition("active", "expired", action="expire", guard=EXPIRY_DUE),
    ),
)


# -----------------------------------------------------------------------------
# Subscription Workflow
# -----------------------------------------------------------------------------

SUBSCRIPTION_WORKFLOW = Workflow(
    name="ChannelSubscription",
    description="Channel event subscription",
    initial_state="active",
    states=(
        "active",
        "paused",
        "cancelled",
    ),
    transitions=(
        Transition("active", "paused", action="pause"),
        Transition("paused", "active", action="resume"),
        Transition("active", "cancelled", action="cancel"),
        Transition("paused", "cancelled", action="cancel"),
    ),
)

logger.debug(
    "inventory_workflows_registered",
    extra={
        "workflows": [
            TRANSFER_WORKFLOW.name,
            RESERVATION_WORKFLOW.name,
            SUBSCRIPTION_WORKFLOW.name,
        ],
    },
)
