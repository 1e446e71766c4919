"""Order status state machine."""

from .errors import InvalidTransitionError
from .models import OrderStatus

S = OrderStatus

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.PENDING: frozenset(
        {
            S.PROCESSING,
            S.CONFIRMED,
            S.COMPLETED,
            S.CANCELLED,
            S.VERIFICATION_FAILED,
            S.AMOUNT_MISMATCH,
            S.INVENTORY_FAILURE,
        }
    ),
    S.PROCESSING: frozenset({S.CONFIRMED, S.COMPLETED, S.CANCELLED, S.INVENTORY_FAILURE}),
    S.INVENTORY_FAILURE: frozenset({S.CONFIRMED, S.COMPLETED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.SHIPPED, S.CANCELLED}),
    S.COMPLETED: frozenset({S.SHIPPED, S.CANCELLED}),
    S.SHIPPED: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
    S.VERIFICATION_FAILED: frozenset(),
    S.AMOUNT_MISMATCH: frozenset(),
}

# Statuses whose stock has not been deducted yet.
PRE_DEDUCTION = frozenset({S.PENDING, S.PROCESSING, S.INVENTORY_FAILURE})

# Statuses the inventory engine will deduct from.
AWAITING_DEDUCTION = frozenset({S.PENDING, S.PROCESSING})

# Statuses the confirm claim may take over.
CLAIMABLE = frozenset({S.PENDING, S.PROCESSING, S.INVENTORY_FAILURE})

# Statuses written by a successful deduction.
DEDUCTED = frozenset({S.CONFIRMED, S.COMPLETED})

# Statuses an order only reaches after its stock was deducted.
PAST_DEDUCTION = DEDUCTED | {S.SHIPPED, S.DELIVERED}

TERMINAL = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Admins may only reach these from a pre-deduction status.
_ADMIN_EXITS_BEFORE_DEDUCTION = frozenset({S.CONFIRMED, S.CANCELLED})


def parse_status(value: str | OrderStatus) -> OrderStatus:
    """
    Parse a status string.

    Raises:
        InvalidTransitionError: If the value is not a known status.
    """
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidTransitionError("?", str(value), "unknown status")


def can_transition(current: str | OrderStatus, requested: str | OrderStatus) -> bool:
    """Return True if the status graph has an edge current -> requested."""
    try:
        cur, req = OrderStatus(current), OrderStatus(requested)
    except ValueError:
        return False
    return req in ALLOWED_TRANSITIONS.get(cur, frozenset())


def check_transition(current: str | OrderStatus, requested: str | OrderStatus) -> OrderStatus:
    """
    Validate an edge of the status graph.

    Returns:
        The requested status.

    Raises:
        InvalidTransitionError: If the edge doesn't exist.
    """
    cur = parse_status(current)
    req = parse_status(requested)
    if req not in ALLOWED_TRANSITIONS[cur]:
        if cur in TERMINAL:
            raise InvalidTransitionError(cur.value, req.value, f"'{cur.value}' is final")
        raise InvalidTransitionError(cur.value, req.value)
    return req


def check_admin_transition(current: str | OrderStatus, requested: str | OrderStatus) -> OrderStatus:
    """
    Validate a status change requested through the admin status handler.

    On top of the graph, an order whose stock was never deducted can only be
    confirmed (which runs the deduction) or cancelled.

    Raises:
        InvalidTransitionError: If the change is not allowed.
    """
    cur = parse_status(current)
    req = parse_status(requested)
    if cur in PRE_DEDUCTION and req not in _ADMIN_EXITS_BEFORE_DEDUCTION:
        raise InvalidTransitionError(
            cur.value,
            req.value,
            "stock has not been deducted yet; confirm or cancel the order first",
        )
    return check_transition(cur, req)
