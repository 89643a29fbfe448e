"""Payment status state machine.

`payment_status` on an order only ever moves along TRANSITIONS. Provider callbacks
are mapped to a PaymentStatus at the gateway boundary before they reach here.
"""
import enum


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"


TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.UNPAID: frozenset({PaymentStatus.PROCESSING, PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.REFUNDED}),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset({PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

# A repeated callback for one of these is acknowledged without touching the row.
# partially_refunded is left out so a further refund can still land.
DUPLICATE_SAFE_TERMINALS = frozenset({PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.REFUNDED})

REFUNDABLE = frozenset({PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED})

# Customers may (re)start checkout from these. failed is final; a declined
# order is replaced by a new order, never reopened.
SESSION_STARTABLE = frozenset({PaymentStatus.UNPAID, PaymentStatus.PROCESSING})

# Business status written alongside a payment transition
ORDER_STATUS_FOR = {
    PaymentStatus.PAID: "confirmed",
}


def parse(value) -> PaymentStatus | None:
    if isinstance(value, PaymentStatus):
        return value
    try:
        return PaymentStatus(str(value))
    except ValueError:
        return None


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def predecessors(target: PaymentStatus) -> list[str]:
    """Statuses from which `target` is reachable in one step, as stored string values."""
    return sorted(src.value for src, targets in TRANSITIONS.items() if target in targets)


def is_duplicate(current: PaymentStatus, incoming: PaymentStatus) -> bool:
    return current == incoming and incoming in DUPLICATE_SAFE_TERMINALS
