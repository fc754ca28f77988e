import enum


class Role(str, enum.Enum):
    admin = "ADMIN"
    manager = "MANAGER"
    operator = "OPERATOR"


class BaseUnit(str, enum.Enum):
    gram = "GRAM"
    kilogram = "KILOGRAM"
    milliliter = "MILLILITER"
    liter = "LITER"
    unit = "UNIT"


class MovementType(str, enum.Enum):
    inbound = "IN"
    outbound = "OUT"


class MovementReason(str, enum.Enum):
    sale = "SALE"
    consume = "CONSUME"
    transfer = "TRANSFER"
    adjustment = "ADJUSTMENT"


class POStatus(str, enum.Enum):
    draft = "DRAFT"
    sent = "SENT"
    partial = "PARTIAL"
    received = "RECEIVED"
    cancelled = "CANCELLED"


class PayableStatus(str, enum.Enum):
    current = "CURRENT"
    due_soon = "DUE_SOON"
    overdue = "OVERDUE"
    paid = "PAID"


class AuditStatus(str, enum.Enum):
    pending = "PENDING"
    in_progress = "IN_PROGRESS"
    completed = "COMPLETED"
    cancelled = "CANCELLED"


class ExpiryStatus(str, enum.Enum):
    critical = "CRITICAL"
    warning = "WARNING"
    upcoming = "UPCOMING"


# Allowed lifecycle moves. Every status is a key, terminal ones map to nothing.
PO_TRANSITIONS: dict[POStatus, frozenset[POStatus]] = {
    POStatus.draft: frozenset({POStatus.sent, POStatus.cancelled}),
    POStatus.sent: frozenset({POStatus.partial, POStatus.received, POStatus.cancelled}),
    POStatus.partial: frozenset({POStatus.partial, POStatus.received, POStatus.cancelled}),
    POStatus.received: frozenset(),
    POStatus.cancelled: frozenset(),
}

# Statuses a goods receipt may be posted against
RECEIVABLE_PO_STATUSES = frozenset({POStatus.sent, POStatus.partial})

PAYABLE_TRANSITIONS: dict[PayableStatus, frozenset[PayableStatus]] = {
    PayableStatus.current: frozenset({PayableStatus.due_soon, PayableStatus.overdue, PayableStatus.paid}),
    PayableStatus.due_soon: frozenset({PayableStatus.overdue, PayableStatus.paid}),
    PayableStatus.overdue: frozenset({PayableStatus.paid}),
    PayableStatus.paid: frozenset(),
}


# counting may start implicitly; closing or cancelling ends the audit
AUDIT_TRANSITIONS: dict[AuditStatus, frozenset[AuditStatus]] = {
    AuditStatus.pending: frozenset({AuditStatus.in_progress, AuditStatus.completed, AuditStatus.cancelled}),
    AuditStatus.in_progress: frozenset({AuditStatus.completed, AuditStatus.cancelled}),
    AuditStatus.completed: frozenset(),
    AuditStatus.cancelled: frozenset(),
}


def can_transition(current: enum.Enum, target: enum.Enum) -> bool:
    if isinstance(current, POStatus):
        return target in PO_TRANSITIONS[current]
    if isinstance(current, PayableStatus):
        return target in PAYABLE_TRANSITIONS[current]
    if isinstance(current, AuditStatus):
        return target in AUDIT_TRANSITIONS[current]
    raise TypeError(f"No transition table for {type(current).__name__}")
