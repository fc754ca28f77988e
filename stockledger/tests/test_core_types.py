import pytest

from stockledger.app.db.models.core_types import (
    AUDIT_TRANSITIONS,
    PAYABLE_TRANSITIONS,
    PO_TRANSITIONS,
    AuditStatus,
    MovementType,
    PayableStatus,
    POStatus,
    can_transition,
)


def test_every_status_has_a_transition_entry():
    assert set(PO_TRANSITIONS) == set(POStatus)
    assert set(PAYABLE_TRANSITIONS) == set(PayableStatus)


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (POStatus.draft, POStatus.sent, True),
        (POStatus.draft, POStatus.received, False),
        (POStatus.sent, POStatus.partial, True),
        (POStatus.partial, POStatus.partial, True),
        (POStatus.partial, POStatus.received, True),
        (POStatus.received, POStatus.cancelled, False),
        (POStatus.cancelled, POStatus.draft, False),
        (PayableStatus.current, PayableStatus.due_soon, True),
        (PayableStatus.overdue, PayableStatus.current, False),
        (PayableStatus.due_soon, PayableStatus.paid, True),
        (PayableStatus.paid, PayableStatus.current, False),
    ],
)
def test_can_transition(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_unknown_enum_has_no_transitions():
    with pytest.raises(TypeError):
        can_transition(MovementType.inbound, MovementType.outbound)


def test_audit_lifecycle_transitions():
    assert set(AUDIT_TRANSITIONS) == set(AuditStatus)
    assert can_transition(AuditStatus.pending, AuditStatus.in_progress)
    assert can_transition(AuditStatus.in_progress, AuditStatus.completed)
    assert not can_transition(AuditStatus.in_progress, AuditStatus.pending)
    assert not can_transition(AuditStatus.completed, AuditStatus.cancelled)
