"""
Cheque instrument lifecycle.

An open cheque ages by date (Pending -> Due Today -> Overdue) until the bank
settles it; Cleared, Bounced and Cancelled are final.
"""

from estate_kernel.domain.workflow import Guard, Transition, Workflow

REASON_GIVEN = Guard(
    name="reason_given",
    description="Bouncing or cancelling a cheque records why",
)

_PENDING = "Pending"
_DUE_TODAY = "Due Today"
_OVERDUE = "Overdue"
_CLEARED = "Cleared"
_BOUNCED = "Bounced"
_CANCELLED = "Cancelled"

_OPEN = (_PENDING, _DUE_TODAY, _OVERDUE)

CHEQUE_WORKFLOW = Workflow(
    name="cheque",
    description="Cheque from receipt of the instrument to bank settlement",
    initial_state=_PENDING,
    states=(_PENDING, _DUE_TODAY, _OVERDUE, _CLEARED, _BOUNCED, _CANCELLED),
    transitions=(
        Transition(_PENDING, _DUE_TODAY, action="fall_due"),
        Transition(_PENDING, _OVERDUE, action="lapse"),
        Transition(_DUE_TODAY, _OVERDUE, action="lapse"),
        # re-dating an open cheque
        Transition(_DUE_TODAY, _PENDING, action="redate"),
        Transition(_OVERDUE, _PENDING, action="redate"),
        Transition(_OVERDUE, _DUE_TODAY, action="redate"),
        *(Transition(state, _CLEARED, action="clear") for state in _OPEN),
        *(Transition(state, _BOUNCED, action="bounce", guard=REASON_GIVEN) for state in _OPEN),
        *(Transition(state, _CANCELLED, action="cancel", guard=REASON_GIVEN) for state in _OPEN),
    ),
    terminal_states=(_CLEARED, _BOUNCED, _CANCELLED),
)
