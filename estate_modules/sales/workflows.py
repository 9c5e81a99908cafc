"""
Sale status lifecycle.

Active <-> Completed is driven by the stage recompute; the remaining moves
are explicit operations (hold, resume, cancel, reinstate).
"""

from estate_kernel.domain.workflow import Transition, Workflow

_ACTIVE = "Active"
_COMPLETED = "Completed"
_CANCELLED = "Cancelled"
_ON_HOLD = "OnHold"

SALE_WORKFLOW = Workflow(
    name="sale",
    description="Sale lifecycle from booking to completion or cancellation",
    initial_state=_ACTIVE,
    states=(_ACTIVE, _COMPLETED, _CANCELLED, _ON_HOLD),
    transitions=(
        Transition(_ACTIVE, _COMPLETED, action="complete"),
        Transition(_COMPLETED, _ACTIVE, action="reopen"),
        Transition(_ACTIVE, _ON_HOLD, action="hold"),
        Transition(_ON_HOLD, _ACTIVE, action="resume"),
        Transition(_ON_HOLD, _COMPLETED, action="complete"),
        Transition(_ACTIVE, _CANCELLED, action="cancel"),
        Transition(_ON_HOLD, _CANCELLED, action="cancel"),
        Transition(_COMPLETED, _CANCELLED, action="cancel"),
        Transition(_CANCELLED, _ACTIVE, action="reinstate"),
    ),
    terminal_states=(),
)
