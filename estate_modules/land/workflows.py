"""
Plot lifecycle.

Leaving Sold always reverts the sale's area (sold -> allocated) and clears
owner and sale date; entering Sold requires a client and sells the area.
"""

from estate_kernel.domain.workflow import Guard, Transition, Workflow

CLIENT_ASSIGNED = Guard(
    name="client_assigned",
    description="A client must be named when the plot is sold",
)

_AVAILABLE = "Available"
_RESERVED = "Reserved"
_SOLD = "Sold"
_BLOCKED = "Blocked"

PLOT_WORKFLOW = Workflow(
    name="plot",
    description="Plot availability lifecycle coupled to parcel area",
    initial_state=_AVAILABLE,
    states=(_AVAILABLE, _RESERVED, _SOLD, _BLOCKED),
    transitions=(
        Transition(_AVAILABLE, _RESERVED, action="reserve"),
        Transition(_AVAILABLE, _BLOCKED, action="block"),
        Transition(_AVAILABLE, _SOLD, action="sell", guard=CLIENT_ASSIGNED),
        Transition(_RESERVED, _AVAILABLE, action="release_reservation"),
        Transition(_RESERVED, _BLOCKED, action="block"),
        Transition(_RESERVED, _SOLD, action="sell", guard=CLIENT_ASSIGNED),
        Transition(_BLOCKED, _AVAILABLE, action="unblock"),
        Transition(_SOLD, _AVAILABLE, action="revert_sale"),
        Transition(_SOLD, _RESERVED, action="revert_sale"),
        Transition(_SOLD, _BLOCKED, action="revert_sale"),
    ),
)
