"""
Cancellation and refund payment lifecycles.

A cancellation is decided once (Approved or Rejected); an approved one then
moves to PartialRefund / Refunded as refund lines are paid.
"""

from estate_kernel.domain.workflow import Transition, Workflow

_PENDING = "Pending"
_APPROVED = "Approved"
_REJECTED = "Rejected"
_PARTIAL = "PartialRefund"
_REFUNDED = "Refunded"

CANCELLATION_WORKFLOW = Workflow(
    name="cancellation",
    description="Sale cancellation from request through refund completion",
    initial_state=_PENDING,
    states=(_PENDING, _APPROVED, _REJECTED, _PARTIAL, _REFUNDED),
    transitions=(
        Transition(_PENDING, _APPROVED, action="approve"),
        Transition(_PENDING, _REJECTED, action="reject"),
        Transition(_APPROVED, _PARTIAL, action="refund", posts_entry=True),
        Transition(_APPROVED, _REFUNDED, action="refund", posts_entry=True),
        Transition(_PARTIAL, _REFUNDED, action="refund", posts_entry=True),
    ),
    terminal_states=(_REJECTED, _REFUNDED),
)

_PAY_PENDING = "Pending"
_PAID = "Paid"
_VOID = "Cancelled"

REFUND_PAYMENT_WORKFLOW = Workflow(
    name="refund_payment",
    description="Payment of one approved refund line",
    initial_state=_PAY_PENDING,
    states=(_PAY_PENDING, _PAID, _VOID),
    transitions=(
        Transition(_PAY_PENDING, _PAID, action="pay", posts_entry=True),
        Transition(_PAY_PENDING, _VOID, action="void"),
    ),
    terminal_states=(_PAID, _VOID),
)
