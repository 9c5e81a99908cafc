"""
Post-write invariant checks.

Services call ``ensure`` after flushing a change whose consistency the
engines already guarantee.  A failure here means a bug or out-of-band
write: it is logged at CRITICAL and raised as FatalInvariantError so the
unit of work rolls back.  Nothing is ever corrected silently.
"""

from enum import Enum, unique
from typing import Any

from estate_kernel.exceptions import FatalInvariantError
from estate_kernel.logging_config import get_logger

logger = get_logger("invariants")


@unique
class EstateInvariant(str, Enum):
    PARCEL_AREA_BALANCE = "parcel_area_balance"
    PLOT_OWNERSHIP = "plot_ownership"
    SALE_TOTALS = "sale_totals"
    LEDGER_BALANCE = "ledger_balance"
    SINGLE_POSTING = "single_posting"


def ensure(condition: bool, invariant: EstateInvariant, message: str, **details: Any) -> None:
    if condition:
        return
    logger.critical(
        "invariant_violated",
        extra={"invariant": invariant.value, "detail": message, **{k: str(v) for k, v in details.items()}},
    )
    raise FatalInvariantError(invariant.value, message, **details)
