"""Sales, clients and the per-sale stage account."""

from estate_modules.sales.models import (
    Client,
    Sale,
    SalesStats,
    SaleStatus,
    Stage,
    StageInput,
    StageName,
    StageStatus,
)
from estate_modules.sales.service import SalesService

__all__ = [
    "Client",
    "Sale",
    "SaleStatus",
    "SalesService",
    "SalesStats",
    "Stage",
    "StageInput",
    "StageName",
    "StageStatus",
]
