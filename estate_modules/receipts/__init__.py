"""Client receipts and their approval."""

from estate_modules.receipts.models import Receipt
from estate_modules.receipts.service import ReceiptService

__all__ = ["Receipt", "ReceiptService"]
