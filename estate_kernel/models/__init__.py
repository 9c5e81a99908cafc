"""Kernel ORM models shared by every business module."""

from estate_kernel.models.approval import ApprovableMixin, ApprovalHistoryModel
from estate_kernel.models.ledger import LedgerEntryModel

__all__ = ["ApprovableMixin", "ApprovalHistoryModel", "LedgerEntryModel"]
