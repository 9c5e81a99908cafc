"""Cheque register: instruments, date-driven status and bank settlement."""

from estate_modules.cheques.models import Cheque, ChequeStats, ChequeStatus, ChequeType
from estate_modules.cheques.service import ChequeService

__all__ = ["Cheque", "ChequeService", "ChequeStats", "ChequeStatus", "ChequeType"]
