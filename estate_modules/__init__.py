"""
Estate modules: land, sales, installments, receipts, expenses and
cancellations, and the cheque register, each a service over the kernel with its own ORM tables.
"""

from estate_modules.context import EstateContext

__all__ = ["EstateContext"]
