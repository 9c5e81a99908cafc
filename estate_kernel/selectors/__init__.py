from estate_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["LedgerSelector"]
