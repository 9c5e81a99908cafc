"""
Estate kernel: persistence, transaction boundary, approvals and ledger.

The kernel knows nothing about plots, sales or cancellations; business
modules in ``estate_modules`` build on it.
"""
