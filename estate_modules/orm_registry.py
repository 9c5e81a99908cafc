"""
Module ORM registry (``estate_modules.orm_registry``).

Imports every ``estate_modules.*.orm`` module so ``Base.metadata`` holds
the full schema before ``create_tables()`` runs.  Idempotent.
"""


def import_all_orm_models() -> None:
    # Kernel tables first: module tables carry no FKs into them, but the
    # listeners in estate_kernel.db.immutability resolve kernel models.
    import estate_kernel.models  # noqa: F401
    import estate_kernel.services.sequence_service  # noqa: F401  # counter table
    # fmt: off
    import estate_modules.land.orm  # noqa: F401
    import estate_modules.sales.orm  # noqa: F401
    import estate_modules.installments.orm  # noqa: F401
    import estate_modules.receipts.orm  # noqa: F401
    import estate_modules.expenses.orm  # noqa: F401
    import estate_modules.cancellations.orm  # noqa: F401
    import estate_modules.cheques.orm  # noqa: F401
    # fmt: on
