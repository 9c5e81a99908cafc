"""
Read-only selectors (the query side of the engine).

Selectors take the caller's Session, never add, flush, delete or commit,
and return frozen dataclasses rather than ORM instances.  Reporting reads
run concurrently with writes without extra coordination.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    def __init__(self, session: Session):
        self.session = session
