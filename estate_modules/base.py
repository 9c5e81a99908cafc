"""
Shared plumbing for module services.

Every public service method opens ``self._uow(...)``; helpers documented
as running "inside the caller's unit of work" do not, so services can
compose them into one all-or-nothing operation.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, TypeVar
from uuid import UUID

from sqlalchemy import select

from estate_kernel.db.base import Base
from estate_kernel.domain.approval import Actor, Role
from estate_kernel.domain.events import AuditRecord
from estate_kernel.exceptions import NotFoundError
from estate_kernel.logging_config import LogContext
from estate_kernel.services.unit_of_work import UnitOfWork
from estate_modules.context import EstateContext

ModelT = TypeVar("ModelT", bound=Base)


class ModuleService:
    def __init__(self, ctx: EstateContext):
        self._ctx = ctx
        self._session = ctx.session
        self._clock = ctx.clock
        self._settings = ctx.settings

    @contextmanager
    def _uow(self, operation: str, actor: Actor | None = None) -> Iterator[UnitOfWork]:
        binding: dict[str, Any] = {}
        if actor is not None:
            binding = {"actor_id": actor.actor_id, "actor_role": actor.role.value}
        with LogContext.bind(**binding):
            with self._ctx.unit_of_work(operation) as uow:
                yield uow

    def _get(self, model: type[ModelT], entity_id: UUID, entity_type: str) -> ModelT:
        obj = self._session.get(model, entity_id)
        if obj is None or getattr(obj, "is_deleted", False):
            raise NotFoundError(entity_type, entity_id)
        return obj

    def _get_for_update(self, model: type[ModelT], entity_id: UUID, entity_type: str) -> ModelT:
        """Row-locked, freshly loaded instance (FOR UPDATE where supported)."""
        obj = self._session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if obj is None or getattr(obj, "is_deleted", False):
            raise NotFoundError(entity_type, entity_id)
        return obj

    def _audit(
        self,
        uow: UnitOfWork,
        actor: Actor | None,
        action: str,
        entity_type: str,
        entity_id: object,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> None:
        uow.audit(
            AuditRecord(
                actor_id=actor.actor_id if actor else None,
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                occurred_at=self._clock.now(),
                before=before or {},
                after=after or {},
            )
        )


# Identity used by scheduled sweeps (no human actor).
SYSTEM_ACTOR = Actor(actor_id=UUID(int=0), role=Role.ADMIN)
