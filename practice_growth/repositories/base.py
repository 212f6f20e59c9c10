"""Organization-scoped repository base.

Every query a repository issues is filtered by ``organization_id``; a row
belonging to another tenant is indistinguishable from a missing row.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Generic, Iterable, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OrgScopedRepository(Generic[T]):
    """Common CRUD plus a compare-and-set status update."""

    model_class: type[T]

    def __init__(self, session: Session):
        self.session = session

    def get(self, org_id: UUID, entity_id: UUID) -> T | None:
        return self.session.scalar(
            select(self.model_class).where(
                self.model_class.id == entity_id,
                self.model_class.organization_id == org_id,
            )
        )

    def list(
        self,
        org_id: UUID,
        *criteria,
        order_by: Sequence[Any] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[T]:
        stmt = select(self.model_class).where(
            self.model_class.organization_id == org_id, *criteria
        )
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt).all())

    def count(self, org_id: UUID, *criteria) -> int:
        return (
            self.session.scalar(
                select(func.count())
                .select_from(self.model_class)
                .where(self.model_class.organization_id == org_id, *criteria)
            )
            or 0
        )

    def add(self, entity: T) -> T:
        self.session.add(entity)
        self.session.flush()
        logger.debug("Created %s id=%s", self.model_class.__name__, entity.id)
        return entity

    def compare_and_set(
        self,
        org_id: UUID,
        entity_id: UUID,
        expected_statuses: Iterable[str],
        values: dict[str, Any],
    ) -> bool:
        """Apply ``values`` only if the row's status is still one of ``expected_statuses``.

        Issues a single guarded UPDATE; the affected row count decides
        whether this caller won the transition. Concurrent callers racing
        on the same row see exactly one winner.
        """
        self.session.flush()
        result = self.session.execute(
            update(self.model_class)
            .where(
                self.model_class.id == entity_id,
                self.model_class.organization_id == org_id,
                self.model_class.status.in_(list(expected_statuses)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self._expire(entity_id, ["status", *values])
        won = result.rowcount == 1
        if not won:
            logger.info(
                "Guarded update lost %s id=%s expected=%s",
                self.model_class.__name__,
                entity_id,
                list(expected_statuses),
            )
        return won

    def increment(self, org_id: UUID, entity_id: UUID, **deltas: Any) -> bool:
        """Add ``deltas`` to counter columns in SQL (``col = col + n``)."""
        self.session.flush()
        values = {
            name: getattr(self.model_class, name) + delta for name, delta in deltas.items()
        }
        result = self.session.execute(
            update(self.model_class)
            .where(
                self.model_class.id == entity_id,
                self.model_class.organization_id == org_id,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self._expire(entity_id, list(deltas))
        return result.rowcount == 1

    def _expire(self, entity_id: UUID, attributes: list[str]) -> None:
        instance = self.session.identity_map.get(identity_key(self.model_class, entity_id))
        if instance is not None:
            self.session.expire(instance, list(dict.fromkeys(attributes)))


def in_window(column, start: datetime | None, end: datetime | None) -> list:
    """Build ``start <= column <= end`` criteria, skipping open bounds."""
    criteria = []
    if start is not None:
        criteria.append(column >= start)
    if end is not None:
        criteria.append(column <= end)
    return criteria
