import logging
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import or_, select, update

from progress_service.domain import entities
from progress_service.domain.enums import GoalStatus
from progress_service.infrastructure.db import models
from progress_service.infrastructure.db.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

class GoalRepository(BaseRepository):
    """Goal persistence. Deleted goals are invisible to every read."""

    def _active(self):
        return select(models.Goal).where(models.Goal.is_deleted.is_(False))

    async def get_by_id(
        self,
        user_id: UUID,
        goal_id: UUID,
    ) -> models.Goal | None:
        result = await self.db.execute(
            self._active().where(
                models.Goal.id == goal_id,
                models.Goal.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_for_update(
        self,
        user_id: UUID,
        goal_id: UUID,
    ) -> models.Goal | None:
        """Locks the row until the surrounding transaction ends."""
        result = await self.db.execute(
            self._active()
            .where(
                models.Goal.id == goal_id,
                models.Goal.user_id == user_id,
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: UUID,
        status: GoalStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[models.Goal]:
        query = self._active().where(models.Goal.user_id == user_id)

        if status is not None:
            query = query.where(models.Goal.status == status.value)

        query = (
            query.order_by(models.Goal.target_date.asc(), models.Goal.id.asc())
            .limit(limit)
            .offset(offset)
        )

        result = await self.db.execute(query)
        return list(result.scalars().all())

    def create(self, goal: models.Goal) -> models.Goal:
        self.db.add(goal)
        return goal

    async def apply_snapshot(
        self,
        row: models.Goal,
        snapshot: entities.Goal,
    ) -> models.Goal:
        """Copies the tracker-owned fields of a snapshot onto the locked row."""
        row.current_amount = snapshot.current_amount
        row.status = snapshot.status.value
        row.completed_at = snapshot.completed_at
        row.updated_at = snapshot.updated_at
        await self._flush_versioned()
        return row

    async def soft_delete(self, row: models.Goal) -> None:
        row.is_deleted = True
        await self.db.flush()

    async def get_deadline_batch(
        self,
        today: date,
        warning_days: int,
        limit: int = 500,
        last_id: UUID | None = None,
    ) -> list[models.Goal]:
        """Open goals near or past their deadline that were not checked today."""
        query = (
            self._active()
            .where(
                models.Goal.status != GoalStatus.COMPLETED.value,
                models.Goal.target_date <= today + timedelta(days=warning_days),
                or_(
                    models.Goal.last_deadline_check.is_(None),
                    models.Goal.last_deadline_check < today,
                ),
            )
            .order_by(models.Goal.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )

        if last_id:
            query = query.where(models.Goal.id > last_id)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def mark_deadline_checked(
        self,
        goal_ids: list[UUID],
        today: date,
    ) -> None:
        if not goal_ids:
            return

        stmt = (
            update(models.Goal)
            .where(models.Goal.id.in_(goal_ids))
            .values(last_deadline_check=today)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
