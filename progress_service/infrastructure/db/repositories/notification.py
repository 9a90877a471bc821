from uuid import UUID

from sqlalchemy import select

from progress_service.domain.enums import ProgressEventType
from progress_service.infrastructure.db import models
from progress_service.infrastructure.db.repositories.base import BaseRepository
from progress_service.utils.time import utc_now

class NotificationRepository(BaseRepository):
    def add_many(self, notifications: list[models.Notification]) -> None:
        self.db.add_all(notifications)

    async def list_for_user(
        self,
        user_id: UUID,
        event_type: ProgressEventType | None = None,
        goal_id: UUID | None = None,
        budget_id: UUID | None = None,
        unread_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[models.Notification]:
        query = select(models.Notification).where(
            models.Notification.user_id == user_id
        )

        if event_type is not None:
            query = query.where(models.Notification.type == event_type.value)
        if goal_id is not None:
            query = query.where(models.Notification.goal_id == goal_id)
        if budget_id is not None:
            query = query.where(models.Notification.budget_id == budget_id)
        if unread_only:
            query = query.where(models.Notification.is_read.is_(False))

        query = (
            query.order_by(
                models.Notification.created_at.desc(),
                models.Notification.id.asc(),
            )
            .limit(limit)
            .offset(offset)
        )

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_by_id(
        self,
        user_id: UUID,
        notification_id: UUID,
    ) -> models.Notification | None:
        result = await self.db.execute(
            select(models.Notification).where(
                models.Notification.id == notification_id,
                models.Notification.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def mark_as_read(self, notification: models.Notification) -> models.Notification:
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utc_now()
            await self.db.flush()
        return notification

    async def delete(self, notification: models.Notification) -> None:
        await self.db.delete(notification)
        await self.db.flush()

    async def get_preferences(
        self,
        user_id: UUID,
    ) -> models.NotificationPreference | None:
        return await self.db.get(models.NotificationPreference, user_id)

    async def save_preferences(
        self,
        user_id: UUID,
        values: dict,
    ) -> models.NotificationPreference:
        row = await self.get_preferences(user_id)

        if row is None:
            row = models.NotificationPreference(user_id=user_id, **values)
            self.db.add(row)
        else:
            for field, value in values.items():
                setattr(row, field, value)
            row.updated_at = utc_now()

        await self.db.flush()
        return row
