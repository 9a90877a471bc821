import logging
from uuid import UUID

from progress_service.core import exceptions
from progress_service.domain import mappers
from progress_service.domain.enums import ProgressEventType
from progress_service.domain.schemas import api as api_schemas
from progress_service.infrastructure.db import uow

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, uow_progress: uow.UnitOfWork):
        self.uow = uow_progress

    async def list_notifications(
        self,
        user_id: UUID,
        event_type: ProgressEventType | None = None,
        goal_id: UUID | None = None,
        budget_id: UUID | None = None,
        unread_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> api_schemas.NotificationListResponse:
        async with self.uow:
            rows = await self.uow.notifications.list_for_user(
                user_id,
                event_type=event_type,
                goal_id=goal_id,
                budget_id=budget_id,
                unread_only=unread_only,
                limit=limit,
                offset=offset,
            )
            data = [mappers.notification_to_response(row) for row in rows]

        return api_schemas.NotificationListResponse(data=data)

    async def mark_as_read(
        self,
        user_id: UUID,
        notification_id: UUID,
    ) -> api_schemas.NotificationResponse:
        async with self.uow:
            row = await self.uow.notifications.get_by_id(user_id, notification_id)
            if not row:
                raise exceptions.NotificationNotFoundError("Notification not found")

            row = await self.uow.notifications.mark_as_read(row)
            response = mappers.notification_to_response(row)

        return response

    async def delete_notification(
        self,
        user_id: UUID,
        notification_id: UUID,
    ) -> None:
        async with self.uow:
            row = await self.uow.notifications.get_by_id(user_id, notification_id)
            if not row:
                raise exceptions.NotificationNotFoundError("Notification not found")

            await self.uow.notifications.delete(row)

        logger.info("Notification %s deleted", notification_id)

    async def get_preferences(
        self,
        user_id: UUID,
    ) -> api_schemas.NotificationPreferencesSchema:
        async with self.uow:
            row = await self.uow.notifications.get_preferences(user_id)

            if row is None:
                return api_schemas.NotificationPreferencesSchema()

            return api_schemas.NotificationPreferencesSchema.model_validate(row)

    async def update_preferences(
        self,
        user_id: UUID,
        request: api_schemas.NotificationPreferencesSchema,
    ) -> api_schemas.NotificationPreferencesSchema:
        async with self.uow:
            row = await self.uow.notifications.save_preferences(
                user_id,
                request.model_dump(),
            )
            response = api_schemas.NotificationPreferencesSchema.model_validate(row)

        logger.info("Notification preferences updated for user %s", user_id)
        return response
