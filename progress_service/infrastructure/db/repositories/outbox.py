import logging
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, insert, or_, select

from progress_service.core.context import get_request_id
from progress_service.infrastructure.db import models
from progress_service.infrastructure.db.repositories.base import BaseRepository
from progress_service.utils import serialization
from progress_service.utils.time import utc_now

logger = logging.getLogger(__name__)

class OutboxRepository(BaseRepository):
    def _prepare_outbox_event(
        self,
        topic: str,
        event_data: dict,
    ) -> dict:
        event_type = event_data.get("event_type", "unknown")
        clean_payload = serialization.recursive_normalize(event_data)

        return {
            "event_id": uuid4(),
            "topic": topic,
            "event_type": event_type,
            "payload": clean_payload,
            "status": "pending",
            "retry_count": 0,
            "created_at": utc_now(),
            "trace_id": get_request_id(),
            "next_retry_at": None,
        }

    async def add_events(
        self,
        events: list[dict[str, Any]],
    ) -> None:
        if not events:
            return

        clean_events = [
            self._prepare_outbox_event(e["topic"], e["payload"])
            for e in events
        ]

        await self.db.execute(insert(models.OutboxEvent).values(clean_events))

    async def get_pending_events(
        self,
        limit: int = 100,
    ) -> list[models.OutboxEvent]:
        """Events ready to be sent."""
        now = utc_now()

        query = (
            select(models.OutboxEvent)
            .where(
                models.OutboxEvent.status == "pending",
                or_(
                    models.OutboxEvent.next_retry_at.is_(None),
                    models.OutboxEvent.next_retry_at <= now,
                ),
            )
            .order_by(models.OutboxEvent.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def delete_events(
        self,
        event_ids: list[UUID],
    ) -> None:
        if not event_ids:
            return

        await self.db.execute(
            delete(models.OutboxEvent).where(
                models.OutboxEvent.event_id.in_(event_ids)
            )
        )
