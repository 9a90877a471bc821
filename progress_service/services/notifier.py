import logging
from uuid import UUID

from progress_service.core import config, metrics
from progress_service.domain.entities import ProgressEvent
from progress_service.domain.enums import ProgressEventType
from progress_service.domain.preferences import NotificationPreferences, filter_events
from progress_service.infrastructure.db import models, uow
from progress_service.utils.serialization import recursive_normalize

logger = logging.getLogger(__name__)
settings = config.settings

GOAL_EVENTS = {
    ProgressEventType.GOAL_PROGRESS,
    ProgressEventType.GOAL_COMPLETED,
    ProgressEventType.GOAL_DEADLINE_APPROACHING,
    ProgressEventType.GOAL_OVERDUE,
}


def render_notification(event: ProgressEvent) -> tuple[str, str]:
    """Title and message shown to the user."""
    p = event.payload

    if event.type == ProgressEventType.GOAL_PROGRESS:
        return (
            "Goal progress updated",
            f"'{p['goalName']}' is at {p['progressPercentage']}% of its target.",
        )
    if event.type == ProgressEventType.GOAL_COMPLETED:
        return (
            "Goal completed",
            f"You reached your goal '{p['goalName']}'.",
        )
    if event.type == ProgressEventType.GOAL_DEADLINE_APPROACHING:
        return (
            "Goal deadline approaching",
            f"'{p['goalName']}' is due in {p['daysRemaining']} day(s), "
            f"{p['remainingAmount']} left to go.",
        )
    if event.type == ProgressEventType.GOAL_OVERDUE:
        return (
            "Goal overdue",
            f"'{p['goalName']}' passed its target date {p['daysOverdue']} day(s) ago.",
        )
    if event.type == ProgressEventType.BUDGET_THRESHOLD:
        return (
            "Budget threshold reached",
            f"'{p['budgetName']}' reached {p['threshold']}% of its limit.",
        )
    return (
        "Budget exceeded",
        f"'{p['budgetName']}' is over its limit by {p['overAmount']}.",
    )


class ProgressNotifier:
    """
    Forwards tracker output to the notification store and the outbox.

    Runs inside the caller's unit of work, so the snapshot, the notifications
    and the outbox rows are committed together.
    """

    def __init__(self, uow_progress: uow.UnitOfWork):
        self.uow = uow_progress

    async def get_preferences(self, user_id: UUID) -> NotificationPreferences:
        row = await self.uow.notifications.get_preferences(user_id)
        if row is None:
            return NotificationPreferences()
        return NotificationPreferences.model_validate(row)

    async def dispatch(self, events: list[ProgressEvent]) -> list[ProgressEvent]:
        """Returns the events that survived the preference filter."""
        if not events:
            return []

        by_user: dict[UUID, list[ProgressEvent]] = {}
        for event in events:
            by_user.setdefault(event.user_id, []).append(event)

        delivered: list[ProgressEvent] = []

        for user_id, user_events in by_user.items():
            preferences = await self.get_preferences(user_id)
            allowed, suppressed = filter_events(user_events, preferences)
            delivered.extend(allowed)

            for event in suppressed:
                metrics.NOTIFICATIONS_SUPPRESSED_TOTAL.labels(type=event.type.value).inc()
                logger.debug(
                    "Event %s for %s suppressed by preferences",
                    event.type.value,
                    event.entity_id,
                )

        if not delivered:
            return []

        notifications = []
        outbox_events = []

        for event in delivered:
            title, message = render_notification(event)
            is_goal_event = event.type in GOAL_EVENTS
            data = {
                ("goalId" if is_goal_event else "budgetId"): event.entity_id,
                **event.payload,
            }

            notifications.append(
                models.Notification(
                    user_id=event.user_id,
                    type=event.type.value,
                    priority=event.priority.value,
                    entity_id=event.entity_id,
                    goal_id=event.entity_id if is_goal_event else None,
                    budget_id=None if is_goal_event else event.entity_id,
                    title=title,
                    message=message,
                    data=recursive_normalize(data),
                    created_at=event.occurred_at,
                )
            )
            outbox_events.append(
                {
                    "topic": settings.KAFKA.KAFKA_TOPIC_PROGRESS_EVENTS,
                    "payload": {
                        "event_type": event.type.value,
                        "user_id": event.user_id,
                        "entity_id": event.entity_id,
                        "priority": event.priority.value,
                        "occurred_at": event.occurred_at,
                        "data": event.payload,
                    },
                }
            )

        self.uow.notifications.add_many(notifications)
        await self.uow.outbox.add_events(outbox_events)

        return delivered
