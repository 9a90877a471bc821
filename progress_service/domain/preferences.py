from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict

from progress_service.domain.entities import ProgressEvent
from progress_service.domain.enums import ProgressEventType


class NotificationPreferences(BaseModel):
    """Per-user switches applied to tracker output before delivery."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    goal_progress: bool = True
    goal_completion: bool = True
    goal_deadlines: bool = True
    budget_alerts: bool = True

    def allows(self, event_type: ProgressEventType) -> bool:
        if event_type == ProgressEventType.GOAL_PROGRESS:
            return self.goal_progress
        if event_type == ProgressEventType.GOAL_COMPLETED:
            return self.goal_completion
        if event_type in (
            ProgressEventType.GOAL_DEADLINE_APPROACHING,
            ProgressEventType.GOAL_OVERDUE,
        ):
            return self.goal_deadlines
        if event_type in (
            ProgressEventType.BUDGET_THRESHOLD,
            ProgressEventType.BUDGET_EXCEEDED,
        ):
            return self.budget_alerts
        return True


def filter_events(
    events: Iterable[ProgressEvent],
    preferences: NotificationPreferences,
) -> tuple[list[ProgressEvent], list[ProgressEvent]]:
    """Splits events into (delivered, suppressed), keeping their order."""
    delivered: list[ProgressEvent] = []
    suppressed: list[ProgressEvent] = []

    for event in events:
        if preferences.allows(event.type):
            delivered.append(event)
        else:
            suppressed.append(event)

    return delivered, suppressed
