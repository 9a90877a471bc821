import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from progress_service.core import config, exceptions, metrics
from progress_service.domain import mappers
from progress_service.domain.entities import ProgressEvent
from progress_service.domain.enums import GoalStatus, ProgressEventType
from progress_service.domain.schemas import api as api_schemas
from progress_service.domain.tracker import ProgressTracker, TrackerConfig
from progress_service.infrastructure.db import models, uow
from progress_service.services.notifier import ProgressNotifier
from progress_service.utils.time import utc_now

logger = logging.getLogger(__name__)
settings = config.settings


def default_tracker() -> ProgressTracker:
    return ProgressTracker(TrackerConfig.from_settings(settings.TRACKER))


class GoalService:
    """Savings goals: CRUD plus progress and deadline tracking."""

    def __init__(
        self,
        uow_progress: uow.UnitOfWork,
        tracker: ProgressTracker | None = None,
    ):
        self.uow = uow_progress
        self.tracker = tracker or default_tracker()
        self.notifier = ProgressNotifier(uow_progress)

    async def create_goal(
        self,
        user_id: UUID,
        request: api_schemas.CreateGoalRequest,
    ) -> api_schemas.CreateGoalResponse:
        now = utc_now()
        if request.target_date < now.date():
            raise exceptions.InvalidArgumentError("Target date cannot be in the past")

        goal = models.Goal(
            id=uuid4(),
            user_id=user_id,
            name=request.name.strip(),
            description=request.description,
            target_amount=request.target_amount,
            current_amount=Decimal("0"),
            currency=request.currency.upper(),
            target_date=request.target_date,
            category=request.category.value,
            status=GoalStatus.NOT_STARTED.value,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )

        async with self.uow:
            self.uow.goals.create(goal)

        metrics.GOALS_CREATED_TOTAL.inc()
        logger.info("Goal %s created for user %s", goal.id, user_id)
        return api_schemas.CreateGoalResponse(goal_id=goal.id)

    async def get_goal(
        self,
        user_id: UUID,
        goal_id: UUID,
    ) -> api_schemas.GoalResponse:
        async with self.uow:
            row = await self.uow.goals.get_by_id(user_id, goal_id)
            if not row:
                raise exceptions.GoalNotFoundError("Goal not found")
            goal = mappers.goal_to_entity(row)

        return mappers.goal_to_response(goal, utc_now())

    async def list_goals(
        self,
        user_id: UUID,
        status: GoalStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[api_schemas.GoalResponse]:
        async with self.uow:
            rows = await self.uow.goals.list_for_user(
                user_id,
                status=status,
                limit=limit,
                offset=offset,
            )
            goals = [mappers.goal_to_entity(row) for row in rows]

        now = utc_now()
        return [mappers.goal_to_response(goal, now) for goal in goals]

    async def update_progress(
        self,
        user_id: UUID,
        goal_id: UUID,
        new_amount: Decimal,
    ) -> api_schemas.GoalProgressResponse:
        now = utc_now()

        async with self.uow:
            row = await self.uow.goals.get_for_update(user_id, goal_id)
            if not row:
                raise exceptions.GoalNotFoundError("Goal not found")

            goal = mappers.goal_to_entity(row)
            updated, events = self.tracker.update_progress(goal, new_amount, now)

            if events:
                await self.uow.goals.apply_snapshot(row, updated)
                await self.notifier.dispatch(events)

        metrics.record_progress_events(events)

        if any(e.type == ProgressEventType.GOAL_COMPLETED for e in events):
            duration = (now - goal.created_at).total_seconds()
            metrics.GOAL_ACHIEVEMENT_TIME.observe(duration)
            logger.info("Goal %s achieved", goal_id)

        return api_schemas.GoalProgressResponse(
            goal=mappers.goal_to_response(updated, now),
            events=[mappers.event_to_response(e) for e in events],
        )

    async def delete_goal(
        self,
        user_id: UUID,
        goal_id: UUID,
    ) -> None:
        async with self.uow:
            row = await self.uow.goals.get_for_update(user_id, goal_id)
            if not row:
                raise exceptions.GoalNotFoundError("Goal not found")
            await self.uow.goals.soft_delete(row)

        logger.info("Goal %s deleted", goal_id)

    async def check_deadlines(
        self,
        now: datetime | None = None,
    ) -> api_schemas.DeadlineCheckResponse:
        """
        Runs the deadline check over every open goal that is near or past its
        target date. A goal is checked at most once per UTC day.
        """
        now = now or utc_now()
        today = now.date()
        batch_size = settings.TRACKER.DEADLINE_BATCH_SIZE
        last_id: UUID | None = None

        checked = 0
        overdue = 0
        emitted = 0

        logger.info("Starting deadline check for %s", today)

        while True:
            batch_events: list[ProgressEvent] = []

            async with self.uow:
                batch = await self.uow.goals.get_deadline_batch(
                    today=today,
                    warning_days=self.tracker.config.deadline_warning_days,
                    limit=batch_size,
                    last_id=last_id,
                )

                if not batch:
                    break

                last_id = batch[-1].id

                for row in batch:
                    goal = mappers.goal_to_entity(row)
                    updated, events = self.tracker.check_deadlines(goal, now)

                    if updated.status != goal.status:
                        await self.uow.goals.apply_snapshot(row, updated)
                    if updated.status == GoalStatus.OVERDUE:
                        overdue += 1

                    batch_events.extend(events)

                await self.notifier.dispatch(batch_events)
                await self.uow.goals.mark_deadline_checked(
                    [row.id for row in batch],
                    today,
                )

            checked += len(batch)
            emitted += len(batch_events)
            metrics.record_progress_events(batch_events)

            logger.info(
                "Processed batch of %s goals, %s events",
                len(batch),
                len(batch_events),
            )

        return api_schemas.DeadlineCheckResponse(
            checked_goals=checked,
            overdue_goals=overdue,
            events_emitted=emitted,
        )
