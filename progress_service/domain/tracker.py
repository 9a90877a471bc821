"""
Goal and budget progress tracking.

Every function here is pure: it takes a snapshot plus the change and returns
a new snapshot together with the ordered list of events to emit. Loading,
locking, persisting and delivering events is the caller's job.
"""
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from progress_service.core.config import TrackerSettings
from progress_service.core.exceptions import InvalidArgumentError
from progress_service.domain.entities import (
    BUDGET_AMOUNT_PLACES,
    GOAL_AMOUNT_PLACES,
    Budget,
    Goal,
    ProgressEvent,
    fits_scale,
    percentage_of,
)
from progress_service.domain.enums import (
    BudgetStatus,
    EventPriority,
    GoalStatus,
    ProgressEventType,
)

EXCEEDED_THRESHOLD = Decimal("100")


class TrackerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    deadline_warning_days: int = 3
    budget_thresholds: tuple[Decimal, ...] = (Decimal("80"), Decimal("100"))
    on_track_percentage: Decimal | None = None
    at_risk_days: int | None = None

    @classmethod
    def from_settings(cls, tracker_settings: TrackerSettings) -> "TrackerConfig":
        return cls(
            deadline_warning_days=tracker_settings.DEADLINE_WARNING_DAYS,
            budget_thresholds=tuple(tracker_settings.BUDGET_THRESHOLDS),
            on_track_percentage=tracker_settings.ON_TRACK_PERCENTAGE,
            at_risk_days=tracker_settings.AT_RISK_DAYS,
        )


def _check_scale(amount: Decimal, places: int, field: str) -> None:
    if not fits_scale(amount, places):
        raise InvalidArgumentError(
            f"{field} cannot have more than {places} decimal places"
        )


def _validate_amount(amount: Decimal, field: str, places: int) -> Decimal:
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    if not amount.is_finite():
        raise InvalidArgumentError(f"{field} must be a finite number")
    if amount < 0:
        raise InvalidArgumentError(f"{field} cannot be negative")
    _check_scale(amount, places, field)
    return amount


def _days_until(target_date: date, now: datetime) -> int:
    return (target_date - now.date()).days


class ProgressTracker:
    """Stateless goal/budget state machine."""

    def __init__(self, config: TrackerConfig | None = None):
        self.config = config or TrackerConfig()

    def goal_status(
        self,
        current_amount: Decimal,
        target_amount: Decimal,
        target_date: date,
        now: datetime,
    ) -> GoalStatus:
        if current_amount >= target_amount:
            return GoalStatus.COMPLETED

        days_left = _days_until(target_date, now)
        if days_left < 0:
            return GoalStatus.OVERDUE

        if current_amount <= 0:
            return GoalStatus.NOT_STARTED

        percentage = percentage_of(current_amount, target_amount)
        on_track = self.config.on_track_percentage
        if on_track is not None and percentage >= on_track:
            return GoalStatus.ON_TRACK

        if self.config.at_risk_days is not None and days_left <= self.config.at_risk_days:
            return GoalStatus.AT_RISK

        return GoalStatus.IN_PROGRESS

    def update_progress(
        self,
        goal: Goal,
        new_amount: Decimal,
        now: datetime,
    ) -> tuple[Goal, list[ProgressEvent]]:
        new_amount = _validate_amount(new_amount, "Progress amount", GOAL_AMOUNT_PLACES)

        if goal.is_completed:
            return goal, []

        status = self.goal_status(new_amount, goal.target_amount, goal.target_date, now)
        completed = status == GoalStatus.COMPLETED

        changes = {
            "current_amount": min(new_amount, goal.target_amount) if completed else new_amount,
            "status": status,
            "updated_at": now,
        }
        if completed and goal.completed_at is None:
            changes["completed_at"] = now

        updated = goal.model_copy(update=changes)

        events = [
            ProgressEvent(
                type=ProgressEventType.GOAL_PROGRESS,
                user_id=goal.user_id,
                entity_id=goal.id,
                priority=EventPriority.MEDIUM,
                occurred_at=now,
                payload={
                    "goalName": goal.name,
                    "previousAmount": goal.current_amount,
                    "currentAmount": new_amount,
                    "progressPercentage": percentage_of(new_amount, goal.target_amount),
                    "isCompleted": completed,
                },
            )
        ]

        if completed:
            events.append(
                ProgressEvent(
                    type=ProgressEventType.GOAL_COMPLETED,
                    user_id=goal.user_id,
                    entity_id=goal.id,
                    priority=EventPriority.HIGH,
                    occurred_at=now,
                    payload={
                        "goalName": goal.name,
                        "targetAmount": goal.target_amount,
                        "achievedAmount": new_amount,
                        "completedAt": updated.completed_at,
                    },
                )
            )

        return updated, events

    def check_deadlines(
        self,
        goal: Goal,
        now: datetime,
    ) -> tuple[Goal, list[ProgressEvent]]:
        if goal.is_completed:
            return goal, []

        days_left = _days_until(goal.target_date, now)
        base_payload = {
            "goalName": goal.name,
            "targetDate": goal.target_date,
            "currentProgress": goal.progress_percentage,
            "remainingAmount": goal.remaining_amount,
        }

        if days_left < 0:
            updated = goal
            if goal.status != GoalStatus.OVERDUE:
                updated = goal.model_copy(
                    update={"status": GoalStatus.OVERDUE, "updated_at": now}
                )
            event = ProgressEvent(
                type=ProgressEventType.GOAL_OVERDUE,
                user_id=goal.user_id,
                entity_id=goal.id,
                priority=EventPriority.HIGH,
                occurred_at=now,
                payload={**base_payload, "daysOverdue": -days_left},
            )
            return updated, [event]

        if days_left <= self.config.deadline_warning_days:
            event = ProgressEvent(
                type=ProgressEventType.GOAL_DEADLINE_APPROACHING,
                user_id=goal.user_id,
                entity_id=goal.id,
                priority=EventPriority.HIGH,
                occurred_at=now,
                payload={**base_payload, "daysRemaining": days_left},
            )
            return goal, [event]

        return goal, []

    def update_budget_spending(
        self,
        budget: Budget,
        category: str | None,
        delta: Decimal,
        now: datetime,
    ) -> tuple[Budget, list[ProgressEvent]]:
        if not isinstance(delta, Decimal):
            delta = Decimal(str(delta))
        if not delta.is_finite():
            raise InvalidArgumentError("Spending delta must be a finite number")
        _check_scale(delta, BUDGET_AMOUNT_PLACES, "Spending delta")

        new_spent = budget.spent_amount + delta
        if new_spent < 0:
            raise InvalidArgumentError("Budget spent amount cannot become negative")

        categories = budget.categories
        if category is not None:
            target = budget.find_category(category)
            if target is None:
                raise InvalidArgumentError(f"Budget has no category '{category}'")

            new_category_spent = target.spent_amount + delta
            if new_category_spent < 0:
                raise InvalidArgumentError(
                    f"Spent amount of category '{category}' cannot become negative"
                )

            categories = tuple(
                c.model_copy(update={"spent_amount": new_category_spent})
                if c.name == category
                else c
                for c in budget.categories
            )

        updated = budget.model_copy(
            update={
                "spent_amount": new_spent,
                "categories": categories,
                "updated_at": now,
            }
        )

        return updated, self._budget_events(budget, updated, category, now)

    def update_budget_total(
        self,
        budget: Budget,
        total_amount: Decimal,
        now: datetime,
    ) -> tuple[Budget, list[ProgressEvent]]:
        """Changes the budget total and reports thresholds the new total crosses."""
        total_amount = _validate_amount(total_amount, "Budget total", BUDGET_AMOUNT_PLACES)

        updated = budget.model_copy(
            update={"total_amount": total_amount, "updated_at": now}
        )

        return updated, self._budget_events(budget, updated, None, now)

    def _budget_events(
        self,
        before: Budget,
        after: Budget,
        category: str | None,
        now: datetime,
    ) -> list[ProgressEvent]:
        # Crossings are decided on the exact ratio; payloads carry rounded values.
        previous_ratio = before.spent_ratio
        current_ratio = after.spent_ratio
        previous_pct = before.spent_percentage
        current_pct = after.spent_percentage
        events: list[ProgressEvent] = []

        for threshold in self.config.budget_thresholds:
            if previous_ratio < threshold <= current_ratio:
                events.append(
                    ProgressEvent(
                        type=ProgressEventType.BUDGET_THRESHOLD,
                        user_id=after.user_id,
                        entity_id=after.id,
                        priority=(
                            EventPriority.HIGH
                            if threshold >= EXCEEDED_THRESHOLD
                            else EventPriority.MEDIUM
                        ),
                        occurred_at=now,
                        payload={
                            "budgetName": after.name,
                            "category": category,
                            "threshold": threshold,
                            "previousPercentage": previous_pct,
                            "spentPercentage": current_pct,
                            "spentAmount": after.spent_amount,
                            "totalAmount": after.total_amount,
                        },
                    )
                )

        was_within = before.spent_amount <= before.total_amount
        if was_within and after.spent_amount > after.total_amount:
            events.append(
                ProgressEvent(
                    type=ProgressEventType.BUDGET_EXCEEDED,
                    user_id=after.user_id,
                    entity_id=after.id,
                    priority=EventPriority.HIGH,
                    occurred_at=now,
                    payload={
                        "budgetName": after.name,
                        "category": category,
                        "spentAmount": after.spent_amount,
                        "totalAmount": after.total_amount,
                        "overAmount": after.spent_amount - after.total_amount,
                        "spentPercentage": current_pct,
                    },
                )
            )

        return events

    def close_budget_period(self, budget: Budget, now: datetime) -> Budget:
        if budget.status == BudgetStatus.ACTIVE and now.date() > budget.end_date:
            return budget.model_copy(
                update={"status": BudgetStatus.COMPLETED, "updated_at": now}
            )
        return budget
