from datetime import datetime

from progress_service.domain import entities
from progress_service.domain.enums import (
    BudgetPeriod,
    BudgetStatus,
    EventPriority,
    GoalCategory,
    GoalStatus,
    ProgressEventType,
)
from progress_service.domain.schemas import api as api_schemas
from progress_service.infrastructure.db import models
from progress_service.utils.serialization import recursive_normalize
from progress_service.utils.time import as_utc


def goal_to_entity(goal: models.Goal) -> entities.Goal:
    """ORM -> immutable snapshot."""
    return entities.Goal(
        id=goal.id,
        user_id=goal.user_id,
        name=goal.name,
        description=goal.description,
        target_amount=goal.target_amount,
        current_amount=goal.current_amount,
        target_date=goal.target_date,
        category=GoalCategory(goal.category),
        status=GoalStatus(goal.status),
        currency=goal.currency,
        created_at=as_utc(goal.created_at),
        updated_at=as_utc(goal.updated_at),
        completed_at=as_utc(goal.completed_at) if goal.completed_at else None,
    )


def budget_to_entity(budget: models.Budget) -> entities.Budget:
    return entities.Budget(
        id=budget.id,
        user_id=budget.user_id,
        name=budget.name,
        description=budget.description,
        period=BudgetPeriod(budget.period),
        total_amount=budget.total_amount,
        spent_amount=budget.spent_amount,
        start_date=budget.start_date,
        end_date=budget.end_date,
        status=BudgetStatus(budget.status),
        categories=tuple(
            entities.BudgetCategory(**category) for category in budget.categories or []
        ),
        created_at=as_utc(budget.created_at),
        updated_at=as_utc(budget.updated_at),
    )


def goal_to_response(goal: entities.Goal, now: datetime) -> api_schemas.GoalResponse:
    return api_schemas.GoalResponse(
        id=goal.id,
        name=goal.name,
        description=goal.description,
        target_amount=goal.target_amount,
        current_amount=goal.current_amount,
        target_date=goal.target_date,
        category=goal.category,
        status=goal.status,
        currency=goal.currency,
        progress_percentage=goal.progress_percentage,
        remaining_amount=goal.remaining_amount,
        days_remaining=(goal.target_date - now.date()).days,
        created_at=goal.created_at,
        updated_at=goal.updated_at,
        completed_at=goal.completed_at,
    )


def budget_to_response(budget: entities.Budget) -> api_schemas.BudgetResponse:
    return api_schemas.BudgetResponse(
        id=budget.id,
        name=budget.name,
        description=budget.description,
        period=budget.period,
        total_amount=budget.total_amount,
        spent_amount=budget.spent_amount,
        spent_percentage=budget.spent_percentage,
        start_date=budget.start_date,
        end_date=budget.end_date,
        status=budget.status,
        categories=[
            api_schemas.BudgetCategoryResponse(
                name=c.name,
                allocated_amount=c.allocated_amount,
                spent_amount=c.spent_amount,
            )
            for c in budget.categories
        ],
        allocation_warning=budget.is_over_allocated,
        created_at=budget.created_at,
        updated_at=budget.updated_at,
    )


def event_to_response(event: entities.ProgressEvent) -> api_schemas.ProgressEventResponse:
    return api_schemas.ProgressEventResponse(
        type=event.type,
        user_id=event.user_id,
        entity_id=event.entity_id,
        priority=event.priority,
        payload=recursive_normalize(event.payload),
        occurred_at=event.occurred_at,
    )


def notification_to_response(
    notification: models.Notification,
) -> api_schemas.NotificationResponse:
    return api_schemas.NotificationResponse(
        id=notification.id,
        type=ProgressEventType(notification.type),
        priority=EventPriority(notification.priority),
        entity_id=notification.entity_id,
        goal_id=notification.goal_id,
        budget_id=notification.budget_id,
        title=notification.title,
        message=notification.message,
        data=notification.data or {},
        is_read=notification.is_read,
        read_at=as_utc(notification.read_at) if notification.read_at else None,
        created_at=as_utc(notification.created_at),
    )
