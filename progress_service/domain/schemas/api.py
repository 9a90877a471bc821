from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from progress_service.domain.entities import BUDGET_AMOUNT_PLACES, GOAL_AMOUNT_PLACES
from progress_service.domain.enums import (
    BudgetPeriod,
    BudgetStatus,
    EventPriority,
    GoalCategory,
    GoalStatus,
    ProgressEventType,
)

def to_camel(string: str) -> str:
    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])

class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        json_encoders={Decimal: float},
    )

class CreateGoalRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100, description="Goal name")
    description: Optional[str] = Field(None, description="Free-form description")
    target_amount: Decimal = Field(
        ..., gt=0, decimal_places=GOAL_AMOUNT_PLACES, description="Target amount"
    )
    target_date: date = Field(..., description="Deadline 'YYYY-MM-DD'")
    category: GoalCategory = Field(GoalCategory.SAVINGS, description="Goal category")
    currency: str = Field("USD", min_length=3, max_length=3, description="ISO currency code")

class CreateGoalResponse(CamelModel):
    goal_id: UUID = Field(..., description="Created goal id")

class GoalProgressRequest(CamelModel):
    current_amount: Decimal = Field(
        ..., decimal_places=GOAL_AMOUNT_PLACES, description="New accumulated amount"
    )

class GoalResponse(CamelModel):
    id: UUID
    name: str
    description: Optional[str] = None
    target_amount: Decimal
    current_amount: Decimal
    target_date: date
    category: GoalCategory
    status: GoalStatus
    currency: str
    progress_percentage: Decimal = Field(..., description="Capped at 100")
    remaining_amount: Decimal
    days_remaining: int = Field(..., description="Negative once the deadline has passed")
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

class ProgressEventResponse(CamelModel):
    type: ProgressEventType
    user_id: UUID
    entity_id: UUID
    priority: EventPriority
    payload: dict[str, Any]
    occurred_at: datetime

class GoalProgressResponse(CamelModel):
    goal: GoalResponse
    events: list[ProgressEventResponse]

class DeadlineCheckResponse(CamelModel):
    checked_goals: int
    overdue_goals: int
    events_emitted: int

class BudgetCategoryRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    allocated_amount: Decimal = Field(Decimal("0"), ge=0, decimal_places=BUDGET_AMOUNT_PLACES)

class BudgetCategoryResponse(CamelModel):
    name: str
    allocated_amount: Decimal
    spent_amount: Decimal

class CreateBudgetRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    period: BudgetPeriod
    total_amount: Decimal = Field(..., ge=0, decimal_places=BUDGET_AMOUNT_PLACES)
    start_date: date
    end_date: date
    categories: list[BudgetCategoryRequest] = Field(default_factory=list)

    @model_validator(mode="after")
    def unique_category_names(self) -> "CreateBudgetRequest":
        names = [c.name for c in self.categories]
        if len(names) != len(set(names)):
            raise ValueError("Category names must be unique")
        return self

class CreateBudgetResponse(CamelModel):
    budget_id: UUID
    allocation_warning: bool = False

class BudgetResponse(CamelModel):
    id: UUID
    name: str
    description: Optional[str] = None
    period: BudgetPeriod
    total_amount: Decimal
    spent_amount: Decimal
    spent_percentage: Decimal
    start_date: date
    end_date: date
    status: BudgetStatus
    categories: list[BudgetCategoryResponse]
    allocation_warning: bool
    created_at: datetime
    updated_at: datetime

class UpdateBudgetRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    period: Optional[BudgetPeriod] = None
    total_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=BUDGET_AMOUNT_PLACES)

class UpdateBudgetResponse(CamelModel):
    budget: BudgetResponse
    events: list[ProgressEventResponse]

class BudgetSpendingRequest(CamelModel):
    category: Optional[str] = Field(None, description="Category to charge, total only when omitted")
    delta: Decimal = Field(
        ..., decimal_places=BUDGET_AMOUNT_PLACES, description="Signed change of the spent amount"
    )

class BudgetSpendingResponse(CamelModel):
    budget: BudgetResponse
    events: list[ProgressEventResponse]

class NotificationResponse(CamelModel):
    id: UUID
    type: ProgressEventType
    priority: EventPriority
    entity_id: UUID
    goal_id: Optional[UUID] = None
    budget_id: Optional[UUID] = None
    title: str
    message: str
    data: dict[str, Any]
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

class NotificationListResponse(CamelModel):
    data: list[NotificationResponse]

class NotificationPreferencesSchema(CamelModel):
    goal_progress: bool = True
    goal_completion: bool = True
    goal_deadlines: bool = True
    budget_alerts: bool = True
