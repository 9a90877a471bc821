"""
Immutable snapshots the tracker works on.

Rows are loaded from the database into these models, the tracker returns new
copies (``model_copy``), and the services write the copies back.
"""
from datetime import date, datetime
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from progress_service.domain.enums import (
    BudgetPeriod,
    BudgetStatus,
    EventPriority,
    GoalCategory,
    GoalStatus,
    ProgressEventType,
)

HUNDRED = Decimal("100")
CENT = Decimal("0.01")

# Decimal places the storage columns keep for each kind of amount.
GOAL_AMOUNT_PLACES = 4
BUDGET_AMOUNT_PLACES = 2


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


def fits_scale(amount: Decimal, places: int) -> bool:
    """True when amount has no digits beyond the given decimal places."""
    try:
        return amount == amount.quantize(Decimal(1).scaleb(-places))
    except InvalidOperation:
        return False


def ratio_of(amount: Decimal, total: Decimal) -> Decimal:
    """Unrounded amount / total * 100, 0 when total is not positive."""
    if total <= 0:
        return Decimal("0")
    return amount / total * HUNDRED


def percentage_of(amount: Decimal, total: Decimal, cap: bool = True) -> Decimal:
    """amount / total * 100 rounded to cents, 0 when total is not positive."""
    if total <= 0:
        return Decimal("0.00")
    value = ratio_of(amount, total)
    if cap:
        value = min(HUNDRED, value)
    return round2(value)


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class Goal(Snapshot):
    id: UUID
    user_id: UUID
    name: str
    description: str | None = None
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(Decimal("0"), ge=0)
    target_date: date
    category: GoalCategory = GoalCategory.SAVINGS
    status: GoalStatus = GoalStatus.NOT_STARTED
    currency: str = "USD"
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @property
    def progress_percentage(self) -> Decimal:
        return percentage_of(self.current_amount, self.target_amount)

    @property
    def remaining_amount(self) -> Decimal:
        return max(Decimal("0"), self.target_amount - self.current_amount)

    @property
    def is_completed(self) -> bool:
        return self.status == GoalStatus.COMPLETED


class BudgetCategory(Snapshot):
    name: str
    allocated_amount: Decimal = Field(Decimal("0"), ge=0)
    spent_amount: Decimal = Field(Decimal("0"), ge=0)


class Budget(Snapshot):
    id: UUID
    user_id: UUID
    name: str
    description: str | None = None
    period: BudgetPeriod
    total_amount: Decimal = Field(..., ge=0)
    spent_amount: Decimal = Field(Decimal("0"), ge=0)
    start_date: date
    end_date: date
    status: BudgetStatus = BudgetStatus.ACTIVE
    categories: tuple[BudgetCategory, ...] = ()
    created_at: datetime
    updated_at: datetime

    @property
    def spent_percentage(self) -> Decimal:
        return percentage_of(self.spent_amount, self.total_amount, cap=False)

    @property
    def spent_ratio(self) -> Decimal:
        return ratio_of(self.spent_amount, self.total_amount)

    @property
    def allocated_total(self) -> Decimal:
        return sum((c.allocated_amount for c in self.categories), Decimal("0"))

    @property
    def is_over_allocated(self) -> bool:
        return self.allocated_total > self.total_amount

    def find_category(self, name: str) -> BudgetCategory | None:
        for category in self.categories:
            if category.name == name:
                return category
        return None


class ProgressEvent(Snapshot):
    type: ProgressEventType
    user_id: UUID
    entity_id: UUID
    priority: EventPriority
    payload: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime
