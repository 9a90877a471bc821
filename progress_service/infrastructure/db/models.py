from decimal import Decimal
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    DECIMAL,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import validates

from progress_service.domain.entities import BUDGET_AMOUNT_PLACES, GOAL_AMOUNT_PLACES
from progress_service.domain.enums import BudgetStatus, GoalCategory, GoalStatus
from progress_service.infrastructure.db.base import Base
from progress_service.utils.time import utc_now

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Goal(Base):
    __tablename__ = "goals"

    id = Column(Uuid, primary_key=True, default=uuid4, nullable=False)
    user_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    target_amount = Column(DECIMAL(19, GOAL_AMOUNT_PLACES), nullable=False)
    current_amount = Column(DECIMAL(19, GOAL_AMOUNT_PLACES), nullable=False, default=Decimal("0"))
    currency = Column(String(3), nullable=False, default="USD")
    target_date = Column(Date, nullable=False)
    category = Column(String(30), nullable=False, default=GoalCategory.SAVINGS.value)
    status = Column(String(20), nullable=False, default=GoalStatus.NOT_STARTED.value)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    last_deadline_check = Column(Date, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_goals_user_status", "user_id", "status"),
        Index("ix_goals_status_target_date", "status", "target_date"),
    )

    @validates("target_amount", "current_amount")
    def validate_decimals(self, key, value):
        if not isinstance(value, Decimal):
            value = Decimal(str(value))

        if key == "target_amount" and value <= 0:
            raise ValueError("target_amount must be positive")

        if key == "current_amount" and value < 0:
            raise ValueError("current_amount must be non-negative")

        return value


class Budget(Base):
    __tablename__ = "budgets"

    id = Column(Uuid, primary_key=True, default=uuid4, nullable=False)
    user_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    period = Column(String(20), nullable=False)
    total_amount = Column(DECIMAL(20, BUDGET_AMOUNT_PLACES), nullable=False)
    spent_amount = Column(DECIMAL(20, BUDGET_AMOUNT_PLACES), nullable=False, default=Decimal("0"))
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=BudgetStatus.ACTIVE.value)
    categories = Column(JsonType, nullable=False, default=list)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_budgets_user_status", "user_id", "status"),
    )


class ProcessedTransaction(Base):
    __tablename__ = "processed_budget_transactions"

    transaction_id = Column(Uuid, primary_key=True, nullable=False)
    budget_id = Column(Uuid, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid4, nullable=False)
    user_id = Column(Uuid, nullable=False)
    type = Column(String(50), nullable=False)
    priority = Column(String(10), nullable=False)
    entity_id = Column(Uuid, nullable=False)
    goal_id = Column(Uuid, nullable=True)
    budget_id = Column(Uuid, nullable=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JsonType, nullable=False, default=dict)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_notifications_user_type", "user_id", "type"),
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    user_id = Column(Uuid, primary_key=True, nullable=False)
    goal_progress = Column(Boolean, nullable=False, default=True)
    goal_completion = Column(Boolean, nullable=False, default=True)
    goal_deadlines = Column(Boolean, nullable=False, default=True)
    budget_alerts = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    event_id = Column(Uuid, primary_key=True, default=uuid4, nullable=False)
    topic = Column(String(255), nullable=False)
    event_type = Column(String(255), nullable=False)
    payload = Column(JsonType, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    retry_count = Column(Integer, default=0, nullable=False)
    status = Column(String(50), default="pending", nullable=False)
    trace_id = Column(String(255), nullable=True)
    next_retry_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_outbox_created_at_status", "created_at", "status"),
        Index("ix_outbox_processing", "status", "next_retry_at"),
    )
