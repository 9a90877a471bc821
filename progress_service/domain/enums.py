from enum import Enum

class GoalStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    ON_TRACK = "ON_TRACK"
    AT_RISK = "AT_RISK"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"

class GoalCategory(str, Enum):
    SAVINGS = "SAVINGS"
    DEBT_PAYOFF = "DEBT_PAYOFF"
    EMERGENCY_FUND = "EMERGENCY_FUND"
    RETIREMENT = "RETIREMENT"
    PURCHASE = "PURCHASE"
    EDUCATION = "EDUCATION"
    OTHER = "OTHER"

class BudgetPeriod(str, Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"

class BudgetStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"

class ProgressEventType(str, Enum):
    GOAL_PROGRESS = "GOAL_PROGRESS"
    GOAL_COMPLETED = "GOAL_COMPLETED"
    GOAL_DEADLINE_APPROACHING = "GOAL_DEADLINE_APPROACHING"
    GOAL_OVERDUE = "GOAL_OVERDUE"
    BUDGET_THRESHOLD = "BUDGET_THRESHOLD"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"

class EventPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

class TransactionType(str, Enum):
    EXPENSE = "expense"
    REFUND = "refund"
