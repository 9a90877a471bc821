class ProgressServiceError(Exception):
    """Base class for service errors."""
    pass

class InvalidArgumentError(ProgressServiceError):
    """Negative amount, malformed dates or an unknown budget category."""
    pass

class NotFoundError(ProgressServiceError):
    """Entity is missing or belongs to another user."""
    pass

class GoalNotFoundError(NotFoundError):
    """Goal not found."""
    pass

class BudgetNotFoundError(NotFoundError):
    """Budget not found."""
    pass

class NotificationNotFoundError(NotFoundError):
    """Notification not found."""
    pass

class PreconditionFailedError(ProgressServiceError):
    """Entity changed or was removed concurrently, or is in a state that forbids the call."""
    pass
