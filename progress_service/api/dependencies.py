from typing import AsyncGenerator
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status

from progress_service.infrastructure.db.uow import UnitOfWork
from progress_service.services.budget_service import BudgetService
from progress_service.services.goal_service import GoalService
from progress_service.services.notification_service import NotificationService

async def get_uow(request: Request) -> AsyncGenerator[UnitOfWork, None]:
    """UnitOfWork over the session factory from app.state."""
    db_session_maker = getattr(request.app.state, "db_session_maker", None)
    if not db_session_maker:
        raise HTTPException(status_code=500, detail="Database session factory not available")
    yield UnitOfWork(db_session_maker)

def get_goal_service(uow: UnitOfWork = Depends(get_uow)) -> GoalService:
    return GoalService(uow)

def get_budget_service(uow: UnitOfWork = Depends(get_uow)) -> BudgetService:
    return BudgetService(uow)

def get_notification_service(uow: UnitOfWork = Depends(get_uow)) -> NotificationService:
    return NotificationService(uow)

async def get_current_user_id(request: Request) -> UUID:
    """
    Reads the user id from the X-User-Id header set by the API gateway.
    """
    user_id = request.headers.get("X-User-Id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User ID header missing"
        )
    try:
        return UUID(user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid User ID format"
        )
