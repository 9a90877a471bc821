from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from progress_service.api import dependencies
from progress_service.domain.enums import GoalStatus, ProgressEventType
from progress_service.domain.schemas import api as schemas
from progress_service.services.budget_service import BudgetService
from progress_service.services.goal_service import GoalService
from progress_service.services.notification_service import NotificationService

router = APIRouter()
goals_router = APIRouter(prefix="/goals", tags=["Goals"])
budgets_router = APIRouter(prefix="/budgets", tags=["Budgets"])
notifications_router = APIRouter(prefix="/notifications", tags=["Notifications"])

@router.get(
    "/health",
    status_code=status.HTTP_200_OK,
    summary="Service health check",
    tags=["System"],
)
async def health_check(request: Request) -> dict:
    app = request.app
    status_map = {"db": "unknown", "redis": "unknown"}
    has_error = False

    if not getattr(app.state, "engine", None):
        status_map["db"] = "disconnected"
        has_error = True
    else:
        try:
            async with app.state.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            status_map["db"] = "ok"
        except Exception:
            status_map["db"] = "failed"
            has_error = True

    if not getattr(app.state, "arq_pool", None):
        status_map["redis"] = "disconnected"
        has_error = True
    else:
        try:
            await app.state.arq_pool.ping()
            status_map["redis"] = "ok"
        except Exception:
            status_map["redis"] = "failed"
            has_error = True

    if has_error:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "components": status_map},
        )

    return {"status": "ok", "components": status_map}

# Goals

@goals_router.post(
    "",
    response_model=schemas.CreateGoalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a goal",
)
async def create_goal(
    request: schemas.CreateGoalRequest = Body(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: GoalService = Depends(dependencies.get_goal_service),
):
    return await service.create_goal(user_id, request)

@goals_router.get(
    "",
    response_model=List[schemas.GoalResponse],
    summary="List goals",
)
async def list_goals(
    goal_status: Optional[GoalStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: GoalService = Depends(dependencies.get_goal_service),
):
    return await service.list_goals(user_id, goal_status, limit, offset)

@goals_router.post(
    "/check-deadlines",
    response_model=schemas.DeadlineCheckResponse,
    summary="Run the deadline check for open goals",
    dependencies=[Depends(dependencies.get_current_user_id)],
)
async def check_deadlines(
    service: GoalService = Depends(dependencies.get_goal_service),
):
    return await service.check_deadlines()

@goals_router.get(
    "/{goal_id}",
    response_model=schemas.GoalResponse,
    summary="Get a goal",
)
async def get_goal(
    goal_id: UUID = Path(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: GoalService = Depends(dependencies.get_goal_service),
):
    return await service.get_goal(user_id, goal_id)

@goals_router.patch(
    "/{goal_id}",
    response_model=schemas.GoalProgressResponse,
    summary="Update goal progress",
)
async def update_goal_progress(
    goal_id: UUID = Path(...),
    request: schemas.GoalProgressRequest = Body(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: GoalService = Depends(dependencies.get_goal_service),
):
    return await service.update_progress(user_id, goal_id, request.current_amount)

@goals_router.delete(
    "/{goal_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a goal",
)
async def delete_goal(
    goal_id: UUID = Path(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: GoalService = Depends(dependencies.get_goal_service),
):
    await service.delete_goal(user_id, goal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# Budgets

@budgets_router.post(
    "",
    response_model=schemas.CreateBudgetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a budget",
)
async def create_budget(
    request: schemas.CreateBudgetRequest = Body(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: BudgetService = Depends(dependencies.get_budget_service),
):
    return await service.create_budget(user_id, request)

@budgets_router.get(
    "",
    response_model=List[schemas.BudgetResponse],
    summary="List budgets",
)
async def list_budgets(
    include_archived: bool = Query(False, alias="includeArchived"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: BudgetService = Depends(dependencies.get_budget_service),
):
    return await service.list_budgets(user_id, include_archived, limit, offset)

@budgets_router.get(
    "/{budget_id}",
    response_model=schemas.BudgetResponse,
    summary="Get a budget",
)
async def get_budget(
    budget_id: UUID = Path(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: BudgetService = Depends(dependencies.get_budget_service),
):
    return await service.get_budget(user_id, budget_id)

@budgets_router.patch(
    "/{budget_id}",
    response_model=schemas.UpdateBudgetResponse,
    summary="Update budget name, period or total",
)
async def update_budget(
    budget_id: UUID = Path(...),
    request: schemas.UpdateBudgetRequest = Body(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: BudgetService = Depends(dependencies.get_budget_service),
):
    return await service.update_budget(user_id, budget_id, request)

@budgets_router.post(
    "/{budget_id}/spending",
    response_model=schemas.BudgetSpendingResponse,
    summary="Record spending against a budget",
)
async def update_budget_spending(
    budget_id: UUID = Path(...),
    request: schemas.BudgetSpendingRequest = Body(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: BudgetService = Depends(dependencies.get_budget_service),
):
    return await service.update_spending(
        user_id,
        budget_id,
        request.category,
        request.delta,
    )

@budgets_router.delete(
    "/{budget_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Archive a budget",
)
async def archive_budget(
    budget_id: UUID = Path(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: BudgetService = Depends(dependencies.get_budget_service),
):
    await service.archive_budget(user_id, budget_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# Notifications

@notifications_router.get(
    "/preferences",
    response_model=schemas.NotificationPreferencesSchema,
    summary="Get notification preferences",
)
async def get_preferences(
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: NotificationService = Depends(dependencies.get_notification_service),
):
    return await service.get_preferences(user_id)

@notifications_router.put(
    "/preferences",
    response_model=schemas.NotificationPreferencesSchema,
    summary="Replace notification preferences",
)
async def update_preferences(
    request: schemas.NotificationPreferencesSchema = Body(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: NotificationService = Depends(dependencies.get_notification_service),
):
    return await service.update_preferences(user_id, request)

@notifications_router.get(
    "",
    response_model=schemas.NotificationListResponse,
    summary="List notifications",
)
async def list_notifications(
    event_type: Optional[ProgressEventType] = Query(None, alias="type"),
    goal_id: Optional[UUID] = Query(None, alias="goalId"),
    budget_id: Optional[UUID] = Query(None, alias="budgetId"),
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: NotificationService = Depends(dependencies.get_notification_service),
):
    return await service.list_notifications(
        user_id,
        event_type=event_type,
        goal_id=goal_id,
        budget_id=budget_id,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )

@notifications_router.patch(
    "/{notification_id}/read",
    response_model=schemas.NotificationResponse,
    summary="Mark a notification as read",
)
async def mark_notification_read(
    notification_id: UUID = Path(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: NotificationService = Depends(dependencies.get_notification_service),
):
    return await service.mark_as_read(user_id, notification_id)

@notifications_router.delete(
    "/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a notification",
)
async def delete_notification(
    notification_id: UUID = Path(...),
    user_id: UUID = Depends(dependencies.get_current_user_id),
    service: NotificationService = Depends(dependencies.get_notification_service),
):
    await service.delete_notification(user_id, notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

router.include_router(goals_router)
router.include_router(budgets_router)
router.include_router(notifications_router)
