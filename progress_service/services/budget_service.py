import logging
from decimal import Decimal
from uuid import UUID, uuid4

from progress_service.core import config, exceptions, metrics
from progress_service.domain import entities, mappers
from progress_service.domain.enums import BudgetStatus
from progress_service.domain.schemas import api as api_schemas
from progress_service.domain.schemas import kafka as k_schemas
from progress_service.domain.tracker import ProgressTracker
from progress_service.infrastructure.db import models, uow
from progress_service.infrastructure.db.repositories.budget import dump_categories
from progress_service.services.goal_service import default_tracker
from progress_service.services.notifier import ProgressNotifier
from progress_service.utils.time import utc_now

logger = logging.getLogger(__name__)
settings = config.settings


class BudgetService:
    """Budgets: CRUD, spending updates and transaction ingestion."""

    def __init__(
        self,
        uow_progress: uow.UnitOfWork,
        tracker: ProgressTracker | None = None,
    ):
        self.uow = uow_progress
        self.tracker = tracker or default_tracker()
        self.notifier = ProgressNotifier(uow_progress)

    async def create_budget(
        self,
        user_id: UUID,
        request: api_schemas.CreateBudgetRequest,
    ) -> api_schemas.CreateBudgetResponse:
        if request.end_date < request.start_date:
            raise exceptions.InvalidArgumentError("End date cannot be before start date")

        now = utc_now()
        budget = models.Budget(
            id=uuid4(),
            user_id=user_id,
            name=request.name.strip(),
            description=request.description,
            period=request.period.value,
            total_amount=request.total_amount,
            spent_amount=Decimal("0"),
            start_date=request.start_date,
            end_date=request.end_date,
            status=BudgetStatus.ACTIVE.value,
            categories=dump_categories(
                entities.BudgetCategory(
                    name=c.name.strip(),
                    allocated_amount=c.allocated_amount,
                    spent_amount=Decimal("0"),
                )
                for c in request.categories
            ),
            created_at=now,
            updated_at=now,
        )

        allocated = sum((c.allocated_amount for c in request.categories), Decimal("0"))
        allocation_warning = allocated > request.total_amount
        if allocation_warning:
            logger.warning(
                "Budget %s allocates %s across categories, above its total %s",
                budget.id,
                allocated,
                request.total_amount,
            )

        async with self.uow:
            self.uow.budgets.create(budget)

        metrics.BUDGETS_CREATED_TOTAL.inc()
        logger.info("Budget %s created for user %s", budget.id, user_id)
        return api_schemas.CreateBudgetResponse(
            budget_id=budget.id,
            allocation_warning=allocation_warning,
        )

    async def get_budget(
        self,
        user_id: UUID,
        budget_id: UUID,
    ) -> api_schemas.BudgetResponse:
        async with self.uow:
            row = await self.uow.budgets.get_by_id(user_id, budget_id)
            if not row:
                raise exceptions.BudgetNotFoundError("Budget not found")
            budget = mappers.budget_to_entity(row)

        return mappers.budget_to_response(budget)

    async def list_budgets(
        self,
        user_id: UUID,
        include_archived: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[api_schemas.BudgetResponse]:
        async with self.uow:
            rows = await self.uow.budgets.list_for_user(
                user_id,
                include_archived=include_archived,
                limit=limit,
                offset=offset,
            )
            budgets = [mappers.budget_to_entity(row) for row in rows]

        return [mappers.budget_to_response(budget) for budget in budgets]

    async def update_budget(
        self,
        user_id: UUID,
        budget_id: UUID,
        request: api_schemas.UpdateBudgetRequest,
    ) -> api_schemas.UpdateBudgetResponse:
        """
        Renames, re-periods or resizes a budget.

        A new total is run through the tracker so that thresholds crossed by
        shrinking the budget are reported like any other crossing.
        """
        now = utc_now()

        async with self.uow:
            row = await self.uow.budgets.get_for_update(user_id, budget_id)
            if not row:
                raise exceptions.BudgetNotFoundError("Budget not found")

            budget = mappers.budget_to_entity(row)
            if budget.status == BudgetStatus.ARCHIVED:
                raise exceptions.PreconditionFailedError("Budget is archived")

            updated, events = budget, []
            if request.total_amount is not None and request.total_amount != budget.total_amount:
                updated, events = self.tracker.update_budget_total(
                    budget, request.total_amount, now
                )

            changes = {"updated_at": now}
            if request.name is not None:
                changes["name"] = request.name.strip()
            if "description" in request.model_fields_set:
                changes["description"] = request.description
            if request.period is not None:
                changes["period"] = request.period
            updated = updated.model_copy(update=changes)

            if updated.is_over_allocated:
                logger.warning(
                    "Budget %s allocates %s across categories, above its total %s",
                    budget_id,
                    updated.allocated_total,
                    updated.total_amount,
                )

            await self.uow.budgets.apply_snapshot(row, updated)
            await self.notifier.dispatch(events)

        metrics.record_progress_events(events)
        logger.info("Budget %s updated", budget_id)

        return api_schemas.UpdateBudgetResponse(
            budget=mappers.budget_to_response(updated),
            events=[mappers.event_to_response(e) for e in events],
        )

    async def update_spending(
        self,
        user_id: UUID,
        budget_id: UUID,
        category: str | None,
        delta: Decimal,
    ) -> api_schemas.BudgetSpendingResponse:
        now = utc_now()

        async with self.uow:
            row = await self.uow.budgets.get_for_update(user_id, budget_id)
            if not row:
                raise exceptions.BudgetNotFoundError("Budget not found")

            budget = mappers.budget_to_entity(row)
            if budget.status == BudgetStatus.ARCHIVED:
                raise exceptions.PreconditionFailedError("Budget is archived")

            updated, events = self.tracker.update_budget_spending(
                budget, category, delta, now
            )

            await self.uow.budgets.apply_snapshot(row, updated)
            await self.notifier.dispatch(events)

        metrics.record_progress_events(events)

        return api_schemas.BudgetSpendingResponse(
            budget=mappers.budget_to_response(updated),
            events=[mappers.event_to_response(e) for e in events],
        )

    async def apply_transaction(
        self,
        event: k_schemas.TransactionEvent,
    ) -> bool:
        """
        Applies a transaction from the ledger stream to its budget.

        Returns False when the transaction was skipped: already applied, or
        the budget is archived. An unknown budget raises so the consumer can
        route the message to the DLQ.
        """
        now = utc_now()

        async with self.uow:
            row = await self.uow.budgets.get_for_update(event.user_id, event.budget_id)
            if not row:
                raise exceptions.BudgetNotFoundError(
                    f"Budget {event.budget_id} not found"
                )

            budget = mappers.budget_to_entity(row)
            if budget.status == BudgetStatus.ARCHIVED:
                logger.info(
                    "Transaction %s skipped (archived budget %s)",
                    event.transaction_id,
                    event.budget_id,
                )
                return False

            is_new = await self.uow.budgets.mark_transaction_processed(
                event.transaction_id,
                event.budget_id,
            )
            if not is_new:
                logger.info("Transaction %s skipped (duplicate)", event.transaction_id)
                return False

            updated, events = self.tracker.update_budget_spending(
                budget, event.category, event.spending_delta, now
            )

            await self.uow.budgets.apply_snapshot(row, updated)
            await self.notifier.dispatch(events)

        metrics.record_progress_events(events)
        return True

    async def archive_budget(
        self,
        user_id: UUID,
        budget_id: UUID,
    ) -> None:
        async with self.uow:
            row = await self.uow.budgets.get_for_update(user_id, budget_id)
            if not row:
                raise exceptions.BudgetNotFoundError("Budget not found")

            budget = mappers.budget_to_entity(row)
            if budget.status != BudgetStatus.ARCHIVED:
                archived = budget.model_copy(
                    update={"status": BudgetStatus.ARCHIVED, "updated_at": utc_now()}
                )
                await self.uow.budgets.apply_snapshot(row, archived)

        logger.info("Budget %s archived", budget_id)

    async def close_expired_budgets(self) -> int:
        """Moves active budgets whose period has ended to COMPLETED."""
        now = utc_now()
        batch_size = settings.TRACKER.DEADLINE_BATCH_SIZE
        closed = 0

        while True:
            async with self.uow:
                batch = await self.uow.budgets.get_expired_active_batch(
                    now.date(),
                    limit=batch_size,
                )

                if not batch:
                    break

                for row in batch:
                    budget = mappers.budget_to_entity(row)
                    await self.uow.budgets.apply_snapshot(
                        row,
                        self.tracker.close_budget_period(budget, now),
                    )

            closed += len(batch)
            logger.info("Closed batch of %s budgets", len(batch))

        return closed
