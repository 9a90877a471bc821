import logging
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError

from progress_service.domain import entities
from progress_service.domain.enums import BudgetStatus
from progress_service.infrastructure.db import models
from progress_service.infrastructure.db.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

def dump_categories(categories) -> list[dict]:
    """Amounts are stored as strings so JSON never rounds them through float."""
    return [
        {
            "name": c.name,
            "allocated_amount": str(c.allocated_amount),
            "spent_amount": str(c.spent_amount),
        }
        for c in categories
    ]

class BudgetRepository(BaseRepository):
    async def get_by_id(
        self,
        user_id: UUID,
        budget_id: UUID,
    ) -> models.Budget | None:
        result = await self.db.execute(
            select(models.Budget).where(
                models.Budget.id == budget_id,
                models.Budget.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_for_update(
        self,
        user_id: UUID,
        budget_id: UUID,
    ) -> models.Budget | None:
        result = await self.db.execute(
            select(models.Budget)
            .where(
                models.Budget.id == budget_id,
                models.Budget.user_id == user_id,
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: UUID,
        include_archived: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[models.Budget]:
        query = select(models.Budget).where(models.Budget.user_id == user_id)

        if not include_archived:
            query = query.where(models.Budget.status != BudgetStatus.ARCHIVED.value)

        query = (
            query.order_by(models.Budget.start_date.desc(), models.Budget.id.asc())
            .limit(limit)
            .offset(offset)
        )

        result = await self.db.execute(query)
        return list(result.scalars().all())

    def create(self, budget: models.Budget) -> models.Budget:
        self.db.add(budget)
        return budget

    async def apply_snapshot(
        self,
        row: models.Budget,
        snapshot: entities.Budget,
    ) -> models.Budget:
        row.name = snapshot.name
        row.description = snapshot.description
        row.period = snapshot.period.value
        row.total_amount = snapshot.total_amount
        row.spent_amount = snapshot.spent_amount
        row.categories = dump_categories(snapshot.categories)
        row.status = snapshot.status.value
        row.updated_at = snapshot.updated_at
        await self._flush_versioned()
        return row

    async def get_expired_active_batch(
        self,
        today: date,
        limit: int = 500,
    ) -> list[models.Budget]:
        result = await self.db.execute(
            select(models.Budget)
            .where(
                models.Budget.status == BudgetStatus.ACTIVE.value,
                models.Budget.end_date < today,
            )
            .order_by(models.Budget.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())

    async def mark_transaction_processed(
        self,
        transaction_id: UUID,
        budget_id: UUID,
    ) -> bool:
        """Returns False when the transaction was already applied."""
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    insert(models.ProcessedTransaction).values(
                        transaction_id=transaction_id,
                        budget_id=budget_id,
                    )
                )
        except IntegrityError:
            return False
        return True

    async def delete_processed_before(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(models.ProcessedTransaction).where(
                models.ProcessedTransaction.created_at < cutoff
            )
        )
        return result.rowcount or 0
