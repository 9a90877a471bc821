from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from progress_service.infrastructure.db.repositories import budget, goal, notification, outbox

class UnitOfWork:
    """
    Unit of Work: one session, one transaction, committed on clean exit
    and rolled back on any exception.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._session: AsyncSession | None = None

        self._goals = None
        self._budgets = None
        self._notifications = None
        self._outbox = None

    async def __aenter__(self) -> Self:
        self._session = self.session_factory()
        self._goals = None
        self._budgets = None
        self._notifications = None
        self._outbox = None
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if not self._session:
            return
        try:
            if exc_type:
                await self._session.rollback()
            else:
                await self._session.commit()
        finally:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UoW not started")
        return self._session

    @property
    def goals(self) -> goal.GoalRepository:
        if not self._goals:
            self._goals = goal.GoalRepository(self.session)
        return self._goals

    @property
    def budgets(self) -> budget.BudgetRepository:
        if not self._budgets:
            self._budgets = budget.BudgetRepository(self.session)
        return self._budgets

    @property
    def notifications(self) -> notification.NotificationRepository:
        if not self._notifications:
            self._notifications = notification.NotificationRepository(self.session)
        return self._notifications

    @property
    def outbox(self) -> outbox.OutboxRepository:
        if not self._outbox:
            self._outbox = outbox.OutboxRepository(self.session)
        return self._outbox
