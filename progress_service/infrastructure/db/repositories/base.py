from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from progress_service.core import exceptions


class BaseRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _flush_versioned(self) -> None:
        """Flushes pending changes, turning a lost optimistic lock into a 412."""
        try:
            await self.db.flush()
        except StaleDataError as e:
            raise exceptions.PreconditionFailedError(
                "Record was modified concurrently, retry the request"
            ) from e
