from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from progress_service.domain.entities import BUDGET_AMOUNT_PLACES
from progress_service.domain.enums import TransactionType
from progress_service.domain.schemas.api import CamelModel

class TransactionEvent(CamelModel):
    transaction_id: UUID = Field(..., description="Transaction id")
    budget_id: UUID = Field(..., description="Budget id")
    user_id: UUID = Field(..., description="Owner id")
    category: Optional[str] = Field(None, description="Budget category name")
    value: Decimal = Field(
        ..., gt=0, decimal_places=BUDGET_AMOUNT_PLACES, description="Transaction amount"
    )
    type: TransactionType = Field(..., description="Transaction type")

    @property
    def spending_delta(self) -> Decimal:
        if self.type == TransactionType.REFUND:
            return -self.value
        return self.value
