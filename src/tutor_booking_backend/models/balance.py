'''
Pydantic models for hours balances and their ledger entries.
Balances are stored in minutes and reported in hours.
'''
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..database.db_enums import LedgerReasonEnum


def minutes_to_hours(minutes: int) -> Decimal:
    return (Decimal(minutes) / Decimal(60)).quantize(Decimal("0.01"))


class HoursPurchaseCreate(BaseModel):
    """
    Validates a completed purchase reported by the payments collaborator.
    """
    student_id: UUID
    hours: Decimal = Field(..., gt=0, description="Purchased hours; must be a whole number of minutes.")
    course_id: Optional[UUID] = None


class BalanceRead(BaseModel):
    id: UUID
    student_id: UUID
    course_id: Optional[UUID] = None
    total_purchased_minutes: int
    used_minutes: int

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def available_minutes(self) -> int:
        return self.total_purchased_minutes - self.used_minutes

    @computed_field
    @property
    def total_purchased_hours(self) -> Decimal:
        return minutes_to_hours(self.total_purchased_minutes)

    @computed_field
    @property
    def used_hours(self) -> Decimal:
        return minutes_to_hours(self.used_minutes)

    @computed_field
    @property
    def available_hours(self) -> Decimal:
        return minutes_to_hours(self.available_minutes)

    @computed_field
    @property
    def needs_renewal(self) -> bool:
        return self.available_minutes <= 0


class LedgerEntryRead(BaseModel):
    id: UUID
    balance_id: UUID
    appointment_id: Optional[UUID] = None
    delta_minutes: int
    reason: LedgerReasonEnum
    balance_after_minutes: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
