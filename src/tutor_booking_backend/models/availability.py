'''
Pydantic models for tutor availability windows and the slots derived from them.
'''
from datetime import date, datetime, time
from typing import Optional, Literal, Annotated, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

RECURRING = "recurring"
DATE_SPECIFIC = "date_specific"

# --- 1. API Input Models (for POST/PATCH) ---

class RecurringWindowCreate(BaseModel):
    """
    A window that repeats on the same weekday every week.
    """
    kind: Literal["recurring"]
    day_of_week: int = Field(..., ge=0, le=6, description="0 is Sunday, 6 is Saturday.")
    start_time: time
    end_time: time
    # Only admins may create windows on behalf of a tutor.
    tutor_id: Optional[UUID] = None

class DateSpecificWindowCreate(BaseModel):
    """
    A one-off window on a single calendar date.
    """
    kind: Literal["date_specific"]
    specific_date: date
    start_time: time
    end_time: time
    tutor_id: Optional[UUID] = None

AvailabilityWindowCreateHint = Annotated[
    Union[RecurringWindowCreate, DateSpecificWindowCreate],
    Field(discriminator='kind')
]


class AvailabilityWindowUpdate(BaseModel):
    """
    Partial update of a window. The merged result is re-validated by the
    service, including a switch between the two kinds.
    """
    kind: Optional[Literal["recurring", "date_specific"]] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    specific_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None


# --- 2. API Output Models (for GET) ---

class RecurringWindowRead(BaseModel):
    id: UUID
    tutor_id: UUID
    kind: Literal["recurring"] = RECURRING
    day_of_week: int
    start_time: time
    end_time: time

    model_config = ConfigDict(from_attributes=True)

class DateSpecificWindowRead(BaseModel):
    id: UUID
    tutor_id: UUID
    kind: Literal["date_specific"] = DATE_SPECIFIC
    specific_date: date
    start_time: time
    end_time: time

    model_config = ConfigDict(from_attributes=True)

AvailabilityWindowRead = Annotated[
    Union[RecurringWindowRead, DateSpecificWindowRead],
    Field(discriminator='kind')
]

class SlotRead(BaseModel):
    """A bookable [start, end) interval in UTC."""
    start: datetime
    end: datetime

    model_config = ConfigDict(from_attributes=True)
