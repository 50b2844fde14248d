'''

'''
from datetime import datetime
from typing import Optional, Literal
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, computed_field

from ..database.db_enums import AppointmentStatusEnum, CancelledByEnum

# --- API Input Models ---

class AppointmentCreate(BaseModel):
    """
    Validates the request body for booking a slot.
    'student_id' defaults to the current user when a student books for themself.
    """
    tutor_id: UUID
    start: AwareDatetime
    end: AwareDatetime
    student_id: Optional[UUID] = None
    course_id: Optional[UUID] = None
    notes: Optional[str] = Field(None, max_length=2000)

class AppointmentOutcome(BaseModel):
    outcome: Literal["completed", "no_show"]

class AppointmentReschedule(BaseModel):
    start: AwareDatetime
    end: AwareDatetime


# --- API Output Models ---

class AppointmentRead(BaseModel):
    """
    The API model for an appointment, identical for students, tutors and admins.
    """
    id: UUID
    student_id: UUID
    tutor_id: UUID
    course_id: Optional[UUID] = None
    start_time: datetime
    end_time: datetime
    status: AppointmentStatusEnum
    notes: Optional[str] = None
    credited_back: bool
    cancelled_by: Optional[CancelledByEnum] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)
