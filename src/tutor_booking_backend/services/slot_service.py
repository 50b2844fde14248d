'''
Available slots: availability windows minus a tutor's blocking appointments.
'''
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Annotated
from uuid import UUID
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import UserRole, BLOCKING_STATUSES
from ..core.slots import Slot, SlotGenerator, fits_availability, load_timezone
from ..core.conflicts import ConflictResolver
from ..models.availability import SlotRead
from ..common.config import settings
from ..common.logger import log
from .user_service import UserService
from .availability_service import AvailabilityService
from .appointment_service import AppointmentStore


class SlotService:
    """
    Answers "when can this tutor be booked" and "is this interval still free".
    Reads only; the write-time guarantee lives in the AppointmentStore.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        user_service: Annotated[UserService, Depends(UserService)],
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        appointment_store: Annotated[AppointmentStore, Depends(AppointmentStore)]
    ):
        self.db = db
        self.user_service = user_service
        self.availability_service = availability_service
        self.appointment_store = appointment_store

    @staticmethod
    def _local_day_utc(target_date: date, tz_name: str) -> tuple[datetime, datetime]:
        """[start, end) of the tutor's local calendar day, in UTC."""
        tz = load_timezone(tz_name)
        day_start = datetime.combine(target_date, time.min, tzinfo=tz)
        day_end = datetime.combine(target_date + timedelta(days=1), time.min, tzinfo=tz)
        return day_start.astimezone(timezone.utc), day_end.astimezone(timezone.utc)

    async def get_available_slots(
        self,
        tutor_id: UUID,
        target_date: date,
        duration_minutes: Optional[int] = None,
        step_minutes: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> list[Slot]:
        """
        Free slots of `duration_minutes` on the tutor's local `target_date`,
        ordered by start. Slots that already started are left out.
        """
        duration_minutes = duration_minutes or settings.DEFAULT_LESSON_MINUTES
        step_minutes = step_minutes or settings.DEFAULT_SLOT_STEP_MINUTES
        log.info(f"Computing {duration_minutes}-minute slots for tutor {tutor_id} on {target_date}.")

        tutor = await self.user_service.get_user_with_role(tutor_id, UserRole.TUTOR)
        windows = await self.availability_service.list_windows(tutor_id)
        generator = SlotGenerator(windows, target_date, tutor.timezone, duration_minutes, step_minutes)

        day_start, day_end = self._local_day_utc(target_date, tutor.timezone)
        appointments = await self.appointment_store.list_by_tutor(
            tutor_id, start=day_start, end=day_end, statuses=BLOCKING_STATUSES
        )
        free = ConflictResolver(tutor_id, appointments).filter_free(generator)

        now = now or datetime.now(timezone.utc)
        return [slot for slot in free if slot.start > now]

    async def get_available_slots_for_api(
        self,
        tutor_id: UUID,
        target_date: date,
        duration_minutes: Optional[int] = None,
        step_minutes: Optional[int] = None
    ) -> list[SlotRead]:
        slots = await self.get_available_slots(tutor_id, target_date, duration_minutes, step_minutes)
        return [SlotRead(start=slot.start, end=slot.end) for slot in slots]

    async def is_free(
        self,
        start: datetime,
        end: datetime,
        tutor_id: UUID,
        exclude_appointment_id: Optional[UUID] = None
    ) -> bool:
        """No blocking appointment of the tutor intersects [start, end)."""
        clashing = await self.appointment_store.find_overlapping(tutor_id, start, end, exclude_appointment_id)
        return not clashing

    async def fits_availability(self, tutor: db_models.Users, start: datetime, end: datetime) -> bool:
        """[start, end) lies inside one of the tutor's windows."""
        windows = await self.availability_service.list_windows(tutor.id)
        return fits_availability(start, end, windows, tutor.timezone)
