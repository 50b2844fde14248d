'''
Tutor availability windows: the declared recurring and date-specific
intervals slots are derived from.
'''
from datetime import date, time
from typing import Optional, Annotated, Union
from uuid import UUID
from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import UserRole, AppointmentStatusEnum
from ..database.utils import utc_now
from ..models import availability as availability_models
from ..core.slots import fits_availability, load_timezone, window_bounds_utc
from ..common.exceptions import ValidationError, NotFoundError, AvailabilityInUse
from ..common.logger import log
from .user_service import UserService, authorize_roles
from .appointment_service import AppointmentStore


class AvailabilityService:
    """
    Service for listing and editing availability windows.
    Only the owning tutor (or an admin) may write; anyone may read.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        user_service: Annotated[UserService, Depends(UserService)],
        appointment_store: Annotated[AppointmentStore, Depends(AppointmentStore)]
    ):
        self.db = db
        self.user_service = user_service
        self.appointment_store = appointment_store

    # --- 1. Authorization & Validation Helpers ---

    def _authorize_write_access(self, tutor_id: UUID, current_user: db_models.Users):
        """
        Checks if a user may write the windows of `tutor_id` (that tutor or an admin).
        """
        if current_user.role == UserRole.ADMIN.value:
            return
        if not (current_user.role == UserRole.TUTOR.value and tutor_id == current_user.id):
            log.warning(f"SECURITY: User {current_user.id} tried to write availability of tutor {tutor_id}.")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to modify this availability."
            )

    @staticmethod
    def _validate_window(
        is_recurring: bool,
        day_of_week: Optional[int],
        specific_date: Optional[date],
        start_time: Optional[time],
        end_time: Optional[time]
    ):
        """Enforces the write-time invariants of a window."""
        if start_time is None or end_time is None:
            raise ValidationError("A window needs both a start_time and an end_time.")
        if start_time >= end_time:
            raise ValidationError(f"start_time {start_time} must be before end_time {end_time}.")
        if is_recurring:
            if day_of_week is None or not 0 <= day_of_week <= 6:
                raise ValidationError("A recurring window needs a day_of_week between 0 (Sunday) and 6.")
            if specific_date is not None:
                raise ValidationError("A recurring window cannot have a specific_date.")
        else:
            if specific_date is None:
                raise ValidationError("A date-specific window needs a specific_date.")
            if day_of_week is not None:
                raise ValidationError("A date-specific window cannot have a day_of_week.")

    async def _ensure_not_in_use(self, window: db_models.AvailabilityWindows):
        """
        A window cannot change while a scheduled appointment of its tutor
        lies inside it.
        """
        tutor = await self.user_service.get_user_with_role(window.tutor_id, UserRole.TUTOR)
        if window.is_recurring:
            # Every week from now on.
            start, end = utc_now(), None
        else:
            start, end = window_bounds_utc(window, window.specific_date, load_timezone(tutor.timezone))
        scheduled = await self.appointment_store.list_by_tutor(
            window.tutor_id,
            start=start,
            end=end,
            statuses=[AppointmentStatusEnum.SCHEDULED.value]
        )
        for appointment in scheduled:
            if fits_availability(appointment.start_time, appointment.end_time, [window], tutor.timezone):
                log.warning(f"Window {window.id} is locked by appointment {appointment.id}.")
                raise AvailabilityInUse(
                    f"Availability window {window.id} has scheduled appointment {appointment.id} booked against it."
                )

    # --- 2. Internal Fetchers (No Auth) ---

    async def _get_window_by_id_internal(self, window_id: UUID) -> db_models.AvailabilityWindows:
        log.info(f"Internal fetch for availability window by ID: {window_id}")
        window = await self.db.get(db_models.AvailabilityWindows, window_id)
        if not window:
            log.warning(f"Tried to fetch non-existing availability window: {window_id}")
            raise NotFoundError(f"Availability window {window_id} not found.")
        return window

    async def list_windows(self, tutor_id: UUID) -> list[db_models.AvailabilityWindows]:
        """All windows of a tutor; recurring first, then by day/date and start."""
        stmt = select(db_models.AvailabilityWindows).filter(
            db_models.AvailabilityWindows.tutor_id == tutor_id
        ).order_by(
            db_models.AvailabilityWindows.is_recurring.desc(),
            db_models.AvailabilityWindows.day_of_week,
            db_models.AvailabilityWindows.specific_date,
            db_models.AvailabilityWindows.start_time,
            db_models.AvailabilityWindows.id
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # --- 3. API-Facing Methods ---

    def _format_window_for_api(
        self, window: db_models.AvailabilityWindows
    ) -> Union[availability_models.RecurringWindowRead, availability_models.DateSpecificWindowRead]:
        if window.is_recurring:
            return availability_models.RecurringWindowRead(
                id=window.id,
                tutor_id=window.tutor_id,
                kind=availability_models.RECURRING,
                day_of_week=window.day_of_week,
                start_time=window.start_time,
                end_time=window.end_time
            )
        return availability_models.DateSpecificWindowRead(
            id=window.id,
            tutor_id=window.tutor_id,
            kind=availability_models.DATE_SPECIFIC,
            specific_date=window.specific_date,
            start_time=window.start_time,
            end_time=window.end_time
        )

    async def list_windows_for_api(self, tutor_id: UUID) -> list:
        await self.user_service.get_user_with_role(tutor_id, UserRole.TUTOR)
        return [self._format_window_for_api(w) for w in await self.list_windows(tutor_id)]

    async def get_window(self, window_id: UUID) -> db_models.AvailabilityWindows:
        return await self._get_window_by_id_internal(window_id)

    async def get_window_for_api(self, window_id: UUID):
        return self._format_window_for_api(await self.get_window(window_id))

    async def create_window(
        self,
        data: Union[availability_models.RecurringWindowCreate, availability_models.DateSpecificWindowCreate],
        current_user: db_models.Users
    ) -> db_models.AvailabilityWindows:
        """
        Creates a window for the current tutor, or for `data.tutor_id` when
        the current user is an admin.
        """
        authorize_roles(current_user, [UserRole.TUTOR, UserRole.ADMIN])
        if current_user.role == UserRole.ADMIN.value:
            if data.tutor_id is None:
                raise ValidationError("Admins must provide the tutor_id the window belongs to.")
            tutor_id = data.tutor_id
        else:
            tutor_id = data.tutor_id or current_user.id
        self._authorize_write_access(tutor_id, current_user)
        await self.user_service.get_user_with_role(tutor_id, UserRole.TUTOR)

        is_recurring = data.kind == availability_models.RECURRING
        day_of_week = data.day_of_week if is_recurring else None
        specific_date = None if is_recurring else data.specific_date
        self._validate_window(is_recurring, day_of_week, specific_date, data.start_time, data.end_time)

        log.info(f"User {current_user.id} creating {data.kind} window for tutor {tutor_id}.")
        window = db_models.AvailabilityWindows(
            tutor_id=tutor_id,
            is_recurring=is_recurring,
            day_of_week=day_of_week,
            specific_date=specific_date,
            start_time=data.start_time,
            end_time=data.end_time
        )
        self.db.add(window)
        await self.db.flush()
        return window

    async def create_window_for_api(self, data, current_user: db_models.Users):
        return self._format_window_for_api(await self.create_window(data, current_user))

    async def update_window(
        self,
        window_id: UUID,
        data: availability_models.AvailabilityWindowUpdate,
        current_user: db_models.Users
    ) -> db_models.AvailabilityWindows:
        """
        Partially updates a window. The merged window is validated as a whole,
        so switching kind requires the matching day_of_week / specific_date.
        """
        log.info(f"User {current_user.id} attempting to update availability window {window_id}.")
        window = await self._get_window_by_id_internal(window_id)
        self._authorize_write_access(window.tutor_id, current_user)

        update_data = data.model_dump(exclude_unset=True)
        if not update_data:
            raise ValidationError("No fields provided to update.")

        kind = update_data.pop("kind", None)
        is_recurring = window.is_recurring if kind is None else kind == availability_models.RECURRING
        merged = {
            "day_of_week": window.day_of_week,
            "specific_date": window.specific_date,
            "start_time": window.start_time,
            "end_time": window.end_time,
        }
        merged.update(update_data)
        # Switching kind drops the field of the other variant.
        if kind is not None and is_recurring != window.is_recurring:
            if is_recurring and "specific_date" not in update_data:
                merged["specific_date"] = None
            if not is_recurring and "day_of_week" not in update_data:
                merged["day_of_week"] = None
        self._validate_window(is_recurring, **merged)

        await self._ensure_not_in_use(window)

        window.is_recurring = is_recurring
        for key, value in merged.items():
            setattr(window, key, value)
        window.updated_at = utc_now()
        self.db.add(window)
        await self.db.flush()
        return window

    async def update_window_for_api(self, window_id: UUID, data, current_user: db_models.Users):
        return self._format_window_for_api(await self.update_window(window_id, data, current_user))

    async def delete_window(self, window_id: UUID, current_user: db_models.Users) -> bool:
        log.info(f"User {current_user.id} attempting to delete availability window {window_id}.")
        window = await self._get_window_by_id_internal(window_id)
        self._authorize_write_access(window.tutor_id, current_user)
        await self._ensure_not_in_use(window)
        await self.db.delete(window)
        await self.db.flush()
        return True
