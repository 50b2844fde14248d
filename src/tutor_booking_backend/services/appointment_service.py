'''
Persistence for appointments and their status transitions.
'''
from datetime import datetime
from typing import Optional, Annotated, Iterable
from uuid import UUID
from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import AppointmentStatusEnum, BLOCKING_STATUSES
from ..database.utils import APPOINTMENT_OVERLAP_CONSTRAINT, utc_now
from ..common.exceptions import NotFoundError, InvalidTransition, OverlapError
from ..common.logger import log


class AppointmentStore:
    """
    Stores appointments and guards the no-double-booking invariant at write
    time. Every write that could create an overlap runs inside a SAVEPOINT:
    an application-level overlap check first, then the PostgreSQL exclusion
    constraint as the final arbiter between concurrent transactions.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    # --- Reads ---

    async def get(self, appointment_id: UUID) -> db_models.Appointments:
        log.info(f"Internal fetch for appointment by ID: {appointment_id}")
        stmt = select(db_models.Appointments).filter(
            db_models.Appointments.id == appointment_id
        ).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        appointment = result.scalars().first()
        if not appointment:
            log.warning(f"Tried to fetch non-existing appointment: {appointment_id}")
            raise NotFoundError(f"Appointment {appointment_id} not found.")
        return appointment

    def _in_range(self, stmt, start: Optional[datetime], end: Optional[datetime]):
        # Appointments that intersect [start, end).
        if start is not None:
            stmt = stmt.filter(db_models.Appointments.end_time > start)
        if end is not None:
            stmt = stmt.filter(db_models.Appointments.start_time < end)
        return stmt

    async def list_by_tutor(
        self,
        tutor_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        statuses: Optional[Iterable[str]] = None
    ) -> list[db_models.Appointments]:
        stmt = select(db_models.Appointments).filter(
            db_models.Appointments.tutor_id == tutor_id
        ).order_by(db_models.Appointments.start_time, db_models.Appointments.id)
        stmt = self._in_range(stmt, start, end)
        if statuses is not None:
            stmt = stmt.filter(db_models.Appointments.status.in_(list(statuses)))
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def list_by_student(
        self,
        student_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> list[db_models.Appointments]:
        stmt = select(db_models.Appointments).filter(
            db_models.Appointments.student_id == student_id
        ).order_by(db_models.Appointments.start_time, db_models.Appointments.id)
        stmt = self._in_range(stmt, start, end)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def list_all(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[db_models.Appointments]:
        stmt = select(db_models.Appointments).order_by(db_models.Appointments.start_time, db_models.Appointments.id)
        stmt = self._in_range(stmt, start, end)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def find_overlapping(
        self,
        tutor_id: UUID,
        start: datetime,
        end: datetime,
        exclude_appointment_id: Optional[UUID] = None
    ) -> list[db_models.Appointments]:
        """Blocking (scheduled or completed) appointments of the tutor intersecting [start, end)."""
        stmt = select(db_models.Appointments).filter(
            db_models.Appointments.tutor_id == tutor_id,
            db_models.Appointments.status.in_(BLOCKING_STATUSES),
            db_models.Appointments.start_time < end,
            db_models.Appointments.end_time > start,
        )
        if exclude_appointment_id is not None:
            stmt = stmt.filter(db_models.Appointments.id != exclude_appointment_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # --- Writes ---

    async def _guard_overlap(self, tutor_id: UUID, start: datetime, end: datetime, exclude_appointment_id: Optional[UUID] = None):
        clashing = await self.find_overlapping(tutor_id, start, end, exclude_appointment_id)
        if clashing:
            log.warning(f"Overlap for tutor {tutor_id} at [{start}, {end}): clashes with {[a.id for a in clashing]}")
            raise OverlapError(f"Tutor {tutor_id} already has an appointment in [{start}, {end}).")

    def _translate_integrity_error(self, e: IntegrityError, tutor_id: UUID):
        if APPOINTMENT_OVERLAP_CONSTRAINT in str(e.orig):
            log.warning(f"Exclusion constraint rejected an overlapping appointment for tutor {tutor_id}.")
            raise OverlapError(f"Tutor {tutor_id} was double-booked by a concurrent request.") from e
        raise e

    async def create(
        self,
        student_id: UUID,
        tutor_id: UUID,
        balance_id: UUID,
        start: datetime,
        end: datetime,
        course_id: Optional[UUID] = None,
        notes: Optional[str] = None
    ) -> db_models.Appointments:
        """
        Inserts a scheduled appointment. Raises OverlapError if the tutor
        already has a blocking appointment intersecting [start, end).
        """
        log.info(f"Creating appointment for tutor {tutor_id}, student {student_id} at [{start}, {end}).")
        appointment = db_models.Appointments(
            student_id=student_id,
            tutor_id=tutor_id,
            balance_id=balance_id,
            course_id=course_id,
            start_time=start,
            end_time=end,
            status=AppointmentStatusEnum.SCHEDULED.value,
            notes=notes,
            credited_back=False
        )
        try:
            async with self.db.begin_nested():
                await self._guard_overlap(tutor_id, start, end)
                self.db.add(appointment)
                await self.db.flush()
        except IntegrityError as e:
            self._translate_integrity_error(e, tutor_id)
        return appointment

    async def reschedule_times(self, appointment_id: UUID, start: datetime, end: datetime) -> db_models.Appointments:
        """Moves a scheduled appointment, with the same overlap guarantees as `create`."""
        appointment = await self.get(appointment_id)
        log.info(f"Moving appointment {appointment_id} to [{start}, {end}).")
        try:
            async with self.db.begin_nested():
                await self._guard_overlap(appointment.tutor_id, start, end, exclude_appointment_id=appointment_id)
                stmt = update(db_models.Appointments).where(
                    db_models.Appointments.id == appointment_id,
                    db_models.Appointments.status == AppointmentStatusEnum.SCHEDULED.value
                ).values(
                    start_time=start,
                    end_time=end,
                    updated_at=utc_now()
                ).returning(db_models.Appointments.id).execution_options(synchronize_session=False)
                moved = (await self.db.execute(stmt)).scalar_one_or_none()
        except IntegrityError as e:
            self._translate_integrity_error(e, appointment.tutor_id)
        if moved is None:
            raise InvalidTransition(f"Appointment {appointment_id} is no longer scheduled.")
        return await self.get(appointment_id)

    async def update_status(
        self,
        appointment_id: UUID,
        new_status: AppointmentStatusEnum,
        cancelled_by: Optional[str] = None
    ) -> db_models.Appointments:
        """
        Moves a scheduled appointment to a terminal status. The update is
        conditional on the current status, so of two racing transitions only
        the first to commit succeeds and the other gets InvalidTransition.
        """
        values = {"status": new_status.value, "updated_at": utc_now()}
        if new_status == AppointmentStatusEnum.CANCELLED:
            values["cancelled_by"] = cancelled_by
            values["cancelled_at"] = utc_now()

        stmt = update(db_models.Appointments).where(
            db_models.Appointments.id == appointment_id,
            db_models.Appointments.status == AppointmentStatusEnum.SCHEDULED.value
        ).values(**values).returning(db_models.Appointments.id).execution_options(synchronize_session=False)
        updated = (await self.db.execute(stmt)).scalar_one_or_none()

        if updated is None:
            existing = await self.get(appointment_id)  # raises NotFoundError
            log.warning(f"Rejected transition {existing.status} -> {new_status.value} for appointment {appointment_id}.")
            raise InvalidTransition(
                f"Appointment {appointment_id} is '{existing.status}' and cannot become '{new_status.value}'."
            )
        log.info(f"Appointment {appointment_id} is now '{new_status.value}'.")
        return await self.get(appointment_id)

    async def mark_credited_back(self, appointment_id: UUID) -> Optional[db_models.Appointments]:
        """
        Sets credited_back if it is not set yet. Returns the appointment when
        this call set the flag and None when it was already set.
        """
        stmt = update(db_models.Appointments).where(
            db_models.Appointments.id == appointment_id,
            db_models.Appointments.credited_back.is_(False)
        ).values(credited_back=True, updated_at=utc_now()).returning(
            db_models.Appointments.id
        ).execution_options(synchronize_session=False)
        flagged = (await self.db.execute(stmt)).scalar_one_or_none()
        if flagged is None:
            await self.get(appointment_id)  # raises NotFoundError
            return None
        return await self.get(appointment_id)
