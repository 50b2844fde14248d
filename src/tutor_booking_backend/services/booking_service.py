'''
Booking orchestration: the appointment state machine

    (none) --book--> scheduled --cancel--> cancelled
                     scheduled --mark_outcome--> completed | no_show

plus the balance effects of every transition.
'''
from datetime import datetime, timedelta, timezone
from typing import Optional, Annotated
from uuid import UUID
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import UserRole, AppointmentStatusEnum, CancelledByEnum, OUTCOME_STATUSES
from ..models import appointment as appointment_models
from ..core.events import (
    EventPublisher, get_event_publisher,
    AppointmentBooked, AppointmentCancelled, AppointmentRescheduled, AppointmentCompleted
)
from ..common.config import settings
from ..common.exceptions import (
    ValidationError, NotFoundError, InvalidTransition, SlotUnavailable,
    OverlapError, ReconciliationError, SchedulingError
)
from ..common.logger import log
from .user_service import UserService, authorize_roles
from .slot_service import SlotService
from .appointment_service import AppointmentStore
from .balance_service import BalanceLedger, Reservation


class BookingService:
    """
    Service for booking, cancelling, rescheduling and closing appointments.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        user_service: Annotated[UserService, Depends(UserService)],
        slot_service: Annotated[SlotService, Depends(SlotService)],
        appointment_store: Annotated[AppointmentStore, Depends(AppointmentStore)],
        ledger: Annotated[BalanceLedger, Depends(BalanceLedger)],
        publisher: Annotated[EventPublisher, Depends(get_event_publisher)]
    ):
        self.db = db
        self.user_service = user_service
        self.slot_service = slot_service
        self.appointment_store = appointment_store
        self.ledger = ledger
        self.publisher = publisher

    # --- 1. Validation & Authorization Helpers ---

    @staticmethod
    def _validate_interval(start: datetime, end: datetime, now: datetime) -> tuple[datetime, datetime]:
        """Normalises [start, end) to UTC and rejects malformed or past intervals."""
        if start.tzinfo is None or end.tzinfo is None:
            raise ValidationError("Appointment times must carry a timezone.")
        start = start.astimezone(timezone.utc)
        end = end.astimezone(timezone.utc)
        if end <= start:
            raise ValidationError(f"end {end} must be after start {start}.")
        if (end - start) % timedelta(minutes=1):
            raise ValidationError("Appointment length must be a whole number of minutes.")
        if start <= now:
            raise ValidationError(f"Cannot book a slot starting at {start}; it is in the past.")
        return start, end

    def _has_notice(self, appointment: db_models.Appointments, now: datetime) -> bool:
        return now <= appointment.start_time - timedelta(hours=settings.CANCELLATION_NOTICE_HOURS)

    def _authorize_participant(self, appointment: db_models.Appointments, current_user: db_models.Users):
        """The appointment's student, its tutor, or an admin."""
        if current_user.role == UserRole.ADMIN.value:
            return
        if current_user.id in (appointment.student_id, appointment.tutor_id):
            return
        log.warning(f"SECURITY: User {current_user.id} tried to access appointment {appointment.id}.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this appointment."
        )

    def _authorize_outcome(self, appointment: db_models.Appointments, current_user: db_models.Users):
        """Only the appointment's tutor or an admin records what happened."""
        if current_user.role == UserRole.ADMIN.value:
            return
        if current_user.role == UserRole.TUTOR.value and current_user.id == appointment.tutor_id:
            return
        log.warning(f"SECURITY: User {current_user.id} tried to record the outcome of appointment {appointment.id}.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the tutor of this appointment can record its outcome."
        )

    def _resolve_student_id(self, student_id: Optional[UUID], current_user: db_models.Users) -> UUID:
        authorize_roles(current_user, [UserRole.STUDENT, UserRole.ADMIN])
        if current_user.role == UserRole.STUDENT.value:
            if student_id is not None and student_id != current_user.id:
                log.warning(f"SECURITY: Student {current_user.id} tried to book for student {student_id}.")
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Students can only book appointments for themselves."
                )
            return current_user.id
        if student_id is None:
            raise ValidationError("Admins must provide the student_id to book for.")
        return student_id

    async def _require_user(self, user_id: UUID, role: UserRole) -> db_models.Users:
        try:
            return await self.user_service.get_user_with_role(user_id, role)
        except NotFoundError as e:
            raise ValidationError(e.detail) from e

    async def _ensure_bookable(
        self,
        tutor: db_models.Users,
        start: datetime,
        end: datetime,
        exclude_appointment_id: Optional[UUID] = None
    ):
        if not await self.slot_service.fits_availability(tutor, start, end):
            log.warning(f"[{start}, {end}) is outside the availability of tutor {tutor.id}.")
            raise SlotUnavailable(f"Tutor {tutor.id} is not available in [{start}, {end}).")
        if not await self.slot_service.is_free(start, end, tutor.id, exclude_appointment_id):
            log.warning(f"[{start}, {end}) is already taken for tutor {tutor.id}.")
            raise SlotUnavailable(f"Tutor {tutor.id} already has an appointment in [{start}, {end}).")

    async def _rollback_reservation(self, reservation: Reservation):
        try:
            await self.ledger.release(reservation)
        except Exception as e:
            log.critical(
                f"RECONCILIATION NEEDED: {reservation.minutes} minutes debited from balance "
                f"{reservation.balance_id} (student {reservation.student_id}) without an appointment: {e}",
                exc_info=True
            )
            if isinstance(e, ReconciliationError):
                raise
            raise ReconciliationError(
                f"Hours reserved on balance {reservation.balance_id} could not be released."
            ) from e

    # --- 2. State Transitions ---

    async def book(
        self,
        data: appointment_models.AppointmentCreate,
        current_user: db_models.Users,
        now: Optional[datetime] = None
    ) -> db_models.Appointments:
        """
        Books [start, end) with a tutor, paying with the student's hours.
        Raises SlotUnavailable when the slot was taken in the meantime
        (including by a concurrent booking) and InsufficientBalance when the
        student cannot pay. On failure no hours are consumed.
        """
        now = now or datetime.now(timezone.utc)
        student_id = self._resolve_student_id(data.student_id, current_user)
        start, end = self._validate_interval(data.start, data.end, now)
        log.info(f"User {current_user.id} booking tutor {data.tutor_id} for student {student_id} at [{start}, {end}).")

        tutor = await self._require_user(data.tutor_id, UserRole.TUTOR)
        await self._require_user(student_id, UserRole.STUDENT)

        await self._ensure_bookable(tutor, start, end)

        minutes = int((end - start) / timedelta(minutes=1))
        reservation = await self.ledger.reserve(student_id, minutes, data.course_id)
        try:
            appointment = await self.appointment_store.create(
                student_id=student_id,
                tutor_id=tutor.id,
                balance_id=reservation.balance_id,
                start=start,
                end=end,
                course_id=data.course_id,
                notes=data.notes
            )
        except OverlapError as e:
            await self._rollback_reservation(reservation)
            raise SlotUnavailable(f"Tutor {tutor.id} was booked by someone else for [{start}, {end}).") from e

        await self.ledger.attach_appointment(reservation, appointment.id)
        log.info(f"Appointment {appointment.id} booked.")
        await self.publisher.publish(AppointmentBooked(
            appointment_id=appointment.id,
            student_id=appointment.student_id,
            tutor_id=appointment.tutor_id,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            course_id=appointment.course_id
        ))
        return appointment

    async def cancel(
        self,
        appointment_id: UUID,
        current_user: db_models.Users,
        now: Optional[datetime] = None
    ) -> db_models.Appointments:
        """
        Cancels a scheduled appointment. Tutor and admin cancellations always
        give the hours back; a student's only with enough notice.
        """
        now = now or datetime.now(timezone.utc)
        log.info(f"User {current_user.id} attempting to cancel appointment {appointment_id}.")
        appointment = await self.appointment_store.get(appointment_id)
        self._authorize_participant(appointment, current_user)

        cancelled_by = CancelledByEnum(current_user.role)
        credit = cancelled_by != CancelledByEnum.STUDENT or self._has_notice(appointment, now)

        appointment = await self.appointment_store.update_status(
            appointment_id, AppointmentStatusEnum.CANCELLED, cancelled_by=cancelled_by.value
        )
        credited = False
        if credit:
            credited = await self.ledger.credit_back(appointment_id)
        else:
            log.info(f"Appointment {appointment_id} cancelled by the student without notice; hours forfeited.")

        appointment = await self.appointment_store.get(appointment_id)
        await self.publisher.publish(AppointmentCancelled(
            appointment_id=appointment.id,
            student_id=appointment.student_id,
            tutor_id=appointment.tutor_id,
            cancelled_by=cancelled_by.value,
            cancelled_at=appointment.cancelled_at,
            credited_back=credited
        ))
        return appointment

    async def mark_outcome(
        self,
        appointment_id: UUID,
        outcome: str,
        current_user: db_models.Users
    ) -> db_models.Appointments:
        """Closes a scheduled appointment as completed or no_show. Balances are untouched."""
        log.info(f"User {current_user.id} marking appointment {appointment_id} as '{outcome}'.")
        if outcome not in OUTCOME_STATUSES:
            raise ValidationError(f"'{outcome}' is not an appointment outcome.")
        new_status = AppointmentStatusEnum(outcome)

        appointment = await self.appointment_store.get(appointment_id)
        self._authorize_outcome(appointment, current_user)
        appointment = await self.appointment_store.update_status(appointment_id, new_status)

        await self.publisher.publish(AppointmentCompleted(appointment_id=appointment.id, outcome=new_status.value))
        return appointment

    async def reschedule(
        self,
        appointment_id: UUID,
        data: appointment_models.AppointmentReschedule,
        current_user: db_models.Users,
        now: Optional[datetime] = None
    ) -> db_models.Appointments:
        """
        Moves a scheduled appointment to [start, end). A change in length is
        settled on the balance the appointment was paid from.
        """
        now = now or datetime.now(timezone.utc)
        log.info(f"User {current_user.id} attempting to reschedule appointment {appointment_id}.")
        appointment = await self.appointment_store.get(appointment_id)
        self._authorize_participant(appointment, current_user)

        if appointment.status != AppointmentStatusEnum.SCHEDULED.value:
            raise InvalidTransition(f"Appointment {appointment_id} is '{appointment.status}' and cannot be rescheduled.")
        if current_user.role == UserRole.STUDENT.value and not self._has_notice(appointment, now):
            raise ValidationError(
                f"Students must reschedule at least {settings.CANCELLATION_NOTICE_HOURS} hours in advance."
            )

        start, end = self._validate_interval(data.start, data.end, now)
        tutor = await self.user_service.get_user_with_role(appointment.tutor_id, UserRole.TUTOR)
        await self._ensure_bookable(tutor, start, end, exclude_appointment_id=appointment_id)

        old_start, old_end = appointment.start_time, appointment.end_time
        delta = int((end - start) / timedelta(minutes=1)) - appointment.duration_minutes
        await self.ledger.adjust(appointment.balance_id, delta, appointment_id)
        try:
            appointment = await self.appointment_store.reschedule_times(appointment_id, start, end)
        except SchedulingError as e:
            try:
                await self.ledger.adjust(appointment.balance_id, -delta, appointment_id)
            except Exception as rollback_error:
                log.critical(
                    f"RECONCILIATION NEEDED: adjustment of {delta} minutes on balance "
                    f"{appointment.balance_id} for appointment {appointment_id} could not be undone: {rollback_error}",
                    exc_info=True
                )
                raise ReconciliationError(
                    f"Balance {appointment.balance_id} needs manual reconciliation."
                ) from rollback_error
            if isinstance(e, OverlapError):
                raise SlotUnavailable(f"Tutor {tutor.id} was booked by someone else for [{start}, {end}).") from e
            raise

        await self.publisher.publish(AppointmentRescheduled(
            appointment_id=appointment.id,
            old_start_time=old_start,
            old_end_time=old_end,
            start_time=appointment.start_time,
            end_time=appointment.end_time
        ))
        return appointment

    # --- 3. Reads ---

    async def get_appointment(self, appointment_id: UUID, current_user: db_models.Users) -> db_models.Appointments:
        appointment = await self.appointment_store.get(appointment_id)
        self._authorize_participant(appointment, current_user)
        return appointment

    async def list_appointments(
        self,
        current_user: db_models.Users,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> list[db_models.Appointments]:
        """The current user's appointments; admins see everyone's."""
        log.info(f"Listing appointments for user {current_user.id} (Role: {current_user.role}).")
        if current_user.role == UserRole.STUDENT.value:
            return await self.appointment_store.list_by_student(current_user.id, start, end)
        if current_user.role == UserRole.TUTOR.value:
            return await self.appointment_store.list_by_tutor(current_user.id, start, end)
        return await self.appointment_store.list_all(start, end)

    # --- 4. API-Facing Wrappers ---

    async def book_for_api(self, data, current_user) -> appointment_models.AppointmentRead:
        return appointment_models.AppointmentRead.model_validate(await self.book(data, current_user))

    async def cancel_for_api(self, appointment_id: UUID, current_user) -> appointment_models.AppointmentRead:
        return appointment_models.AppointmentRead.model_validate(await self.cancel(appointment_id, current_user))

    async def mark_outcome_for_api(self, appointment_id: UUID, data, current_user) -> appointment_models.AppointmentRead:
        appointment = await self.mark_outcome(appointment_id, data.outcome, current_user)
        return appointment_models.AppointmentRead.model_validate(appointment)

    async def reschedule_for_api(self, appointment_id: UUID, data, current_user) -> appointment_models.AppointmentRead:
        appointment = await self.reschedule(appointment_id, data, current_user)
        return appointment_models.AppointmentRead.model_validate(appointment)

    async def get_appointment_for_api(self, appointment_id: UUID, current_user) -> appointment_models.AppointmentRead:
        return appointment_models.AppointmentRead.model_validate(await self.get_appointment(appointment_id, current_user))

    async def list_appointments_for_api(self, current_user, start=None, end=None) -> list[appointment_models.AppointmentRead]:
        appointments = await self.list_appointments(current_user, start, end)
        return [appointment_models.AppointmentRead.model_validate(a) for a in appointments]
