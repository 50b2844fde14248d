'''
The hours ledger: debits on booking, credits on eligible cancellation.

Balances are kept in whole minutes. Every mutation is a single conditional
UPDATE evaluated by the database, never a read-then-write from Python, and
every mutation appends a ledger entry with the resulting balance.
'''
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Annotated
from uuid import UUID
from fastapi import Depends, HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import LedgerReasonEnum, UserRole
from ..models import balance as balance_models
from ..database.utils import utc_now
from ..common.exceptions import InsufficientBalance, NotFoundError, ReconciliationError, ValidationError
from ..common.logger import log
from .appointment_service import AppointmentStore
from .user_service import authorize_roles


@dataclass(frozen=True)
class Reservation:
    """Hours taken from a balance for a booking that is not committed yet."""
    balance_id: UUID
    student_id: UUID
    minutes: int
    entry_id: UUID


def hours_to_minutes(hours: Decimal) -> int:
    minutes = Decimal(hours) * 60
    if minutes != minutes.to_integral_value():
        raise ValidationError(f"{hours} hours is not a whole number of minutes.")
    return int(minutes)


class BalanceLedger:
    """
    Mechanical debit/credit of hours balances. Business rules (who gets a
    credit-back and when) belong to the BookingService.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        appointment_store: Annotated[AppointmentStore, Depends(AppointmentStore)]
    ):
        self.db = db
        self.appointment_store = appointment_store

    # --- Reads ---

    def _scope(self, stmt, student_id: UUID, course_id: Optional[UUID]):
        stmt = stmt.where(db_models.HoursBalances.student_id == student_id)
        if course_id is None:
            return stmt.where(db_models.HoursBalances.course_id.is_(None))
        return stmt.where(db_models.HoursBalances.course_id == course_id)

    async def find_balance(self, student_id: UUID, course_id: Optional[UUID] = None) -> db_models.HoursBalances | None:
        stmt = self._scope(select(db_models.HoursBalances), student_id, course_id)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalars().first()

    async def get_balance(self, student_id: UUID, course_id: Optional[UUID] = None) -> db_models.HoursBalances:
        balance = await self.find_balance(student_id, course_id)
        if balance is None:
            raise NotFoundError(f"No hours balance for student {student_id} (course {course_id}).")
        return balance

    async def get_balance_by_id(self, balance_id: UUID) -> db_models.HoursBalances:
        stmt = select(db_models.HoursBalances).where(
            db_models.HoursBalances.id == balance_id
        ).execution_options(populate_existing=True)
        balance = (await self.db.execute(stmt)).scalars().first()
        if balance is None:
            raise NotFoundError(f"Hours balance {balance_id} not found.")
        return balance

    async def list_balances(self, student_id: Optional[UUID] = None) -> list[db_models.HoursBalances]:
        stmt = select(db_models.HoursBalances).order_by(
            db_models.HoursBalances.student_id, db_models.HoursBalances.course_id
        )
        if student_id is not None:
            stmt = stmt.where(db_models.HoursBalances.student_id == student_id)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def list_entries(self, balance_id: UUID) -> list[db_models.HoursLedgerEntries]:
        stmt = select(db_models.HoursLedgerEntries).where(
            db_models.HoursLedgerEntries.balance_id == balance_id
        ).order_by(db_models.HoursLedgerEntries.created_at, db_models.HoursLedgerEntries.id)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    # --- Internal Writers ---

    async def _record(
        self,
        balance_id: UUID,
        delta_minutes: int,
        reason: LedgerReasonEnum,
        balance_after_minutes: int,
        appointment_id: Optional[UUID] = None
    ) -> db_models.HoursLedgerEntries:
        entry = db_models.HoursLedgerEntries(
            balance_id=balance_id,
            appointment_id=appointment_id,
            delta_minutes=delta_minutes,
            reason=reason.value,
            balance_after_minutes=balance_after_minutes
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def _debit(self, where_clauses: list, minutes: int) -> tuple[UUID, int] | None:
        """
        used += minutes, only where the balance can cover it.
        Returns (balance_id, available_after) or None when nothing matched.
        """
        balances = db_models.HoursBalances
        stmt = update(balances).where(
            *where_clauses,
            balances.total_purchased_minutes - balances.used_minutes >= minutes
        ).values(
            used_minutes=balances.used_minutes + minutes,
            updated_at=utc_now()
        ).returning(
            balances.id, balances.total_purchased_minutes - balances.used_minutes
        ).execution_options(synchronize_session=False)
        row = (await self.db.execute(stmt)).first()
        return (row[0], row[1]) if row else None

    async def _credit(self, balance_id: UUID, minutes: int) -> int | None:
        """used -= minutes, never below zero. Returns available_after or None."""
        balances = db_models.HoursBalances
        stmt = update(balances).where(
            balances.id == balance_id,
            balances.used_minutes >= minutes
        ).values(
            used_minutes=balances.used_minutes - minutes,
            updated_at=utc_now()
        ).returning(
            balances.total_purchased_minutes - balances.used_minutes
        ).execution_options(synchronize_session=False)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    # --- Public Writers ---

    async def add_purchased_hours(self, student_id: UUID, minutes: int, course_id: Optional[UUID] = None) -> db_models.HoursBalances:
        """
        Credits purchased time to a balance, creating the balance on first
        purchase. Called by the payments collaborator once a purchase completes.
        """
        if minutes <= 0:
            raise ValidationError("Purchased time must be positive.")
        log.info(f"Adding {minutes} purchased minutes to student {student_id} (course {course_id}).")

        if await self.find_balance(student_id, course_id) is None:
            try:
                async with self.db.begin_nested():
                    self.db.add(db_models.HoursBalances(
                        student_id=student_id,
                        course_id=course_id,
                        total_purchased_minutes=0,
                        used_minutes=0
                    ))
                    await self.db.flush()
            except IntegrityError:
                # A concurrent purchase created the row first.
                log.info(f"Balance for student {student_id} (course {course_id}) already created concurrently.")

        balances = db_models.HoursBalances
        stmt = self._scope(update(balances), student_id, course_id).values(
            total_purchased_minutes=balances.total_purchased_minutes + minutes,
            updated_at=utc_now()
        ).returning(
            balances.id, balances.total_purchased_minutes - balances.used_minutes
        ).execution_options(synchronize_session=False)
        balance_id, available_after = (await self.db.execute(stmt)).one()
        await self._record(balance_id, minutes, LedgerReasonEnum.PURCHASE, available_after)
        return await self.get_balance_by_id(balance_id)

    async def reserve(self, student_id: UUID, minutes: int, course_id: Optional[UUID] = None) -> Reservation:
        """
        Atomically checks `available >= minutes` and takes the minutes.
        Raises InsufficientBalance when the balance (or the balance row) is missing.
        """
        if minutes <= 0:
            raise ValidationError("Reserved time must be positive.")
        balances = db_models.HoursBalances
        where = [balances.student_id == student_id]
        where.append(balances.course_id.is_(None) if course_id is None else balances.course_id == course_id)

        debited = await self._debit(where, minutes)
        if debited is None:
            log.warning(f"Student {student_id} lacks {minutes} minutes on course {course_id}.")
            raise InsufficientBalance(f"Student {student_id} does not have {minutes} minutes available.")

        balance_id, available_after = debited
        entry = await self._record(balance_id, -minutes, LedgerReasonEnum.BOOKING, available_after)
        log.info(f"Reserved {minutes} minutes on balance {balance_id}; {available_after} left.")
        return Reservation(balance_id=balance_id, student_id=student_id, minutes=minutes, entry_id=entry.id)

    async def attach_appointment(self, reservation: Reservation, appointment_id: UUID):
        """Links the reservation's ledger entry to the appointment it paid for."""
        stmt = update(db_models.HoursLedgerEntries).where(
            db_models.HoursLedgerEntries.id == reservation.entry_id
        ).values(appointment_id=appointment_id).execution_options(synchronize_session=False)
        await self.db.execute(stmt)

    async def release(self, reservation: Reservation):
        """
        Gives back a reservation whose booking failed. A failure here means
        hours were debited with no appointment, so it is never swallowed.
        """
        available_after = await self._credit(reservation.balance_id, reservation.minutes)
        if available_after is None:
            raise ReconciliationError(
                f"Could not release {reservation.minutes} minutes on balance {reservation.balance_id}."
            )
        await self._record(reservation.balance_id, reservation.minutes, LedgerReasonEnum.BOOKING_ROLLBACK, available_after)
        log.info(f"Released reservation of {reservation.minutes} minutes on balance {reservation.balance_id}.")

    async def adjust(self, balance_id: UUID, delta_minutes: int, appointment_id: UUID):
        """
        Settles a change of duration on an existing booking: a positive delta
        takes more time (InsufficientBalance if not covered), a negative one gives it back.
        """
        if delta_minutes == 0:
            return
        if delta_minutes > 0:
            debited = await self._debit([db_models.HoursBalances.id == balance_id], delta_minutes)
            if debited is None:
                raise InsufficientBalance(f"Balance {balance_id} cannot cover {delta_minutes} more minutes.")
            available_after = debited[1]
        else:
            available_after = await self._credit(balance_id, -delta_minutes)
            if available_after is None:
                raise ReconciliationError(f"Could not give back {-delta_minutes} minutes on balance {balance_id}.")
        await self._record(balance_id, -delta_minutes, LedgerReasonEnum.RESCHEDULE_ADJUSTMENT, available_after, appointment_id)

    async def credit_back(self, appointment_id: UUID, minutes: Optional[int] = None) -> bool:
        """
        Restores an appointment's hours to the balance it was booked against.
        Idempotent: the appointment's credited_back flag is set by a
        conditional update first, and only the call that sets it credits.
        Returns True if this call credited, False if it was a no-op.
        """
        appointment = await self.appointment_store.mark_credited_back(appointment_id)
        if appointment is None:
            log.info(f"Appointment {appointment_id} was already credited back; nothing to do.")
            return False

        if minutes is None:
            minutes = appointment.duration_minutes
        available_after = await self._credit(appointment.balance_id, minutes)
        if available_after is None:
            raise ReconciliationError(
                f"Could not credit {minutes} minutes back to balance {appointment.balance_id} for appointment {appointment_id}."
            )
        await self._record(appointment.balance_id, minutes, LedgerReasonEnum.CREDIT_BACK, available_after, appointment_id)
        log.info(f"Credited {minutes} minutes back for appointment {appointment_id}.")
        return True

    # --- API-Facing Methods ---

    def _authorize_balance_read(self, student_id: UUID, current_user: db_models.Users):
        if current_user.role == UserRole.ADMIN.value:
            return
        if not (current_user.role == UserRole.STUDENT.value and current_user.id == student_id):
            log.warning(f"SECURITY: User {current_user.id} tried to read the balance of student {student_id}.")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to view this balance."
            )

    async def list_balances_for_api(
        self, current_user: db_models.Users, student_id: Optional[UUID] = None
    ) -> list[balance_models.BalanceRead]:
        """Students see their own balances; admins see one student's, or everyone's."""
        authorize_roles(current_user, [UserRole.STUDENT, UserRole.ADMIN])
        if current_user.role == UserRole.STUDENT.value:
            student_id = current_user.id
        balances = await self.list_balances(student_id)
        return [balance_models.BalanceRead.model_validate(b) for b in balances]

    async def list_entries_for_api(
        self, balance_id: UUID, current_user: db_models.Users
    ) -> list[balance_models.LedgerEntryRead]:
        balance = await self.get_balance_by_id(balance_id)
        self._authorize_balance_read(balance.student_id, current_user)
        return [balance_models.LedgerEntryRead.model_validate(e) for e in await self.list_entries(balance_id)]

    async def add_purchased_hours_for_api(
        self, data: balance_models.HoursPurchaseCreate, current_user: db_models.Users
    ) -> balance_models.BalanceRead:
        authorize_roles(current_user, [UserRole.ADMIN])
        student = await self.db.get(db_models.Users, data.student_id)
        if student is None or student.role != UserRole.STUDENT.value:
            raise NotFoundError(f"Student {data.student_id} not found.")
        balance = await self.add_purchased_hours(data.student_id, hours_to_minutes(data.hours), data.course_id)
        return balance_models.BalanceRead.model_validate(balance)
