import pytest
import uuid
from decimal import Decimal
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tutor_booking_backend.database import models as db_models
from tutor_booking_backend.database.db_enums import LedgerReasonEnum
from tutor_booking_backend.services.balance_service import BalanceLedger, hours_to_minutes
from tutor_booking_backend.services.appointment_service import AppointmentStore
from tutor_booking_backend.models import balance as balance_models
from tutor_booking_backend.common.exceptions import InsufficientBalance, ValidationError, ReconciliationError

from tests.constants import (
    TEST_STUDENT_ID, TEST_OTHER_STUDENT_ID, TEST_TUTOR_ID,
    TEST_STUDENT_MINUTES, TEST_OTHER_STUDENT_MINUTES, TEST_MONDAY, at
)


class TestHoursToMinutes:

    def test_whole_minutes(self):
        assert hours_to_minutes(Decimal("1.5")) == 90
        assert hours_to_minutes(Decimal("10")) == 600

    def test_fractional_minutes_rejected(self):
        with pytest.raises(ValidationError):
            hours_to_minutes(Decimal("0.001"))


@pytest.mark.anyio
class TestBalanceLedgerReserve:

    async def test_reserve_debits_and_records(self, balance_ledger: BalanceLedger, seeded_db: AsyncSession):
        reservation = await balance_ledger.reserve(TEST_STUDENT_ID, 60)
        balance = await balance_ledger.get_balance(TEST_STUDENT_ID)
        print(f"\n--- After reserve: used={balance.used_minutes}, available={balance.available_minutes} ---")

        assert reservation.minutes == 60
        assert balance.used_minutes == 60
        assert balance.available_minutes == TEST_STUDENT_MINUTES - 60

        entries = await balance_ledger.list_entries(balance.id)
        assert [(e.delta_minutes, e.reason, e.balance_after_minutes) for e in entries] == [
            (-60, LedgerReasonEnum.BOOKING.value, TEST_STUDENT_MINUTES - 60)
        ]

    async def test_reserve_exact_balance(self, balance_ledger: BalanceLedger, seeded_db: AsyncSession):
        await balance_ledger.reserve(TEST_OTHER_STUDENT_ID, TEST_OTHER_STUDENT_MINUTES)
        balance = await balance_ledger.get_balance(TEST_OTHER_STUDENT_ID)
        assert balance.available_minutes == 0

    async def test_insufficient_balance_changes_nothing(self, balance_ledger: BalanceLedger, seeded_db: AsyncSession):
        with pytest.raises(InsufficientBalance):
            await balance_ledger.reserve(TEST_OTHER_STUDENT_ID, TEST_OTHER_STUDENT_MINUTES + 30)
        balance = await balance_ledger.get_balance(TEST_OTHER_STUDENT_ID)
        assert balance.used_minutes == 0
        assert await balance_ledger.list_entries(balance.id) == []

    async def test_missing_balance_is_insufficient(self, balance_ledger: BalanceLedger, seeded_db: AsyncSession):
        with pytest.raises(InsufficientBalance):
            await balance_ledger.reserve(TEST_STUDENT_ID, 60, course_id=uuid.uuid4())

    async def test_release_restores(self, balance_ledger: BalanceLedger, seeded_db: AsyncSession):
        reservation = await balance_ledger.reserve(TEST_STUDENT_ID, 90)
        await balance_ledger.release(reservation)
        balance = await balance_ledger.get_balance(TEST_STUDENT_ID)
        assert balance.used_minutes == 0
        reasons = [e.reason for e in await balance_ledger.list_entries(balance.id)]
        assert reasons == [LedgerReasonEnum.BOOKING.value, LedgerReasonEnum.BOOKING_ROLLBACK.value]

    async def test_release_twice_cannot_go_negative(self, balance_ledger: BalanceLedger, seeded_db: AsyncSession):
        reservation = await balance_ledger.reserve(TEST_STUDENT_ID, 60)
        await balance_ledger.release(reservation)
        with pytest.raises(ReconciliationError):
            await balance_ledger.release(reservation)


@pytest.mark.anyio
class TestBalanceLedgerPurchases:

    async def test_purchase_tops_up_existing_balance(self, balance_ledger: BalanceLedger, seeded_db: AsyncSession):
        balance = await balance_ledger.add_purchased_hours(TEST_STUDENT_ID, 120)
        assert balance.total_purchased_minutes == TEST_STUDENT_MINUTES + 120

    async def test_first_purchase_creates_course_balance(self, balance_ledger: BalanceLedger, seeded_db: AsyncSession):
        course_id = uuid.uuid4()
        balance = await balance_ledger.add_purchased_hours(TEST_STUDENT_ID, 300, course_id=course_id)

        assert balance.course_id == course_id
        assert balance.available_minutes == 300
        assert len(await balance_ledger.list_balances(TEST_STUDENT_ID)) == 2

    async def test_purchase_must_be_positive(self, balance_ledger: BalanceLedger, seeded_db: AsyncSession):
        with pytest.raises(ValidationError):
            await balance_ledger.add_purchased_hours(TEST_STUDENT_ID, 0)

    async def test_admin_purchase_for_api(
        self,
        balance_ledger: BalanceLedger,
        test_admin_orm: db_models.Users
    ):
        data = balance_models.HoursPurchaseCreate(student_id=TEST_OTHER_STUDENT_ID, hours=Decimal("2.5"))
        balance = await balance_ledger.add_purchased_hours_for_api(data, test_admin_orm)

        assert balance.total_purchased_minutes == TEST_OTHER_STUDENT_MINUTES + 150
        assert balance.available_hours == Decimal("3.50")
        assert balance.needs_renewal is False

    async def test_student_cannot_purchase_for_api(
        self,
        balance_ledger: BalanceLedger,
        test_student_orm: db_models.Users
    ):
        data = balance_models.HoursPurchaseCreate(student_id=TEST_STUDENT_ID, hours=Decimal("1"))
        with pytest.raises(HTTPException) as e:
            await balance_ledger.add_purchased_hours_for_api(data, test_student_orm)
        assert e.value.status_code == 403


@pytest.mark.anyio
class TestBalanceLedgerCreditBack:

    async def _booked(self, balance_ledger: BalanceLedger, appointment_store: AppointmentStore):
        reservation = await balance_ledger.reserve(TEST_STUDENT_ID, 60)
        appointment = await appointment_store.create(
            student_id=TEST_STUDENT_ID, tutor_id=TEST_TUTOR_ID, balance_id=reservation.balance_id,
            start=at(TEST_MONDAY, 10), end=at(TEST_MONDAY, 11)
        )
        await balance_ledger.attach_appointment(reservation, appointment.id)
        return appointment

    async def test_credit_back_is_idempotent(
        self,
        balance_ledger: BalanceLedger,
        appointment_store: AppointmentStore,
        seeded_db: AsyncSession
    ):
        appointment = await self._booked(balance_ledger, appointment_store)

        assert await balance_ledger.credit_back(appointment.id) is True
        assert await balance_ledger.credit_back(appointment.id) is False

        balance = await balance_ledger.get_balance(TEST_STUDENT_ID)
        assert balance.used_minutes == 0
        assert (await appointment_store.get(appointment.id)).credited_back is True

        entries = await balance_ledger.list_entries(balance.id)
        assert [e.reason for e in entries] == [LedgerReasonEnum.BOOKING.value, LedgerReasonEnum.CREDIT_BACK.value]
        assert all(e.appointment_id == appointment.id for e in entries)

    async def test_adjust_both_ways(
        self,
        balance_ledger: BalanceLedger,
        appointment_store: AppointmentStore,
        seeded_db: AsyncSession
    ):
        appointment = await self._booked(balance_ledger, appointment_store)
        await balance_ledger.adjust(appointment.balance_id, 30, appointment.id)
        assert (await balance_ledger.get_balance(TEST_STUDENT_ID)).used_minutes == 90
        await balance_ledger.adjust(appointment.balance_id, -60, appointment.id)
        assert (await balance_ledger.get_balance(TEST_STUDENT_ID)).used_minutes == 30

    async def test_adjust_beyond_balance(
        self,
        balance_ledger: BalanceLedger,
        appointment_store: AppointmentStore,
        seeded_db: AsyncSession
    ):
        appointment = await self._booked(balance_ledger, appointment_store)
        with pytest.raises(InsufficientBalance):
            await balance_ledger.adjust(appointment.balance_id, TEST_STUDENT_MINUTES, appointment.id)
