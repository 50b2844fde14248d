from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, Enum, ForeignKeyConstraint, Index, Integer, PrimaryKeyConstraint, SmallInteger, String, Text, Time, UniqueConstraint, Uuid, event, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import datetime
import uuid

from .utils import UTCDateTime, utc_now, CREATE_BTREE_GIST, ADD_APPOINTMENT_EXCLUSION

class Base(DeclarativeBase):
    pass


class Users(Base):
    __tablename__ = 'users'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='users_pkey'),
        UniqueConstraint('email', name='users_email_key')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(Enum('admin', 'student', 'tutor', name='user_role'))
    timezone: Mapped[str] = mapped_column(Text, default='UTC')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    first_name: Mapped[Optional[str]] = mapped_column(Text)
    last_name: Mapped[Optional[str]] = mapped_column(Text)


class AvailabilityWindows(Base):
    __tablename__ = 'availability_windows'
    __table_args__ = (
        CheckConstraint('start_time < end_time', name='availability_windows_time_order'),
        CheckConstraint('day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)', name='availability_windows_day_range'),
        CheckConstraint(
            "(is_recurring AND day_of_week IS NOT NULL AND specific_date IS NULL) OR "
            "(NOT is_recurring AND specific_date IS NOT NULL AND day_of_week IS NULL)",
            name='availability_windows_one_variant'
        ),
        ForeignKeyConstraint(['tutor_id'], ['users.id'], ondelete='CASCADE', name='availability_windows_tutor_id_fkey'),
        PrimaryKeyConstraint('id', name='availability_windows_pkey'),
        Index('idx_availability_windows_tutor', 'tutor_id')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    is_recurring: Mapped[bool] = mapped_column(Boolean)
    day_of_week: Mapped[Optional[int]] = mapped_column(SmallInteger)  # 0 is Sunday
    specific_date: Mapped[Optional[datetime.date]] = mapped_column(Date)
    start_time: Mapped[datetime.time] = mapped_column(Time)
    end_time: Mapped[datetime.time] = mapped_column(Time)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now)


class HoursBalances(Base):
    __tablename__ = 'hours_balances'
    __table_args__ = (
        CheckConstraint('used_minutes >= 0', name='hours_balances_used_non_negative'),
        CheckConstraint('used_minutes <= total_purchased_minutes', name='hours_balances_available_non_negative'),
        ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='CASCADE', name='hours_balances_student_id_fkey'),
        PrimaryKeyConstraint('id', name='hours_balances_pkey'),
        UniqueConstraint('student_id', 'course_id', name='hours_balances_student_course_key'),
        # NULL course_ids are distinct in the constraint above; one general balance per student.
        Index('uq_hours_balances_student_general', 'student_id', unique=True,
              postgresql_where=text('course_id IS NULL'), sqlite_where=text('course_id IS NULL'))
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    course_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    total_purchased_minutes: Mapped[int] = mapped_column(Integer, default=0)
    used_minutes: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now)

    @property
    def available_minutes(self) -> int:
        return self.total_purchased_minutes - self.used_minutes


class Appointments(Base):
    __tablename__ = 'appointments'
    __table_args__ = (
        CheckConstraint('end_time > start_time', name='appointments_time_order'),
        ForeignKeyConstraint(['student_id'], ['users.id'], name='appointments_student_id_fkey'),
        ForeignKeyConstraint(['tutor_id'], ['users.id'], name='appointments_tutor_id_fkey'),
        ForeignKeyConstraint(['balance_id'], ['hours_balances.id'], name='appointments_balance_id_fkey'),
        PrimaryKeyConstraint('id', name='appointments_pkey'),
        Index('idx_appointments_tutor_start', 'tutor_id', 'start_time'),
        Index('idx_appointments_student_start', 'student_id', 'start_time')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    tutor_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    course_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    balance_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    start_time: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    end_time: Mapped[datetime.datetime] = mapped_column(UTCDateTime)
    status: Mapped[str] = mapped_column(Enum('scheduled', 'completed', 'cancelled', 'no_show', name='appointment_status_enum'), default='scheduled')
    notes: Mapped[Optional[str]] = mapped_column(Text)
    credited_back: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text('false'))
    cancelled_by: Mapped[Optional[str]] = mapped_column(Enum('student', 'tutor', 'admin', name='cancelled_by_enum'))
    cancelled_at: Mapped[Optional[datetime.datetime]] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utc_now)
    updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utc_now, onupdate=utc_now)

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


class HoursLedgerEntries(Base):
    __tablename__ = 'hours_ledger_entries'
    __table_args__ = (
        ForeignKeyConstraint(['balance_id'], ['hours_balances.id'], ondelete='CASCADE', name='hours_ledger_entries_balance_id_fkey'),
        ForeignKeyConstraint(['appointment_id'], ['appointments.id'], name='hours_ledger_entries_appointment_id_fkey'),
        PrimaryKeyConstraint('id', name='hours_ledger_entries_pkey'),
        Index('idx_hours_ledger_entries_balance', 'balance_id', 'created_at')
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    balance_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    appointment_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    delta_minutes: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(Enum('purchase', 'booking', 'booking_rollback', 'credit_back', 'reschedule_adjustment', name='ledger_reason_enum'))
    balance_after_minutes: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, default=utc_now)


event.listen(Base.metadata, 'before_create', CREATE_BTREE_GIST)
event.listen(Appointments.__table__, 'after_create', ADD_APPOINTMENT_EXCLUSION)
