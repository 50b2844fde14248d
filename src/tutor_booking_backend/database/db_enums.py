'''
Static enums shared by the ORM models, the pydantic models and the services.
'''
import enum


class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member names."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class UserRole(ListableEnum):
    ADMIN = 'admin'
    STUDENT = 'student'
    TUTOR = 'tutor'


class AppointmentStatusEnum(ListableEnum):
    SCHEDULED = 'scheduled'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no_show'


class CancelledByEnum(ListableEnum):
    STUDENT = 'student'
    TUTOR = 'tutor'
    ADMIN = 'admin'


class LedgerReasonEnum(ListableEnum):
    PURCHASE = 'purchase'
    BOOKING = 'booking'
    BOOKING_ROLLBACK = 'booking_rollback'
    CREDIT_BACK = 'credit_back'
    RESCHEDULE_ADJUSTMENT = 'reschedule_adjustment'


# Statuses that occupy a tutor's time. Cancelled and no-show never block.
BLOCKING_STATUSES = (AppointmentStatusEnum.SCHEDULED.value, AppointmentStatusEnum.COMPLETED.value)

# The outcomes a tutor can record for a scheduled appointment.
OUTCOME_STATUSES = (AppointmentStatusEnum.COMPLETED.value, AppointmentStatusEnum.NO_SHOW.value)
