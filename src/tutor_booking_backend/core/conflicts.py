'''
Conflict detection between candidate slots and a tutor's existing appointments.
'''
from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from ..database.db_enums import BLOCKING_STATUSES
from .slots import Slot


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval intersection. Touching endpoints do not overlap."""
    return a_start < b_end and a_end > b_start


def _status_value(status: Any) -> str:
    return getattr(status, "value", status)


class ConflictResolver:
    """
    Holds the blocking appointments of one tutor and answers whether a
    slot is free. Cancelled and no-show appointments never block.
    """

    def __init__(self, tutor_id: UUID, appointments: Iterable[Any]):
        self.tutor_id = tutor_id
        self.blocking = sorted(
            (
                appt for appt in appointments
                if appt.tutor_id == tutor_id and _status_value(appt.status) in BLOCKING_STATUSES
            ),
            key=lambda appt: appt.start_time
        )

    def conflicts_for(self, start: datetime, end: datetime, exclude_appointment_id: UUID | None = None) -> list[Any]:
        return [
            appt for appt in self.blocking
            if appt.id != exclude_appointment_id and overlaps(start, end, appt.start_time, appt.end_time)
        ]

    def is_free(self, start: datetime, end: datetime, exclude_appointment_id: UUID | None = None) -> bool:
        return not self.conflicts_for(start, end, exclude_appointment_id)

    def filter_free(self, candidates: Iterable[Slot]) -> list[Slot]:
        return [slot for slot in candidates if self.is_free(slot.start, slot.end)]
