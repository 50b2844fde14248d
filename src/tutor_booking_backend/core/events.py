'''
Appointment domain events and the in-process publisher external notifiers
subscribe to. The engine never sends notifications itself.

Events are published inside the request transaction, before it commits.
Subscribers should hand work off rather than assume the change is durable.
'''
import inspect
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

from ..common.logger import log


@dataclass
class AppointmentBooked:
    """Fired once a booking is written, before the request commits."""

    appointment_id: UUID
    student_id: UUID
    tutor_id: UUID
    start_time: datetime
    end_time: datetime
    course_id: Optional[UUID] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AppointmentCancelled:
    """Fired after an appointment is cancelled."""

    appointment_id: UUID
    student_id: UUID
    tutor_id: UUID
    cancelled_by: str  # 'student', 'tutor' or 'admin'
    cancelled_at: datetime
    credited_back: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AppointmentRescheduled:
    """Fired after an appointment is moved to a new time."""

    appointment_id: UUID
    old_start_time: datetime
    old_end_time: datetime
    start_time: datetime
    end_time: datetime

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AppointmentCompleted:
    """Fired after the tutor records an outcome ('completed' or 'no_show')."""

    appointment_id: UUID
    outcome: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


Event = Union[AppointmentBooked, AppointmentCancelled, AppointmentRescheduled, AppointmentCompleted]
Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventPublisher:
    """
    Routes events to the handlers subscribed to their type.
    A failing handler is logged and skipped; it never undoes the state
    change that produced the event.
    """

    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: Handler) -> None:
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    async def publish(self, event: Event) -> None:
        event_type = type(event)
        log.info(f"Publishing {event_type.__name__}: {event.to_dict()}")
        for handler in list(self._handlers[event_type]):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.error(f"Handler {handler!r} failed for {event_type.__name__}: {e}", exc_info=True)


# Single publisher shared by the app; notifiers subscribe at startup.
event_publisher = EventPublisher()

def get_event_publisher() -> EventPublisher:
    return event_publisher
