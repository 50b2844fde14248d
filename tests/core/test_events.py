import pytest
import uuid

from tutor_booking_backend.core.events import EventPublisher, AppointmentBooked, AppointmentCompleted
from tests.constants import TEST_STUDENT_ID, TEST_TUTOR_ID, TEST_MONDAY, at


def booked_event() -> AppointmentBooked:
    return AppointmentBooked(
        appointment_id=uuid.uuid4(),
        student_id=TEST_STUDENT_ID,
        tutor_id=TEST_TUTOR_ID,
        start_time=at(TEST_MONDAY, 10),
        end_time=at(TEST_MONDAY, 11)
    )


@pytest.mark.anyio
class TestEventPublisher:

    async def test_routes_by_event_type(self):
        publisher = EventPublisher()
        booked, completed = [], []
        publisher.subscribe(AppointmentBooked, booked.append)
        publisher.subscribe(AppointmentCompleted, completed.append)

        event = booked_event()
        await publisher.publish(event)

        assert booked == [event]
        assert completed == []

    async def test_async_handlers_are_awaited(self):
        publisher = EventPublisher()
        seen = []

        async def notify(event):
            seen.append(event.appointment_id)

        publisher.subscribe(AppointmentBooked, notify)
        event = booked_event()
        await publisher.publish(event)
        assert seen == [event.appointment_id]

    async def test_failing_handler_does_not_stop_the_others(self):
        publisher = EventPublisher()
        seen = []

        def broken(event):
            raise RuntimeError("mail server down")

        publisher.subscribe(AppointmentBooked, broken)
        publisher.subscribe(AppointmentBooked, seen.append)
        await publisher.publish(booked_event())
        assert len(seen) == 1

    async def test_unsubscribe(self):
        publisher = EventPublisher()
        seen = []
        publisher.subscribe(AppointmentBooked, seen.append)
        publisher.unsubscribe(AppointmentBooked, seen.append)
        await publisher.publish(booked_event())
        assert seen == []


class TestEventPayload:

    def test_to_dict(self):
        event = booked_event()
        payload = event.to_dict()
        assert payload["student_id"] == TEST_STUDENT_ID
        assert payload["course_id"] is None
