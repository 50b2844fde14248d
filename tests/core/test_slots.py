import pytest
from types import SimpleNamespace
from datetime import date, time, timedelta
from hypothesis import given, settings as hypothesis_settings, strategies as st

from tutor_booking_backend.core.slots import (
    SlotGenerator, day_of_week_for, fits_availability, window_applies_to
)
from tutor_booking_backend.common.exceptions import ValidationError
from tests.constants import TEST_MONDAY, TEST_TUESDAY, at


def recurring(day_of_week: int, start: time, end: time):
    return SimpleNamespace(is_recurring=True, day_of_week=day_of_week, specific_date=None,
                           start_time=start, end_time=end)

def one_off(on: date, start: time, end: time):
    return SimpleNamespace(is_recurring=False, day_of_week=None, specific_date=on,
                           start_time=start, end_time=end)

MONDAY_9_TO_12 = recurring(1, time(9), time(12))


class TestDayOfWeek:

    def test_sunday_is_zero(self):
        assert day_of_week_for(date(2031, 3, 2)) == 0
        assert day_of_week_for(TEST_MONDAY) == 1
        assert day_of_week_for(date(2031, 3, 8)) == 6

    def test_window_selection(self):
        assert window_applies_to(MONDAY_9_TO_12, TEST_MONDAY)
        assert not window_applies_to(MONDAY_9_TO_12, TEST_TUESDAY)
        assert window_applies_to(one_off(TEST_TUESDAY, time(9), time(10)), TEST_TUESDAY)
        assert not window_applies_to(one_off(TEST_TUESDAY, time(9), time(10)), TEST_MONDAY)


class TestSlotGenerator:

    def test_hourly_slots_on_half_hour_steps(self):
        """09:00-12:00 with 60/30 gives 09:00, 09:30 ... 11:00."""
        slots = list(SlotGenerator([MONDAY_9_TO_12], TEST_MONDAY))
        print(f"\n--- Generated: {[s.start.time() for s in slots]} ---")

        assert [s.start for s in slots] == [
            at(TEST_MONDAY, 9), at(TEST_MONDAY, 9, 30), at(TEST_MONDAY, 10),
            at(TEST_MONDAY, 10, 30), at(TEST_MONDAY, 11)
        ]
        assert all(s.duration == timedelta(hours=1) for s in slots)

    def test_no_slot_past_window_end(self):
        """A 90 minute lesson in a 2 hour window fits only at the first two steps."""
        window = recurring(1, time(9), time(11))
        slots = list(SlotGenerator([window], TEST_MONDAY, duration_minutes=90))
        assert [s.start for s in slots] == [at(TEST_MONDAY, 9), at(TEST_MONDAY, 9, 30)]

    def test_window_shorter_than_lesson_yields_nothing(self):
        window = recurring(1, time(9), time(9, 45))
        assert list(SlotGenerator([window], TEST_MONDAY)) == []

    def test_other_days_yield_nothing(self):
        assert list(SlotGenerator([MONDAY_9_TO_12], TEST_TUESDAY)) == []

    def test_slots_never_span_adjacent_windows(self):
        """09:00-10:00 and 10:00-11:00 can not host a 10:30 or a 2 hour lesson."""
        windows = [recurring(1, time(9), time(10)), recurring(1, time(10), time(11))]
        assert [s.start for s in SlotGenerator(windows, TEST_MONDAY)] == [at(TEST_MONDAY, 9), at(TEST_MONDAY, 10)]
        assert list(SlotGenerator(windows, TEST_MONDAY, duration_minutes=120)) == []

    def test_overlapping_windows_are_deduplicated_and_ordered(self):
        windows = [
            one_off(TEST_MONDAY, time(10), time(12)),
            MONDAY_9_TO_12,
        ]
        slots = list(SlotGenerator(windows, TEST_MONDAY))
        assert slots == sorted(set(slots))
        assert len(slots) == 5

    def test_restartable_and_deterministic(self):
        generator = SlotGenerator([MONDAY_9_TO_12], TEST_MONDAY)
        first = list(generator)
        second = list(generator)
        assert first == second
        assert first  # not exhausted by the first pass

    def test_tutor_timezone_converts_to_utc(self):
        """09:00 in Cairo (UTC+2 in March) is 07:00 UTC."""
        slots = list(SlotGenerator([MONDAY_9_TO_12], TEST_MONDAY, tz_name="Africa/Cairo"))
        assert slots[0].start == at(TEST_MONDAY, 7)
        assert slots[0].start.tzinfo is not None

    @pytest.mark.parametrize("duration, step", [(0, 30), (60, 0), (-60, 30)])
    def test_invalid_duration_or_step(self, duration, step):
        with pytest.raises(ValidationError):
            SlotGenerator([MONDAY_9_TO_12], TEST_MONDAY, duration_minutes=duration, step_minutes=step)

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            SlotGenerator([MONDAY_9_TO_12], TEST_MONDAY, tz_name="Mars/Olympus_Mons")


class TestFitsAvailability:

    def test_inside_single_window(self):
        assert fits_availability(at(TEST_MONDAY, 9), at(TEST_MONDAY, 10), [MONDAY_9_TO_12])
        assert fits_availability(at(TEST_MONDAY, 11), at(TEST_MONDAY, 12), [MONDAY_9_TO_12])

    def test_outside_or_straddling(self):
        assert not fits_availability(at(TEST_MONDAY, 8, 30), at(TEST_MONDAY, 9, 30), [MONDAY_9_TO_12])
        assert not fits_availability(at(TEST_MONDAY, 11, 30), at(TEST_MONDAY, 12, 30), [MONDAY_9_TO_12])
        assert not fits_availability(at(TEST_TUESDAY, 9), at(TEST_TUESDAY, 10), [MONDAY_9_TO_12])

    def test_across_two_adjacent_windows(self):
        windows = [recurring(1, time(9), time(10)), recurring(1, time(10), time(11))]
        assert not fits_availability(at(TEST_MONDAY, 9, 30), at(TEST_MONDAY, 10, 30), windows)


# --- Properties ---

window_starts = st.integers(min_value=0, max_value=22 * 60).map(lambda m: m - m % 15)

@st.composite
def monday_windows(draw):
    start = draw(window_starts)
    length = draw(st.integers(min_value=15, max_value=24 * 60 - 1 - start))
    end = start + length
    return recurring(1, time(start // 60, start % 60), time(end // 60, end % 60))


class TestSlotProperties:

    @hypothesis_settings(max_examples=200, deadline=None)
    @given(
        windows=st.lists(monday_windows(), min_size=0, max_size=4),
        duration=st.sampled_from([15, 30, 45, 60, 90, 120]),
        step=st.sampled_from([5, 15, 30, 60]),
    )
    def test_every_slot_fits_one_window(self, windows, duration, step):
        slots = list(SlotGenerator(windows, TEST_MONDAY, duration_minutes=duration, step_minutes=step))
        for slot in slots:
            assert slot.duration == timedelta(minutes=duration)
            assert fits_availability(slot.start, slot.end, windows)

    @hypothesis_settings(max_examples=100, deadline=None)
    @given(windows=st.lists(monday_windows(), min_size=1, max_size=4))
    def test_sorted_and_unique(self, windows):
        slots = list(SlotGenerator(windows, TEST_MONDAY))
        assert slots == sorted(slots)
        assert len(slots) == len(set(slots))
        assert slots == list(SlotGenerator(windows, TEST_MONDAY))
