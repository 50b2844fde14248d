from uuid import UUID
from datetime import date, datetime, time, timezone

TEST_ADMIN_ID = UUID('2b6c1f0e-58a4-4d4b-9d3e-1f0a8c2e7a11')
TEST_TUTOR_ID = UUID('dcef54de-bc89-4388-a7a8-dba5d8327447')
TEST_UNRELATED_TUTOR_ID = UUID('6667e14b-f8b7-45ee-998a-48832413d4c7')
TEST_STUDENT_ID = UUID('e46d56d4-a856-49cc-b078-bffa79d9a142')
TEST_OTHER_STUDENT_ID = UUID('a6934e55-9538-4c06-a7b0-545fbd4d8cee')

TEST_ADMIN_EMAIL = "admin@tutorbooking.dev"
TEST_TUTOR_EMAIL = "tutor@tutorbooking.dev"
TEST_UNRELATED_TUTOR_EMAIL = "unrelated.tutor@tutorbooking.dev"
TEST_STUDENT_EMAIL = "student@tutorbooking.dev"
TEST_OTHER_STUDENT_EMAIL = "other.student@tutorbooking.dev"

# A Monday far enough ahead that nothing booked on it is in the past.
TEST_MONDAY = date(2031, 3, 3)
TEST_TUESDAY = date(2031, 3, 4)
TEST_MONDAY_DAY_OF_WEEK = 1  # 0 is Sunday

# The seeded tutor works Mondays 09:00-17:00 UTC.
TEST_WINDOW_START = time(9, 0)
TEST_WINDOW_END = time(17, 0)

# Seeded balances, in minutes.
TEST_STUDENT_MINUTES = 600
TEST_OTHER_STUDENT_MINUTES = 60

# A "now" a week before TEST_MONDAY, for tests that control the clock.
TEST_NOW = datetime(2031, 2, 24, 12, 0, tzinfo=timezone.utc)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """An aware UTC datetime on `day`."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)
