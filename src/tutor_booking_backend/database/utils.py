'''
Column types and DDL helpers that behave the same on PostgreSQL and SQLite.
'''
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DDL, DateTime, TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Stores timezone-aware datetimes as UTC and always returns aware UTC values.
    PostgreSQL keeps them in a timestamptz column; SQLite has no timezone
    support, so the value is stored naive (in UTC) and re-tagged on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return value
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime {value!r} cannot be stored; use an aware UTC datetime.")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# --- PostgreSQL-only DDL ---
# `tutor_id WITH =` inside a GiST index needs btree_gist.
CREATE_BTREE_GIST = DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql")

APPOINTMENT_OVERLAP_CONSTRAINT = "appointments_no_overlap_per_tutor"

ADD_APPOINTMENT_EXCLUSION = DDL(
    f"""
    ALTER TABLE appointments
      ADD CONSTRAINT {APPOINTMENT_OVERLAP_CONSTRAINT}
      EXCLUDE USING gist (
        tutor_id WITH =,
        tstzrange(start_time, end_time, '[)') WITH &&
      )
      WHERE (status IN ('scheduled', 'completed'))
    """
).execute_if(dialect="postgresql")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
