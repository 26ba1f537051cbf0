"""
Custom column types.

- DecimalText: exact decimal stored as plain text (SQLite has no exact NUMERIC)
- UTCDateTime: DateTime that always comes back timezone-aware (UTC)
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, String
from sqlalchemy.types import TypeDecorator

from moonfolio.app.utils.datetime_utils import ensure_utc
from moonfolio.app.utils.decimal_utils import format_decimal, to_decimal


class DecimalText(TypeDecorator):
    """Decimal persisted as its positional string form, read back as Decimal."""
    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return format_decimal(to_decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class UTCDateTime(TypeDecorator):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, datetime):
            raise TypeError(f"Expected datetime, got {type(value).__name__}")
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)
