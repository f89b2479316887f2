from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil import parser

from storeops.config import settings


def business_tz() -> ZoneInfo:
    return ZoneInfo(settings.BUSINESS_TIMEZONE)


def today_in_business_tz(now: Optional[datetime] = None) -> str:
    """Current calendar date in the business timezone as ``YYYY-MM-DD``."""
    current = now or datetime.now(tz=business_tz())
    if current.tzinfo is None:
        current = current.replace(tzinfo=business_tz())
    return current.astimezone(business_tz()).date().isoformat()


def parse_date(value) -> Optional[date]:
    """Best-effort date parsing; returns None instead of raising."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return parser.parse(text).date()
    except (ValueError, OverflowError, TypeError):
        return None


def parse_datetime(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return parser.isoparse(text)
    except (ValueError, OverflowError, TypeError):
        try:
            return parser.parse(text)
        except (ValueError, OverflowError, TypeError):
            return None
