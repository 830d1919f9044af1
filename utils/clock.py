from datetime import datetime, timedelta, timezone

from flask import current_app


def utcnow() -> datetime:
    # naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_offset() -> timedelta:
    return timedelta(hours=current_app.config.get("BUSINESS_UTC_OFFSET_HOURS", 3))


def local_now(now: datetime = None) -> datetime:
    return (now or utcnow()) + business_offset()


def today_str(now: datetime = None) -> str:
    return local_now(now).strftime("%Y-%m-%d")


def appointment_start_utc(date_str: str, time_str: str) -> datetime:
    """Date + HH:MM on the business clock, converted to naive UTC."""
    local = datetime.strptime(f"{date_str} {time_str}", "%Y-%m-%d %H:%M")
    return local - business_offset()
