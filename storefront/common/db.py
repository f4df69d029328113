from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    # Naive UTC: SQLite drops tzinfo on the way in, so keep every stored value naive.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value is not None else None


class Base(DeclarativeBase):
    pass
