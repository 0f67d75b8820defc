from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every datetime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Columns hold naive UTC; pin the plain DateTime type so the ORM never expects tz-aware values.
NaiveDateTime = DateTime(timezone=False)


class TimestampedModel(SQLModel):
    created_at: datetime = Field(default_factory=utcnow, nullable=False, sa_type=NaiveDateTime)
    updated_at: datetime | None = Field(default=None, nullable=True, sa_type=NaiveDateTime)


class UUIDModel(SQLModel):
    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
