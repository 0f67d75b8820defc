from datetime import datetime

from sqlmodel import Field

from soloflow.models.base import NaiveDateTime, TimestampedModel, UUIDModel


class User(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "users"

    email: str = Field(index=True, unique=True)
    full_name: str
    currency: str = Field(default="INR", max_length=8)

    password_hash: str
    is_active: bool = Field(default=True)
    is_admin: bool = Field(default=False)
    last_login_at: datetime | None = Field(default=None, sa_type=NaiveDateTime)
