"""User identity model."""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    """One person's identity: a single active device and a unique nickname."""

    id: int | None = Field(default=None, primary_key=True)
    device_uuid: str = Field(unique=True, index=True)
    nickname: str = Field(unique=True, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
