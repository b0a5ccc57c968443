"""SQLModel table definitions."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class ChannelModel(SQLModel, table=True):
    """チャンネルテーブル"""

    __tablename__ = "channels"

    id: int | None = Field(default=None, primary_key=True)
    channel_id: str = Field(unique=True, index=True)
    name: str = Field(unique=True, index=True)
    identity_ref: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )  # JSON format: ["I123", "I456"]
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class IdentityModel(SQLModel, table=True):
    """Identity テーブル"""

    __tablename__ = "identities"

    id: int | None = Field(default=None, primary_key=True)
    identity_id: str = Field(unique=True, index=True)
    name: str
    channels: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )  # JSON format: ["general", "random"] (channel names)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
