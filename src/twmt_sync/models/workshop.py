import uuid
from datetime import UTC, datetime

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel


class WorkshopMod(SQLModel, table=True):
    """Last known Steam Workshop state of a mod.

    ``time_updated`` doubles as the reconciliation watermark: it only moves
    forward once the remote update has been fully applied or dismissed.
    """

    __tablename__ = "workshop_mods"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    workshop_id: str = Field(index=True, unique=True)
    app_id: int
    title: str
    workshop_url: str = ""
    file_size: int | None = None
    time_created: int | None = None
    time_updated: int | None = None
    subscriptions: int | None = None
    tags: str = Field(default="[]", sa_column=Column(Text))
    is_hidden: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_checked_at: datetime | None = None
