import uuid
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class TranslationStatus(StrEnum):
    PENDING = "pending"
    TRANSLATING = "translating"
    TRANSLATED = "translated"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    NEEDS_REVIEW = "needs_review"


class TranslationUnit(SQLModel, table=True):
    __tablename__ = "translation_units"
    __table_args__ = (UniqueConstraint("project_id", "key"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    key: str = Field(index=True)
    source_text: str
    context: str | None = None
    notes: str | None = None
    source_loc_file: str | None = None
    is_obsolete: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class TranslationVersion(SQLModel, table=True):
    __tablename__ = "translation_versions"
    __table_args__ = (UniqueConstraint("unit_id", "project_language_id"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    unit_id: str = Field(foreign_key="translation_units.id", index=True)
    project_language_id: str = Field(foreign_key="project_languages.id", index=True)
    translated_text: str | None = None
    is_manually_edited: bool = False
    status: str = Field(default=TranslationStatus.PENDING)
    translation_source: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
