import uuid
from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str
    mod_steam_id: str | None = Field(default=None, index=True)
    game_installation_id: str = Field(foreign_key="game_installations.id", index=True)
    source_file_path: str | None = None
    has_mod_update_impact: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ProjectLanguage(SQLModel, table=True):
    __tablename__ = "project_languages"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    language_code: str
    status: str = "pending"
    progress_percent: float = 0.0
