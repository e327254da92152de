import uuid

from sqlmodel import Field, SQLModel


class GameInstallation(SQLModel, table=True):
    __tablename__ = "game_installations"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    game_code: str = Field(index=True, unique=True)
    game_name: str = ""
    installation_path: str | None = None
    steam_workshop_path: str | None = None
    steam_app_id: str | None = None
