import os
import sys
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    if env := os.environ.get("TWMT_DATA_DIR"):
        return Path(env)
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / "com.github.twmt"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TWMT_",
        extra="ignore",
    )

    data_dir: Path = Path("")
    db_path: Path = Path("")
    rpfm_path: str = ""
    rpfm_schema_path: str = ""
    rpfm_game: str = "warhammer_3"
    steam_api_url: str = "https://api.steampowered.com"
    steam_api_key: str = ""
    steam_batch_size: int = 100
    extract_timeout_base: int = 60
    extract_timeout_per_mb: float = 2.0
    host: str = "127.0.0.1"
    port: int = 8426
    cors_origins: list[str] = []

    @model_validator(mode="after")
    def _resolve_data_paths(self) -> "Settings":
        if self.data_dir == Path(""):
            self.data_dir = _default_data_dir()
        if self.db_path == Path(""):
            self.db_path = self.data_dir / "twmt.db"
        return self


settings = Settings()
