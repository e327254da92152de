from pathlib import Path

from sqlmodel import Session, create_engine, select, text
from sqlmodel.pool import StaticPool

from twmt_sync import database
from twmt_sync.config import Settings
from twmt_sync.models.workshop import WorkshopMod


def _columns(engine, table: str) -> set[str]:
    with engine.connect() as conn:
        return {row[1] for row in conn.execute(text(f"PRAGMA table_info({table})"))}


class TestMigrations:
    def test_adds_missing_columns(self, monkeypatch):
        engine = create_engine(
            "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
        with engine.begin() as conn:
            conn.execute(
                text(
                    "CREATE TABLE workshop_mods (id VARCHAR PRIMARY KEY, "
                    "workshop_id VARCHAR NOT NULL, "
                    "app_id INTEGER NOT NULL, title VARCHAR NOT NULL, workshop_url VARCHAR, "
                    "file_size INTEGER, time_created INTEGER, time_updated INTEGER, "
                    "subscriptions INTEGER, tags TEXT, created_at DATETIME, updated_at DATETIME, "
                    "last_checked_at DATETIME)"
                )
            )
            conn.execute(
                text(
                    "INSERT INTO workshop_mods (id, workshop_id, app_id, title) "
                    "VALUES ('x', '100', 1, 'T')"
                )
            )
        monkeypatch.setattr(database, "engine", engine)

        database.create_db_and_tables()

        assert "is_hidden" in _columns(engine, "workshop_mods")
        assert "has_mod_update_impact" in _columns(engine, "projects")
        assert "reactivated_units_count" in _columns(engine, "mod_update_analysis_cache")
        with Session(engine) as s:
            mod = s.exec(select(WorkshopMod)).one()
            assert mod.is_hidden is False

    def test_idempotent(self, monkeypatch):
        engine = create_engine(
            "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
        monkeypatch.setattr(database, "engine", engine)
        database.create_db_and_tables()
        database.create_db_and_tables()
        assert "is_hidden" in _columns(engine, "workshop_mods")


class TestSettings:
    def test_data_dir_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TWMT_DATA_DIR", str(tmp_path))
        s = Settings()
        assert s.data_dir == tmp_path
        assert s.db_path == tmp_path / "twmt.db"

    def test_explicit_db_path(self, tmp_path):
        s = Settings(data_dir=tmp_path, db_path=tmp_path / "other.db")
        assert s.db_path == Path(tmp_path / "other.db")

    def test_prefixed_env(self, monkeypatch):
        monkeypatch.setenv("TWMT_RPFM_GAME", "warhammer_2")
        monkeypatch.setenv("TWMT_STEAM_BATCH_SIZE", "50")
        s = Settings()
        assert s.rpfm_game == "warhammer_2"
        assert s.steam_batch_size == 50

    def test_cors_origins(self, monkeypatch):
        assert Settings().cors_origins == []
        monkeypatch.setenv("TWMT_CORS_ORIGINS", '["http://localhost:5173"]')
        assert Settings().cors_origins == ["http://localhost:5173"]
