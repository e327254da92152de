import os
import threading
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine, select
from sqlmodel.pool import StaticPool

import twmt_sync.models  # noqa: F401
from twmt_sync.database import get_session
from twmt_sync.exceptions import ExternalToolError
from twmt_sync.main import app
from twmt_sync.models.game import GameInstallation
from twmt_sync.models.project import Project, ProjectLanguage
from twmt_sync.models.translation import TranslationStatus, TranslationUnit, TranslationVersion
from twmt_sync.models.workshop import WorkshopMod
from twmt_sync.parsing.tsv_parser import TsvParser
from twmt_sync.routers.deps import get_scan_dependencies
from twmt_sync.rpfm.cli import ExtractResult
from twmt_sync.services.update_detection import ScanDependencies
from twmt_sync.steam.client import WorkshopModInfo


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    return eng


@pytest.fixture
def session(engine, monkeypatch):
    with Session(engine) as sess:
        monkeypatch.setattr("twmt_sync.database.engine", engine)
        yield sess


class FakeInspector:
    """In-memory stand-in for rpfm_cli ``pack list``."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.contents: dict[str, list[str]] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []

    def is_available(self) -> bool:
        return self.available

    async def list_contents(self, pack_file_path: str) -> list[str]:
        self.calls.append(pack_file_path)
        if pack_file_path in self.errors:
            raise self.errors[pack_file_path]
        return list(self.contents.get(pack_file_path, []))


class FakeExtractor:
    """Writes configured loc tables as TSV files, like rpfm_cli does."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, list[tuple[str, str]]]] = {}
        self.raw_tables: dict[str, dict[str, bytes]] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.cancel_on_call: threading.Event | None = None

    def set_pack(self, pack_file_path: str, tables: dict[str, list[tuple[str, str]]]) -> None:
        self.tables[pack_file_path] = tables

    def set_raw_pack(self, pack_file_path: str, tables: dict[str, bytes]) -> None:
        self.raw_tables[pack_file_path] = tables

    async def extract_tsv(
        self,
        pack_file_path: str,
        output_dir: str | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> ExtractResult:
        self.calls.append(pack_file_path)
        if self.cancel_on_call is not None:
            self.cancel_on_call.set()
        if pack_file_path in self.errors:
            raise self.errors[pack_file_path]
        assert output_dir is not None
        files: list[str] = []
        if pack_file_path in self.raw_tables:
            for loc_file, content in self.raw_tables[pack_file_path].items():
                path = os.path.join(output_dir, f"{loc_file}.tsv")
                os.makedirs(os.path.dirname(path), exist_ok=True)
                with open(path, "wb") as f:
                    f.write(content)
                files.append(path)
            return ExtractResult(
                pack_file_path=pack_file_path,
                output_directory=output_dir,
                extracted_files=files,
            )
        if pack_file_path not in self.tables:
            raise ExternalToolError(f"Unknown pack {pack_file_path}")
        for loc_file, rows in self.tables[pack_file_path].items():
            path = os.path.join(output_dir, f"{loc_file}.tsv")
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write("key\ttext\ttooltip\n")
                f.write(f"#Loc_PackedFile;1;{loc_file}\n")
                for key, text in rows:
                    escaped = text.replace("\\", "\\\\").replace("\n", "\\n").replace("\t", "\\t")
                    f.write(f"{key}\t{escaped}\tfalse\n")
            files.append(path)
        return ExtractResult(
            pack_file_path=pack_file_path,
            output_directory=output_dir,
            extracted_files=files,
        )


class FakeCatalog:
    def __init__(self) -> None:
        self.mods: dict[str, WorkshopModInfo] = {}
        self.calls: list[list[str]] = []

    def add(self, workshop_id: str, title: str, time_updated: int | None, **kwargs) -> None:
        self.mods[workshop_id] = WorkshopModInfo(
            workshop_id=workshop_id,
            app_id=kwargs.pop("app_id", 1142710),
            title=title,
            workshop_url=f"https://steamcommunity.com/sharedfiles/filedetails/?id={workshop_id}",
            time_updated=time_updated,
            **kwargs,
        )

    async def fetch_batch(self, workshop_ids: list[str], app_id: int) -> dict[str, WorkshopModInfo]:
        self.calls.append(list(workshop_ids))
        return {wid: self.mods[wid] for wid in workshop_ids if wid in self.mods}


@pytest.fixture
def fake_inspector():
    return FakeInspector()


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def fake_catalog():
    return FakeCatalog()


@pytest.fixture
def scan_deps(fake_inspector, fake_extractor, fake_catalog):
    return ScanDependencies(
        inspector=fake_inspector,
        extractor=fake_extractor,
        parser=TsvParser(),
        catalog=fake_catalog,
    )


@pytest.fixture
def client(engine, monkeypatch, scan_deps):
    monkeypatch.setattr("twmt_sync.database.engine", engine)

    def _override_session() -> Generator[Session, None, None]:
        with Session(engine) as sess:
            yield sess

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_scan_dependencies] = lambda: scan_deps
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc
    app.dependency_overrides.clear()


@pytest.fixture
def workshop_root(tmp_path):
    root = tmp_path / "workshop" / "content" / "1142710"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def make_pack(workshop_root):
    def _make(workshop_id: str, name: str = "my_mod.pack", mtime: int = 1_700_000_000) -> str:
        mod_dir = workshop_root / workshop_id
        mod_dir.mkdir(exist_ok=True)
        pack = mod_dir / name
        pack.write_bytes(b"PFH5")
        os.utime(pack, (mtime, mtime))
        return str(pack)

    return _make


@pytest.fixture
def make_game(session, workshop_root):
    def _make(game_code: str = "wh3", workshop_path: str | None = None) -> GameInstallation:
        game = GameInstallation(
            game_code=game_code,
            game_name="Total War: WARHAMMER III",
            installation_path="/games/wh3",
            steam_workshop_path=workshop_path if workshop_path is not None else str(workshop_root),
            steam_app_id="1142710",
        )
        session.add(game)
        session.commit()
        session.refresh(game)
        return game

    return _make


@pytest.fixture
def make_project(session):
    def _make(
        game: GameInstallation,
        workshop_id: str | None = None,
        languages: tuple[str, ...] = ("fr", "de"),
    ) -> Project:
        project = Project(
            name=f"Project {workshop_id or 'manual'}",
            mod_steam_id=workshop_id,
            game_installation_id=game.id,
        )
        session.add(project)
        session.flush()
        for code in languages:
            session.add(ProjectLanguage(project_id=project.id, language_code=code))
        session.commit()
        session.refresh(project)
        return project

    return _make


@pytest.fixture
def make_unit(session):
    def _make(
        project: Project,
        key: str,
        text: str,
        *,
        obsolete: bool = False,
        status: str = TranslationStatus.PENDING,
    ) -> TranslationUnit:
        unit = TranslationUnit(
            project_id=project.id,
            key=key,
            source_text=text,
            is_obsolete=obsolete,
        )
        session.add(unit)
        session.flush()
        languages = session.exec(
            select(ProjectLanguage).where(ProjectLanguage.project_id == project.id)
        ).all()
        for lang in languages:
            session.add(
                TranslationVersion(
                    unit_id=unit.id,
                    project_language_id=lang.id,
                    status=status,
                    translated_text=None if status == TranslationStatus.PENDING else f"{text} (tr)",
                )
            )
        session.commit()
        session.refresh(unit)
        return unit

    return _make


@pytest.fixture
def make_workshop_mod(session):
    def _make(
        workshop_id: str, title: str = "Stored Title", time_updated: int | None = None
    ) -> WorkshopMod:
        mod = WorkshopMod(
            workshop_id=workshop_id,
            app_id=1142710,
            title=title,
            workshop_url=f"https://steamcommunity.com/sharedfiles/filedetails/?id={workshop_id}",
            time_updated=time_updated,
        )
        session.add(mod)
        session.commit()
        session.refresh(mod)
        return mod

    return _make
