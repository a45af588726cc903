"""Test configuration for pytest."""

import sys
from pathlib import Path
from typing import List
from unittest.mock import MagicMock

import pytest
from PIL import Image

# Add the project root directory to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fotos_sync.cloud.api_client import ApiClient  # noqa: E402
from fotos_sync.cloud.object_store import ObjectStore  # noqa: E402
from fotos_sync.config import AppConfig  # noqa: E402
from fotos_sync.database.models import Album, Collection, UserSession  # noqa: E402
from fotos_sync.database.record_store import RecordStore  # noqa: E402
from fotos_sync.ftp.session import FtpSession  # noqa: E402
from fotos_sync.ingest.pipeline import IngestionPipeline  # noqa: E402
from fotos_sync.models import ImageStreamEvent  # noqa: E402
from fotos_sync.sync.engine import SyncEngine  # noqa: E402
from fotos_sync.utils.network import ConnectivityProbe  # noqa: E402


class FakeClock:
    """Monotonic clock that only moves when slept on or advanced."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


def write_jpeg(path: Path, size=(64, 48)) -> Path:
    """Write a small real JPEG file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color="red").save(path, "JPEG")
    return path


@pytest.fixture
def config(tmp_path) -> AppConfig:
    """Settings rooted in a temporary directory."""
    return AppConfig(
        data_root=str(tmp_path / "appdata"),
        server_url="https://api.example.test",
        ftp_bind_address="127.0.0.1",
        ftp_passive_ports=None,
        debounce_seconds=0.1,
    )


@pytest.fixture
def store(config) -> RecordStore:
    record_store = RecordStore(config)
    record_store.ensure_structure()
    return record_store


@pytest.fixture
def user(store) -> UserSession:
    session = UserSession(id="U1", name="Test User", email="user@example.test", auth_token="tok")
    store.save_user(session)
    return session


@pytest.fixture
def wedding_album(store, user) -> Album:
    album = Album(id="A1", owner_id=user.id, name="Wedding", date="2024-06-01")
    store.append(Collection.ALBUMS, album.to_dict())
    return album


@pytest.fixture
def online() -> ConnectivityProbe:
    """Connectivity probe pinned to offline; tests flip it with force()."""
    probe = ConnectivityProbe("https://api.example.test")
    probe.force(False)
    return probe


@pytest.fixture
def api() -> MagicMock:
    return MagicMock(spec=ApiClient)


@pytest.fixture
def object_store(mocker) -> ObjectStore:
    """Real URL checks, mocked uploads."""
    objects = ObjectStore({})
    mocker.patch.object(objects, "upload", return_value="https://res.cloudinary.com/demo/cover.jpg")
    mocker.patch.object(
        objects, "upload_base64", return_value="https://res.cloudinary.com/demo/photo.jpg"
    )
    return objects


@pytest.fixture
def events() -> List[ImageStreamEvent]:
    return []


@pytest.fixture
def sync_engine(store, api, object_store, online, events) -> SyncEngine:
    return SyncEngine(store, api, object_store, online, emit=events.append, sleep=lambda s: None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def pipeline(config, store, sync_engine, events, clock) -> IngestionPipeline:
    return IngestionPipeline(config, store, sync_engine, events.append, clock=clock, sleep=clock.sleep)


@pytest.fixture
def watch_dir(tmp_path) -> Path:
    directory = tmp_path / "ftp-root"
    directory.mkdir()
    return directory


@pytest.fixture
def ftp_session(watch_dir) -> FtpSession:
    return FtpSession(
        username="camera",
        password="ab12c",
        directory=str(watch_dir),
        album_id="A1",
        album_name="Wedding",
        auth_token="tok",
        cloud_sync_enabled=False,
    )


@pytest.fixture
def make_jpeg():
    """Factory writing small real JPEG files."""
    return write_jpeg
