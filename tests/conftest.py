"""
Pytest Configuration and Fixtures
==================================
Settings are read once at import time, so the environment is pinned here
before anything from photoportal is imported.
"""

import os
import tempfile

from cryptography.fernet import Fernet

os.environ["ENV"] = "dev"
os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "correct horse"
os.environ["GOOGLE_CLIENT_ID"] = "client-id.apps.googleusercontent.com"
os.environ["GOOGLE_CLIENT_SECRET"] = "client-secret"
os.environ["GOOGLE_DRIVE_FOLDER_ID"] = ""
os.environ["FILESTACK_API_KEY"] = "fs-key"
os.environ["GUMLET_API_KEY"] = "gm-key"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="portal-logs-")
os.environ["DATABASE_URL"] = "sqlite://"

from typing import Dict, Optional, Tuple  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from photoportal.core.errors import NotFoundError, UpstreamError  # noqa: E402
from photoportal.db.session import Base, get_db  # noqa: E402
import photoportal.db.models  # noqa: E402,F401
from photoportal.main import app  # noqa: E402
from photoportal.providers import google_photos  # noqa: E402
from photoportal.providers.base import MediaItem, MediaPage, Provider  # noqa: E402
from photoportal.providers.registry import get_registry, parse_provider  # noqa: E402
from photoportal.security import ratelimit  # noqa: E402


# =============================================================================
# FAKES
# =============================================================================

class FakeAdapter:
    """In-memory photo source with the same capability surface as the real adapters."""

    def __init__(self, provider: Provider = Provider.GOOGLE_DRIVE, items=None, contents=None,
                 failing=(), folder_name: str = "Wedding"):
        self.provider = provider
        self.items: Dict[str, MediaItem] = {i.id: i for i in (items or [])}
        self.contents: Dict[str, bytes] = dict(contents or {})
        self.failing = set(failing)
        self.folder_name = folder_name
        self.folder_lookups = []
        self.sessions_ready = set()

    async def list_images(self, ref=None, page_token=None, page_size=50) -> MediaPage:
        ordered = list(self.items.values())
        start = int(page_token or 0)
        end = start + page_size
        return MediaPage(items=ordered[start:end], next_page_token=str(end) if end < len(ordered) else None)

    async def get_file(self, file_id: str) -> MediaItem:
        if file_id in self.failing or file_id not in self.items:
            raise NotFoundError(f"File not found: {file_id}")
        return self.items[file_id]

    async def get_folder_name(self, ref: str) -> str:
        self.folder_lookups.append(ref)
        return self.folder_name

    async def fetch_content(self, item: MediaItem, timeout: float) -> Tuple[bytes, str]:
        if item.id not in self.contents:
            raise UpstreamError(f"download failed: {item.id}")
        return self.contents[item.id], item.mime_type or "image/jpeg"

    async def fetch_thumbnail(self, file_id: str, thumbnail_url: Optional[str] = None, size: str = "220"):
        if file_id in self.failing:
            raise UpstreamError("Failed to fetch image: 403")
        return b"thumb-" + file_id.encode(), "image/jpeg"

    async def create_session(self) -> dict:
        return {"id": "sess-1", "pickerUri": "https://photos.google.com/picker/sess-1"}

    async def get_session(self, session_id: str) -> dict:
        return {"id": session_id, "mediaItemsSet": session_id in self.sessions_ready}

    async def wait_until_ready(self, session_id: str, timeout: float | None = None) -> bool:
        return (await self.get_session(session_id))["mediaItemsSet"]


class FakeRegistry:
    def __init__(self, adapters: Dict[Provider, FakeAdapter]):
        self.adapters = adapters
        self.calls = []

    def get(self, provider, session_id=None):
        provider = provider if isinstance(provider, Provider) else parse_provider(provider)
        self.calls.append((provider, session_id))
        return self.adapters[provider]


def make_item(item_id: str, filename: Optional[str] = None, mime_type: str = "image/jpeg") -> MediaItem:
    return MediaItem(
        id=item_id,
        display_url=f"https://cdn.example/{item_id}",
        thumbnail_url=f"https://lh3.googleusercontent.com/{item_id}=s220",
        mime_type=mime_type,
        filename=filename if filename is not None else f"{item_id}.jpg",
    )


# =============================================================================
# DATABASE / APP FIXTURES
# =============================================================================

@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(name="db")
def db_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def drive_adapter():
    return FakeAdapter(
        Provider.GOOGLE_DRIVE,
        items=[make_item("p1"), make_item("p2", mime_type="image/png"), make_item("p3")],
        contents={"p1": b"one", "p2": b"two", "p3": b"three"},
    )


@pytest.fixture
def registry(drive_adapter):
    return FakeRegistry({
        Provider.GOOGLE_DRIVE: drive_adapter,
        Provider.GOOGLE_PHOTOS: FakeAdapter(Provider.GOOGLE_PHOTOS, items=[make_item("g1")],
                                            contents={"g1": b"g"}),
        Provider.FILESTACK: FakeAdapter(Provider.FILESTACK, items=[make_item("h1")], contents={"h1": b"h"}),
        Provider.GUMLET: FakeAdapter(Provider.GUMLET, items=[make_item("a1")], contents={"a1": b"a"}),
    })


@pytest.fixture(name="client")
def client_fixture(db, registry):
    def get_db_override():
        yield db

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_registry] = lambda: registry
    ratelimit.reset_counters()
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client):
    r = client.post("/admin/login", json={"username": "admin", "password": "correct horse"})
    assert r.status_code == 200
    return client


@pytest.fixture(autouse=True)
def _reset_picker_gate():
    google_photos._ready_sessions.clear()
    google_photos._pending_polls.clear()
    yield
    google_photos._ready_sessions.clear()
    google_photos._pending_polls.clear()
