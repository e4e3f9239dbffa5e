"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from clipsync.config import SyncConfig
from clipsync.db.local_store import LocalStore
from clipsync.domain.models import Bookmark, Category
from clipsync.sync.service import SyncCoordinator
from tests.fake_turso import TEST_DB_URL, TEST_TOKEN, FakeTurso

SYNC_ENV_VARS = (
    "TURSO_ENABLED",
    "TURSO_DB_URL",
    "TURSO_AUTH_TOKEN",
    "TURSO_REQUEST_TIMEOUT_SEC",
    "SYNC_MAX_RETRIES",
    "DB_PATH",
    "LOG_LEVEL",
    "LOG_FILE",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep the developer's environment and ``.env`` out of the tests."""
    for name in SYNC_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def make_sync_config(**overrides) -> SyncConfig:
    values = {
        "enabled": True,
        "db_url": TEST_DB_URL,
        "auth_token": TEST_TOKEN,
        "request_timeout_sec": 5,
    }
    values.update(overrides)
    return SyncConfig(**values)


def make_bookmark(bookmark_id: str, **fields) -> Bookmark:
    data = {
        "id": bookmark_id,
        "url": f"https://example.com/{bookmark_id}",
        "title": f"Page {bookmark_id}",
        "description": "",
        "domain": "example.com",
        "summary": "",
        "category": "开发工具",
        "tags": [],
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": "2024-01-01T00:00:00.000Z",
    }
    data.update(fields)
    return Bookmark.model_validate(data)


def make_tree(*parents: tuple[str, str, list[tuple[str, str]]]) -> list[Category]:
    """Build a category tree from ``(id, name, [(child_id, child_name), ...])`` tuples."""
    return [
        Category(
            id=parent_id,
            name=name,
            children=[
                Category(id=child_id, name=child_name, parent_id=parent_id)
                for child_id, child_name in children
            ],
        )
        for parent_id, name, children in parents
    ]


@pytest.fixture
def store():
    local = LocalStore(":memory:")
    yield local
    local.close()


@pytest.fixture
def fake_turso() -> FakeTurso:
    return FakeTurso()


@pytest.fixture
async def coordinator(store: LocalStore, fake_turso: FakeTurso):
    sync = SyncCoordinator(
        make_sync_config(),
        store,
        client_factory=fake_turso.factory,
        upload_delay=0,
    )
    yield sync
    await sync.aclose()
