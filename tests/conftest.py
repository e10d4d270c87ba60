"""
Karaoke Queue Service - Pytest Configuration & Shared Fixtures

Provides reusable fixtures for:
- A fresh SQLite database file per test
- Seed helpers for events, songs, users and requests
- A recording fake of the push notifier
- Signed bearer tokens for admin and singer principals
- A FastAPI TestClient wired to the temporary database
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from karaoke import database
from karaoke.auth import AuthenticatedPrincipal, create_access_token
from karaoke.models import Role, SongSource
from karaoke.services import catalog
from karaoke.services.notifications import PushNotification

ORG_ID = "org-main"
OTHER_ORG_ID = "org-other"


def run(coro):
    """Drive an async service call to completion from a sync test."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch) -> Path:
    """Point the store at a fresh file under tmp_path and create the schema."""
    path = tmp_path / "karaoke.db"
    monkeypatch.setattr(database, "DB_PATH", path)
    database.init_db()
    return path


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


def make_event(org_id: str = ORG_ID, name: str = "Friday Night", status: str = "active") -> Dict[str, Any]:
    return run(
        database.insert_event(
            org_id=org_id,
            name=name,
            date="2026-10-23T20:00:00",
            created_by="host-1",
            venue="The Blue Room",
            status=status,
        )
    )


def make_song(
    title: str = "Bohemian Rhapsody",
    artist: str = "Queen",
    source: SongSource = SongSource.MANUAL,
    source_id: Optional[str] = None,
):
    track = catalog.build_source_track(
        title=title, artists=artist, source=source.value, source_id=source_id
    )
    return run(catalog.save_from_source(track)).song


def make_request(
    event_id: str,
    song_id: str,
    requester_id: str = "singer-1",
    status: str = "pending_admin",
    created_at: Optional[str] = None,
    co_singer_ids: Tuple[str, ...] = (),
) -> Dict[str, Any]:
    return run(
        database.insert_request(
            event_id=event_id,
            song_id=song_id,
            requester_id=requester_id,
            co_singer_ids=co_singer_ids,
            status=status,
            created_at=created_at,
        )
    )


@pytest.fixture
def event(db_path) -> Dict[str, Any]:
    return make_event()


@pytest.fixture
def song(db_path):
    return make_song()


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class RecordingNotifier:
    """Stands in for PushNotifier and remembers what it was asked to send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[str, PushNotification]] = []
        self.broadcasts: List[PushNotification] = []

    async def notify(self, user_id: str, notification: PushNotification) -> bool:
        if self.fail:
            raise RuntimeError("push service down")
        self.sent.append((user_id, notification))
        return True

    async def broadcast(self, notification: PushNotification) -> int:
        self.broadcasts.append(notification)
        return 3

    async def close(self) -> None:
        pass


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def bearer(user_id: str, role: Role = Role.SINGER, org_id: Optional[str] = ORG_ID) -> Dict[str, str]:
    token = create_access_token(AuthenticatedPrincipal(id=user_id, role=role, org_id=org_id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return bearer("host-1", Role.ADMIN)


@pytest.fixture
def singer_headers() -> Dict[str, str]:
    return bearer("singer-1")


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def client(db_path, notifier):
    """TestClient with the lifespan run against the temporary database."""
    from fastapi.testclient import TestClient

    from karaoke.main import create_app
    from karaoke.routes.api import get_notifier

    app = create_app()
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
