"""
Karaoke Queue Service - Domain Records

Raw records mirror what is stored (references by id only).  Hydrated
records carry the resolved Song / user objects for display and are built by
``karaoke.services.hydration``; the two shapes are kept as separate types.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class SongSource(str, Enum):
    SPOTIFY = "spotify"
    CSV = "csv"
    MANUAL = "manual"


class RequestStatus(str, Enum):
    PENDING_ADMIN = "pending_admin"
    APPROVED = "approved"
    REJECTED = "rejected"
    QUEUED = "queued"
    PERFORMED = "performed"


# Statuses that hold a place in the live queue
ACTIVE_STATUSES = frozenset({RequestStatus.APPROVED, RequestStatus.QUEUED})


class EventStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class Role(str, Enum):
    SINGER = "singer"
    ADMIN = "admin"


def _json_list(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, (list, tuple)):
        return tuple(raw)
    if not raw:
        return ()
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return ()
    return tuple(parsed) if isinstance(parsed, list) else ()


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class SourceTrack:
    """Track metadata as delivered by a source, before normalization."""

    title: str
    artists: tuple[str, ...]
    source: SongSource
    source_id: str
    album: str | None = None
    duration_sec: int | None = None
    cover_art_url: str | None = None
    video_url: str | None = None

    @property
    def artist(self) -> str:
        """Display artist string (multi-artist tracks joined by one space)."""
        return " ".join(a.strip() for a in self.artists if a and a.strip())


@dataclass
class Song:
    id: str
    title: str
    title_norm: str
    artist: str
    artist_norm: str
    source: SongSource
    source_id: str
    album: str | None = None
    duration_sec: int | None = None
    cover_art_url: str | None = None
    video_url: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Song:
        return cls(
            id=row["id"],
            title=row["title"],
            title_norm=row["title_norm"],
            artist=row["artist"],
            artist_norm=row["artist_norm"],
            source=SongSource(row["source"]),
            source_id=row["source_id"],
            album=row["album"],
            duration_sec=row["duration_sec"],
            cover_art_url=row["cover_art_url"],
            video_url=row["video_url"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration_sec": self.duration_sec,
            "cover_art_url": self.cover_art_url,
            "video_url": self.video_url,
            "source": self.source.value,
            "source_id": self.source_id,
            "created_at": self.created_at,
        }


@dataclass
class SaveSongResult:
    song: Song
    duplicate: bool

    @property
    def inserted(self) -> bool:
        return not self.duplicate

    def to_dict(self) -> dict[str, Any]:
        return {
            "duplicate": self.duplicate,
            "inserted": self.inserted,
            "song": self.song.to_dict(),
        }


@dataclass
class SearchPage:
    page: int
    limit: int
    total: int
    songs: list[Song]

    @property
    def has_more(self) -> bool:
        return (self.page - 1) * self.limit + self.limit < self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "has_more": self.has_more,
            "next_page": self.page + 1 if self.has_more else None,
            "songs": [s.to_dict() for s in self.songs],
        }


# ---------------------------------------------------------------------------
# Users / events
# ---------------------------------------------------------------------------
@dataclass
class UserSummary:
    """Display-ready identity attached to hydrated requests."""

    id: str
    display_name: str | None = None
    username: str | None = None
    avatar: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> UserSummary:
        return cls(
            id=row["id"],
            display_name=row["display_name"],
            username=row["username"],
            avatar=row["avatar"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "username": self.username,
            "avatar": self.avatar,
        }


@dataclass
class Event:
    id: str
    org_id: str
    name: str
    date: str
    status: EventStatus
    created_by: str
    venue: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Event:
        return cls(
            id=row["id"],
            org_id=row["org_id"],
            name=row["name"],
            date=row["date"],
            status=EventStatus(row["status"]),
            created_by=row["created_by"],
            venue=row["venue"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "date": self.date,
            "venue": self.venue,
            "status": self.status.value,
            "created_by": self.created_by,
            "created_at": self.created_at,
        }


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
@dataclass
class SongRequest:
    """A stored request.  Holds references only; never a queue position."""

    id: str
    event_id: str
    song_id: str
    requester_id: str
    status: RequestStatus
    co_singer_ids: tuple[str, ...] = ()
    video_url: str | None = None
    rejection_reason: str | None = None
    fast_pass: bool = False
    in_crate: bool = False
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> SongRequest:
        return cls(
            id=row["id"],
            event_id=row["event_id"],
            song_id=row["song_id"],
            requester_id=row["requester_id"],
            status=RequestStatus(row["status"]),
            co_singer_ids=_json_list(row["co_singer_ids"]),
            video_url=row["video_url"],
            rejection_reason=row["rejection_reason"],
            fast_pass=bool(row["fast_pass"]),
            in_crate=bool(row["in_crate"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "song_id": self.song_id,
            "requester_id": self.requester_id,
            "co_singer_ids": list(self.co_singer_ids),
            "status": self.status.value,
            "video_url": self.video_url,
            "rejection_reason": self.rejection_reason,
            "fast_pass": self.fast_pass,
            "in_crate": self.in_crate,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class HydratedRequest:
    request: SongRequest
    song: Song | None
    requester: UserSummary
    co_singers: list[UserSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = self.request.to_dict()
        data["song"] = self.song.to_dict() if self.song else None
        data["requester"] = self.requester.to_dict()
        data["co_singers"] = [u.to_dict() for u in self.co_singers]
        return data


@dataclass
class QueueEntry:
    """A hydrated request with its derived, 1-based position."""

    request: HydratedRequest
    queue_position: int

    def to_dict(self) -> dict[str, Any]:
        data = self.request.to_dict()
        data["queue_position"] = self.queue_position
        return data


@dataclass
class Performance:
    id: str
    event_id: str
    request_id: str
    song_id: str
    requester_id: str
    performed_at: str
    co_singer_ids: tuple[str, ...] = ()
    video_url: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Performance:
        return cls(
            id=row["id"],
            event_id=row["event_id"],
            request_id=row["request_id"],
            song_id=row["song_id"],
            requester_id=row["requester_id"],
            performed_at=row["performed_at"],
            co_singer_ids=_json_list(row["co_singer_ids"]),
            video_url=row["video_url"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "request_id": self.request_id,
            "song_id": self.song_id,
            "requester_id": self.requester_id,
            "co_singer_ids": list(self.co_singer_ids),
            "performed_at": self.performed_at,
            "video_url": self.video_url,
        }


# ---------------------------------------------------------------------------
# Crates
# ---------------------------------------------------------------------------
@dataclass
class Crate:
    id: str
    event_id: str
    song_ids: tuple[str, ...] = ()
    created_at: str = ""
    updated_at: str = ""

    def __contains__(self, song_id: object) -> bool:
        return song_id in self.song_ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "song_ids": list(self.song_ids),
            "created_at": self.created_at,
        }


@dataclass
class HydratedCrate:
    crate: Crate
    songs: list[Song] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = self.crate.to_dict()
        data["songs"] = [s.to_dict() for s in self.songs]
        return data


@dataclass
class AddSongResult:
    crate: HydratedCrate
    already_present: bool

    def to_dict(self) -> dict[str, Any]:
        data = self.crate.to_dict()
        data["already_present"] = self.already_present
        return data


@dataclass
class MergeResult:
    added: int
    skipped: int
    duplicates: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "skipped": self.skipped,
            "duplicates": list(self.duplicates),
        }
