"""
Karaoke Queue Service - JSON API Routes

Provides REST endpoints for:
- Health check
- Events (create, list, active, get, update)
- Song catalog (search, manual/CSV save, save-from-Spotify, enrichment)
- Caller profile, user search and push-device registration
- Admin broadcast announcements
- Spotify track search

Request / queue / crate endpoints live in ``karaoke.routes.queue``.
"""

import time
from typing import Any, List, Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from karaoke import database
from karaoke.auth import AuthenticatedPrincipal, get_principal, require_admin
from karaoke.config import APP_VERSION, DB_PATH, SEARCH_DEFAULT_LIMIT, USER_SEARCH_LIMIT
from karaoke.errors import NotFoundError, ValidationError
from karaoke.services import catalog, events
from karaoke.services.notifications import (
    PushNotifier,
    broadcast_notification,
    is_expo_push_token,
)
from karaoke.services.spotify import SpotifyClient
from karaoke.validation import like_pattern, optional_text, require_text

router = APIRouter(prefix="/api", tags=["API"])

# Track startup time for health check
_START_TIME = time.time()


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------
class EventCreate(BaseModel):
    name: str
    date: str
    venue: Optional[str] = None


class EventUpdate(BaseModel):
    name: Optional[str] = None
    date: Optional[str] = None
    venue: Optional[str] = None
    status: Optional[str] = None


class SongCreate(BaseModel):
    title: str
    artist: Union[str, List[str]]
    source: str = "manual"
    source_id: Optional[str] = None
    album: Optional[str] = None
    duration_sec: Optional[float] = None
    cover_art_url: Optional[str] = None
    video_url: Optional[str] = None


class SpotifySaveRequest(BaseModel):
    track_id: str


class SongEnrichment(BaseModel):
    video_url: Optional[str] = None
    cover_art_url: Optional[str] = None


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    username: Optional[str] = None
    avatar: Optional[str] = None
    email: Optional[str] = None


class DeviceRegistration(BaseModel):
    token: str
    platform: Optional[str] = None


class BroadcastRequest(BaseModel):
    message: str
    event_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Shared dependencies
# ---------------------------------------------------------------------------
def get_notifier(request: Request) -> PushNotifier:
    """The push notifier built in the application lifespan."""
    return request.app.state.notifier


def get_spotify(request: Request) -> SpotifyClient:
    """The Spotify client built in the application lifespan."""
    return request.app.state.spotify


async def register_principal(principal: AuthenticatedPrincipal) -> None:
    """Create or refresh the caller's user row from the token claims."""
    await database.ensure_user(principal.id, role=principal.role.value, org_id=principal.org_id)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@router.get("/health")
async def health_check():
    """Health check endpoint for the service."""
    uptime = round(time.time() - _START_TIME, 2)
    db_ok = DB_PATH.exists()

    return {
        "status": "ok" if db_ok else "degraded",
        "database": "ok" if db_ok else "missing",
        "uptime_seconds": uptime,
        "version": APP_VERSION,
    }


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@router.post("/events", status_code=201)
async def api_create_event(
    body: EventCreate, principal: AuthenticatedPrincipal = Depends(require_admin)
):
    """Create a draft event owned by the admin's organization."""
    await register_principal(principal)
    event = await events.create_event(principal, body.name, body.date, body.venue)
    return event.to_dict()


@router.get("/events")
async def api_list_events(
    status: Optional[str] = Query(None),
    principal: AuthenticatedPrincipal = Depends(get_principal),
):
    """List the caller's organization events, soonest first."""
    items = await events.list_events(org_id=principal.org_id, status=status)
    return {"events": [e.to_dict() for e in items], "total": len(items)}


@router.get("/events/active")
async def api_active_event(principal: AuthenticatedPrincipal = Depends(get_principal)):
    event = await events.get_active_event(principal.org_id)
    return event.to_dict()


@router.get("/events/{event_id}")
async def api_get_event(event_id: str, principal: AuthenticatedPrincipal = Depends(get_principal)):
    event = await events.get_event(event_id)
    return event.to_dict()


@router.patch("/events/{event_id}")
async def api_update_event(
    event_id: str,
    body: EventUpdate,
    principal: AuthenticatedPrincipal = Depends(require_admin),
):
    event = await events.update_event(
        event_id,
        principal,
        name=body.name,
        date=body.date,
        venue=body.venue,
        status=body.status,
    )
    return event.to_dict()


# ---------------------------------------------------------------------------
# Songs
# ---------------------------------------------------------------------------
@router.get("/songs/search")
async def api_search_songs(
    q: str = Query(""),
    page: int = Query(1),
    limit: int = Query(SEARCH_DEFAULT_LIMIT),
    principal: AuthenticatedPrincipal = Depends(get_principal),
):
    """Paginated catalog search over title, artist and album."""
    result = await catalog.search_songs(q, page=page, limit=limit)
    return result.to_dict()


@router.post("/songs")
async def api_create_song(
    body: SongCreate, principal: AuthenticatedPrincipal = Depends(require_admin)
):
    """Save a manual or CSV track through the dedup path."""
    if body.source == "spotify":
        raise ValidationError("Use /api/songs/save-from-spotify for spotify tracks", field="source")
    track = catalog.build_source_track(
        title=body.title,
        artists=body.artist,
        source=body.source,
        source_id=body.source_id,
        album=body.album,
        duration_sec=body.duration_sec,
        cover_art_url=body.cover_art_url,
        video_url=body.video_url,
    )
    result = await catalog.save_from_source(track)
    return JSONResponse(status_code=201 if result.inserted else 200, content=result.to_dict())


@router.post("/songs/save-from-spotify")
async def api_save_from_spotify(
    body: SpotifySaveRequest,
    principal: AuthenticatedPrincipal = Depends(get_principal),
    spotify: SpotifyClient = Depends(get_spotify),
):
    """Fetch a Spotify track and add it to the catalog unless already present."""
    track = await spotify.get_track(require_text(body.track_id, "track_id"))
    result = await catalog.save_from_source(track.to_source_track())
    return JSONResponse(status_code=201 if result.inserted else 200, content=result.to_dict())


@router.get("/songs/{song_id}")
async def api_get_song(song_id: str, principal: AuthenticatedPrincipal = Depends(get_principal)):
    song = await catalog.get_song(song_id)
    return song.to_dict()


@router.patch("/songs/{song_id}")
async def api_enrich_song(
    song_id: str,
    body: SongEnrichment,
    principal: AuthenticatedPrincipal = Depends(require_admin),
):
    """Set enrichment fields only; catalog identity is immutable."""
    song = await catalog.enrich_song(
        song_id, video_url=body.video_url, cover_art_url=body.cover_art_url
    )
    return song.to_dict()


# ---------------------------------------------------------------------------
# Users / devices
# ---------------------------------------------------------------------------
def _profile(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "role": row["role"],
        "org_id": row["org_id"],
        "username": row["username"],
        "display_name": row["display_name"],
        "email": row["email"],
        "avatar": row["avatar"],
        "has_push_token": bool(row["push_token"]),
    }


@router.get("/users/me")
async def api_get_profile(principal: AuthenticatedPrincipal = Depends(get_principal)):
    row = await database.get_user(principal.id)
    if not row:
        raise NotFoundError("user", principal.id)
    return _profile(row)


@router.get("/users/search")
async def api_search_users(
    q: str = Query(""), principal: AuthenticatedPrincipal = Depends(get_principal)
):
    """Find singers by username, display name or email (for co-singer picks)."""
    query = require_text(q, "q")
    rows = await database.search_users(like_pattern(query), limit=USER_SEARCH_LIMIT)
    return {
        "users": [
            {
                "id": r["id"],
                "username": r["username"],
                "display_name": r["display_name"],
                "avatar": r["avatar"],
            }
            for r in rows
        ]
    }


@router.put("/users/me")
async def api_update_profile(
    body: ProfileUpdate, principal: AuthenticatedPrincipal = Depends(get_principal)
):
    """Update the display fields shown next to the caller's requests."""
    fields = {
        name: optional_text(value, name)
        for name, value in body.model_dump(exclude_unset=True).items()
    }
    if not fields:
        raise ValidationError("No fields to update")

    await register_principal(principal)
    await database.update_user(principal.id, **fields)
    logger.info("👤 Profile updated for {}: {}", principal.id, list(fields))
    return _profile(await database.get_user(principal.id))


@router.post("/devices/register")
async def api_register_device(
    body: DeviceRegistration, principal: AuthenticatedPrincipal = Depends(get_principal)
):
    """Store the caller's Expo push token."""
    token = require_text(body.token, "token")
    if not is_expo_push_token(token):
        raise ValidationError("Invalid Expo push token", field="token")

    await register_principal(principal)
    await database.update_user(principal.id, push_token=token)
    logger.info("📱 Device registered for {} ({})", principal.id, body.platform or "unknown")
    return {"registered": True}


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------
@router.post("/broadcast")
async def api_broadcast(
    body: BroadcastRequest,
    principal: AuthenticatedPrincipal = Depends(require_admin),
    notifier: PushNotifier = Depends(get_notifier),
):
    """Send an announcement to every registered device."""
    message = require_text(body.message, "message")
    if body.event_id:
        await events.get_event_for_admin(body.event_id, principal)
    sent = await notifier.broadcast(broadcast_notification(message, body.event_id))
    return {"sent": sent}


# ---------------------------------------------------------------------------
# Spotify
# ---------------------------------------------------------------------------
@router.get("/spotify/search")
async def api_spotify_search(
    q: str = Query(""),
    limit: int = Query(SEARCH_DEFAULT_LIMIT),
    principal: AuthenticatedPrincipal = Depends(get_principal),
    spotify: SpotifyClient = Depends(get_spotify),
):
    tracks = await spotify.search_tracks(q, limit=limit)
    return {"tracks": [t.to_dict() for t in tracks]}
