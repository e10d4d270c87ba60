"""
Karaoke Queue Service - Request, Queue & Crate Routes

Provides REST endpoints for:
- Song requests (create, list, get, approve, reject, perform, video URL)
- The live queue with derived positions
- The event's crate (view, add, remove, merge)
- The performance history of an event

Singers create requests; every state change and crate write is limited
to admins of the organization that owns the event.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from loguru import logger
from pydantic import BaseModel, Field

from karaoke.auth import AuthenticatedPrincipal, get_principal, require_admin
from karaoke.routes.api import get_notifier, register_principal
from karaoke.services import crates, queue, requests
from karaoke.services.events import get_event_for_admin
from karaoke.services.notifications import PushNotifier

router = APIRouter(prefix="/api/events/{event_id}", tags=["Queue"])


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------
class RequestCreate(BaseModel):
    song_id: str
    co_singer_ids: List[str] = Field(default_factory=list)
    fast_pass: bool = False


class ApproveBody(BaseModel):
    add_to_crate: bool = False


class RejectBody(BaseModel):
    reason: Optional[str] = None


class VideoBody(BaseModel):
    video_url: Optional[str] = None


class CrateSongBody(BaseModel):
    song_id: str


class MergeBody(BaseModel):
    crate_ids: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
@router.post("/requests", status_code=201)
async def api_create_request(
    event_id: str,
    body: RequestCreate,
    principal: AuthenticatedPrincipal = Depends(get_principal),
):
    """Request a song for the event as the calling singer."""
    await register_principal(principal)
    request = await requests.create_request(
        event_id,
        body.song_id,
        principal.id,
        co_singer_ids=body.co_singer_ids,
        fast_pass=body.fast_pass,
    )
    return request.to_dict()


@router.get("/requests")
async def api_list_requests(
    event_id: str,
    status: Optional[str] = Query(None),
    in_crate: Optional[bool] = Query(None),
    principal: AuthenticatedPrincipal = Depends(require_admin),
):
    """Admin view of every request for the event, newest first."""
    await get_event_for_admin(event_id, principal)
    items = await requests.list_requests(event_id, status=status, in_crate=in_crate)
    return {"requests": [r.to_dict() for r in items], "total": len(items)}


@router.get("/requests/{request_id}")
async def api_get_request(
    event_id: str,
    request_id: str,
    principal: AuthenticatedPrincipal = Depends(get_principal),
):
    hydrated = await requests.get_request(event_id, request_id)
    return hydrated.to_dict()


@router.post("/requests/{request_id}/approve")
async def api_approve_request(
    event_id: str,
    request_id: str,
    body: Optional[ApproveBody] = None,
    principal: AuthenticatedPrincipal = Depends(require_admin),
    notifier: PushNotifier = Depends(get_notifier),
):
    await get_event_for_admin(event_id, principal)
    add_to_crate = body.add_to_crate if body else False
    request = await requests.approve_request(
        event_id, request_id, add_to_crate=add_to_crate, notifier=notifier
    )
    return request.to_dict()


@router.post("/requests/{request_id}/reject")
async def api_reject_request(
    event_id: str,
    request_id: str,
    body: RejectBody,
    principal: AuthenticatedPrincipal = Depends(require_admin),
    notifier: PushNotifier = Depends(get_notifier),
):
    await get_event_for_admin(event_id, principal)
    request = await requests.reject_request(
        event_id, request_id, body.reason, notifier=notifier
    )
    return request.to_dict()


@router.post("/requests/{request_id}/perform")
async def api_mark_performed(
    event_id: str,
    request_id: str,
    principal: AuthenticatedPrincipal = Depends(require_admin),
):
    await get_event_for_admin(event_id, principal)
    request, performance = await requests.mark_performed(event_id, request_id)
    return {"request": request.to_dict(), "performance": performance.to_dict()}


@router.put("/requests/{request_id}/video")
async def api_update_video(
    event_id: str,
    request_id: str,
    body: VideoBody,
    principal: AuthenticatedPrincipal = Depends(require_admin),
):
    await get_event_for_admin(event_id, principal)
    request = await requests.update_video(event_id, request_id, body.video_url)
    logger.info("🎬 Video URL set on request {}", request_id)
    return request.to_dict()


# ---------------------------------------------------------------------------
# Queue / performances
# ---------------------------------------------------------------------------
@router.get("/queue")
async def api_get_queue(
    event_id: str, principal: AuthenticatedPrincipal = Depends(get_principal)
):
    """Approved and queued requests with their current 1-based positions."""
    entries = await queue.get_queue(event_id)
    return {"queue": [e.to_dict() for e in entries], "total": len(entries)}


@router.get("/performances")
async def api_list_performances(
    event_id: str, principal: AuthenticatedPrincipal = Depends(get_principal)
):
    items = await requests.list_performances(event_id)
    return {"performances": [p.to_dict() for p in items], "total": len(items)}


# ---------------------------------------------------------------------------
# Crate
# ---------------------------------------------------------------------------
@router.get("/crate")
async def api_get_crate(
    event_id: str, principal: AuthenticatedPrincipal = Depends(require_admin)
):
    await get_event_for_admin(event_id, principal)
    crate = await crates.get_crate(event_id)
    return crate.to_dict()


@router.post("/crate/songs")
async def api_add_crate_song(
    event_id: str,
    body: CrateSongBody,
    principal: AuthenticatedPrincipal = Depends(require_admin),
):
    await get_event_for_admin(event_id, principal)
    result = await crates.add_song(event_id, body.song_id)
    return result.to_dict()


@router.delete("/crate/songs/{song_id}")
async def api_remove_crate_song(
    event_id: str,
    song_id: str,
    principal: AuthenticatedPrincipal = Depends(require_admin),
):
    await get_event_for_admin(event_id, principal)
    crate = await crates.remove_song(event_id, song_id)
    return crate.to_dict()


@router.post("/crate/merge")
async def api_merge_crates(
    event_id: str,
    body: MergeBody,
    principal: AuthenticatedPrincipal = Depends(require_admin),
):
    """Union other crates' songs into this event's crate."""
    await get_event_for_admin(event_id, principal)
    result = await crates.merge(event_id, body.crate_ids)
    return result.to_dict()
