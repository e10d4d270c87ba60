"""
Karaoke Queue Service - Request Lifecycle Manager

State machine for a singer's song request::

    pending_admin --approve--> approved --(queued)--> queued
          |                        |                     |
          +--reject--> rejected    +----mark performed---+--> performed

``rejected`` and ``performed`` are terminal.  ``queued`` is a sibling of
``approved`` that no operation sets yet; both hold a queue position.

Every transition is one conditional UPDATE (``... WHERE status IN
(allowed)``), so the state check and the write cannot interleave with a
concurrent decision.  Push notifications are sent after the write and
their failure never rolls it back.
"""

from typing import Any, Iterable, List, Optional, Tuple

from loguru import logger

from karaoke import database
from karaoke.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from karaoke.models import (
    HydratedRequest,
    Performance,
    RequestStatus,
    SongRequest,
)
from karaoke.services import crates
from karaoke.services.catalog import get_song
from karaoke.services.events import get_event
from karaoke.services.hydration import hydrate_requests
from karaoke.services.notifications import (
    PushNotification,
    PushNotifier,
    approval_notification,
    rejection_notification,
)
from karaoke.validation import require_id, require_text, unique_user_ids, validate_url

# Allowed source statuses per transition
APPROVABLE = (
    RequestStatus.PENDING_ADMIN,
    RequestStatus.APPROVED,
    RequestStatus.QUEUED,
)
REJECTABLE = APPROVABLE
PERFORMABLE = (RequestStatus.APPROVED, RequestStatus.QUEUED)


def _values(statuses: Iterable[RequestStatus]) -> List[str]:
    return [s.value for s in statuses]


def parse_status(value: Any) -> RequestStatus:
    try:
        return RequestStatus(value)
    except ValueError:
        raise ValidationError(
            "status must be one of: " + ", ".join(s.value for s in RequestStatus),
            field="status",
        ) from None


async def _load(event_id: str, request_id: str) -> SongRequest:
    """Fetch a request and check it belongs to *event_id*."""
    require_id(event_id, "event_id")
    require_id(request_id, "request_id")
    row = await database.get_request(request_id)
    if not row or row["event_id"] != event_id:
        raise NotFoundError("request", request_id)
    return SongRequest.from_row(row)


async def _transition(
    current: SongRequest,
    target: RequestStatus,
    allowed_from: Tuple[RequestStatus, ...],
    **fields,
) -> SongRequest:
    """Apply a guarded status update, mapping a lost race to the right error."""
    if current.status not in allowed_from:
        raise InvalidStateTransitionError(current.status.value, target.value)

    updated = await database.update_request(
        current.id, allowed_from=_values(allowed_from), **fields
    )
    reloaded = await _load(current.event_id, current.id)
    if not updated:
        # Another decision landed between our read and our write
        raise InvalidStateTransitionError(reloaded.status.value, target.value)
    return reloaded


async def _notify(
    notifier: Optional[PushNotifier], user_id: str, notification: PushNotification
) -> None:
    """Best-effort push; failures are logged, never raised."""
    if notifier is None:
        return
    try:
        await notifier.notify(user_id, notification)
    except Exception as e:
        logger.error("❌ Push notification to {} failed: {}", user_id, e)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------
async def create_request(
    event_id: str,
    song_id: str,
    requester_id: str,
    co_singer_ids: Optional[Iterable[Any]] = None,
    fast_pass: bool = False,
) -> SongRequest:
    """Create a ``pending_admin`` request.  ``in_crate`` is a read-only snapshot."""
    requester_id = require_text(requester_id, "requester_id")
    require_id(song_id, "song_id")
    co_singers = unique_user_ids(co_singer_ids, exclude=requester_id)

    await get_event(event_id)
    await get_song(song_id)
    in_crate = await crates.contains_song(event_id, song_id)

    row = await database.insert_request(
        event_id=event_id,
        song_id=song_id,
        requester_id=requester_id,
        co_singer_ids=co_singers,
        in_crate=in_crate,
        fast_pass=fast_pass,
        status=RequestStatus.PENDING_ADMIN.value,
    )
    request = SongRequest.from_row(row)
    logger.success(
        f"🎤 Request created (id={request.id}) by {requester_id} for song {song_id}"
        f"{' [in crate]' if in_crate else ''}"
    )
    return request


async def approve_request(
    event_id: str,
    request_id: str,
    add_to_crate: bool = False,
    notifier: Optional[PushNotifier] = None,
) -> SongRequest:
    """
    Approve a request, optionally staging its song in the event's crate.

    Re-approving an ``approved`` request is idempotent; a ``queued`` request
    keeps its status.  Terminal requests raise INVALID_STATE_TRANSITION.
    """
    current = await _load(event_id, request_id)
    if current.status not in APPROVABLE:
        raise InvalidStateTransitionError(current.status.value, RequestStatus.APPROVED.value)

    status = current.status if current.status is RequestStatus.QUEUED else RequestStatus.APPROVED
    request = await _transition(current, RequestStatus.APPROVED, APPROVABLE, status=status.value)

    # Crate write only once the approval itself has landed
    if add_to_crate:
        await crates.add_song(event_id, request.song_id)
        await database.update_request(request.id, in_crate=True)
        request = await _load(event_id, request_id)
    logger.info(
        f"✅ Request {request_id} approved{' and added to crate' if add_to_crate else ''}"
    )

    await _notify(notifier, request.requester_id, approval_notification(request.id))
    return request


async def reject_request(
    event_id: str,
    request_id: str,
    reason: Optional[str],
    notifier: Optional[PushNotifier] = None,
) -> SongRequest:
    """Reject with a mandatory, non-empty reason.  No crate interaction."""
    reason = require_text(reason, "reason")
    current = await _load(event_id, request_id)

    request = await _transition(
        current,
        RequestStatus.REJECTED,
        REJECTABLE,
        status=RequestStatus.REJECTED.value,
        rejection_reason=reason,
    )
    logger.info(f"🚫 Request {request_id} rejected: {reason}")

    await _notify(notifier, request.requester_id, rejection_notification(request.id, reason))
    return request


async def mark_performed(event_id: str, request_id: str) -> Tuple[SongRequest, Performance]:
    """Close out an approved/queued request and record the performance."""
    current = await _load(event_id, request_id)
    if current.status not in PERFORMABLE:
        raise InvalidStateTransitionError(current.status.value, RequestStatus.PERFORMED.value)

    row = await database.mark_request_performed(current.id, _values(PERFORMABLE))
    request = await _load(event_id, request_id)
    if row is None:
        raise InvalidStateTransitionError(request.status.value, RequestStatus.PERFORMED.value)

    logger.info(f"🎶 Request {request_id} performed")
    return request, Performance.from_row(row)


async def update_video(event_id: str, request_id: str, video_url: Any) -> SongRequest:
    """Attach or overwrite the video URL.  Allowed in every status."""
    url = validate_url(video_url, "video_url")
    current = await _load(event_id, request_id)
    await database.update_request(current.id, video_url=url)
    return await _load(event_id, request_id)


async def get_request(event_id: str, request_id: str) -> HydratedRequest:
    request = await _load(event_id, request_id)
    (hydrated,) = await hydrate_requests([request])
    return hydrated


async def list_requests(
    event_id: str,
    status: Optional[Any] = None,
    in_crate: Optional[bool] = None,
) -> List[HydratedRequest]:
    """All matching requests of an event, newest first, fully hydrated."""
    statuses = [parse_status(status).value] if status else None
    await get_event(event_id)
    rows = await database.list_requests(event_id, statuses=statuses, in_crate=in_crate)
    return await hydrate_requests([SongRequest.from_row(r) for r in rows])


async def list_performances(event_id: str) -> List[Performance]:
    await get_event(event_id)
    return [Performance.from_row(r) for r in await database.list_performances(event_id)]
