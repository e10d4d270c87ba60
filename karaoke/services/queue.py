"""
Karaoke Queue Service - Queue Position Calculator

Positions are derived on every read from the current set of approved /
queued requests and are never written back, so a request that is rejected
or performed drops out and everyone behind it moves up on the next read.
"""

from typing import List, Sequence

from karaoke import database
from karaoke.models import ACTIVE_STATUSES, QueueEntry, SongRequest
from karaoke.services.events import get_event
from karaoke.services.hydration import hydrate_requests


def order_queue(requests: Sequence[SongRequest]) -> List[SongRequest]:
    """Keep eligible requests, oldest first.  The sort is stable for equal timestamps."""
    eligible = [r for r in requests if r.is_active]
    return sorted(eligible, key=lambda r: r.created_at)


async def get_queue(event_id: str) -> List[QueueEntry]:
    """Return the event's live queue with 1-based positions."""
    await get_event(event_id)

    # One SELECT, so positions come from a single snapshot of the request set
    rows = await database.list_requests(
        event_id,
        statuses=[s.value for s in ACTIVE_STATUSES],
        oldest_first=True,
    )
    ordered = order_queue([SongRequest.from_row(r) for r in rows])
    hydrated = await hydrate_requests(ordered)
    return [
        QueueEntry(request=h, queue_position=index + 1)
        for index, h in enumerate(hydrated)
    ]
