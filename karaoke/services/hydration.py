"""
Karaoke Queue Service - Reference Resolution

Turns raw records (ids only) into display-ready records.  Lookups are
batch fetchers passed in by the caller, defaulting to the SQLite store,
so each hydration costs one song query and one user query no matter how
many requests are resolved.
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from karaoke import database
from karaoke.models import (
    Crate,
    HydratedCrate,
    HydratedRequest,
    Song,
    SongRequest,
    UserSummary,
)

BatchFetch = Callable[[Sequence[str]], Awaitable[List[Dict[str, Any]]]]


async def _index(fetch: BatchFetch, ids: Sequence[str]) -> Dict[str, Mapping[str, Any]]:
    if not ids:
        return {}
    return {row["id"]: row for row in await fetch(list(dict.fromkeys(ids)))}


async def hydrate_requests(
    requests: Sequence[SongRequest],
    fetch_songs: Optional[BatchFetch] = None,
    fetch_users: Optional[BatchFetch] = None,
) -> List[HydratedRequest]:
    """Resolve song, requester and co-singers for every request, keeping order.

    A user without a stored profile resolves to a bare ``UserSummary`` carrying
    only its id; a missing song resolves to ``None``.
    """
    fetch_songs = fetch_songs or database.get_songs_by_ids
    fetch_users = fetch_users or database.get_users_by_ids

    songs = await _index(fetch_songs, [r.song_id for r in requests])
    user_ids: List[str] = []
    for r in requests:
        user_ids.append(r.requester_id)
        user_ids.extend(r.co_singer_ids)
    users = await _index(fetch_users, user_ids)

    def user(uid: str) -> UserSummary:
        row = users.get(uid)
        return UserSummary.from_row(row) if row else UserSummary(id=uid)

    hydrated: List[HydratedRequest] = []
    for r in requests:
        song_row = songs.get(r.song_id)
        hydrated.append(
            HydratedRequest(
                request=r,
                song=Song.from_row(song_row) if song_row else None,
                requester=user(r.requester_id),
                co_singers=[user(uid) for uid in r.co_singer_ids],
            )
        )
    return hydrated


async def hydrate_crate(crate: Crate, fetch_songs: Optional[BatchFetch] = None) -> HydratedCrate:
    """Resolve the crate's song ids to Song objects in crate order."""
    fetch_songs = fetch_songs or database.get_songs_by_ids
    songs = await _index(fetch_songs, list(crate.song_ids))
    return HydratedCrate(
        crate=crate,
        songs=[Song.from_row(songs[sid]) for sid in crate.song_ids if sid in songs],
    )
