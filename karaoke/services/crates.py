"""
Karaoke Queue Service - Crate Manager

A crate is the per-event set of songs staged for performance, independent
of who requested them.  One crate per event, created lazily on first
access or write.

Adding a song that is already present is a no-op reported through
``AddSongResult.already_present``.  The approve-with-crate path goes
through the same :func:`add_song`, so the policy is identical everywhere.
"""

from typing import Any, Dict, List, Sequence

from loguru import logger

from karaoke import database
from karaoke.errors import NotFoundError, ValidationError
from karaoke.models import AddSongResult, Crate, HydratedCrate, MergeResult
from karaoke.services.catalog import get_song
from karaoke.services.events import get_event
from karaoke.services.hydration import hydrate_crate
from karaoke.validation import require_id


def _to_crate(row: Dict[str, Any]) -> Crate:
    return Crate(
        id=row["id"],
        event_id=row["event_id"],
        song_ids=tuple(row.get("song_ids", ())),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def get_or_create(event_id: str) -> Crate:
    """Return the event's crate, creating an empty one if absent."""
    await get_event(event_id)
    return _to_crate(await database.get_or_create_crate(event_id))


async def get_crate(event_id: str) -> HydratedCrate:
    """Return the event's crate with songs resolved for display."""
    return await hydrate_crate(await get_or_create(event_id))


async def contains_song(event_id: str, song_id: str) -> bool:
    """Read-only membership check; never creates the crate."""
    return await database.is_song_in_event_crate(event_id, song_id)


async def add_song(event_id: str, song_id: str) -> AddSongResult:
    """Add *song_id* to the event's crate (set semantics)."""
    require_id(song_id, "song_id")
    crate = await get_or_create(event_id)
    await get_song(song_id)

    added = await database.add_crate_songs(crate.id, [song_id])
    already_present = not added
    if already_present:
        logger.info(f"📦 Song {song_id} already in crate for event {event_id}")
    else:
        logger.info(f"📦 Song {song_id} added to crate for event {event_id}")

    return AddSongResult(
        crate=await get_crate(event_id),
        already_present=already_present,
    )


async def remove_song(event_id: str, song_id: str) -> HydratedCrate:
    """Remove *song_id* if present; absent songs are not an error."""
    require_id(song_id, "song_id")
    crate = await get_or_create(event_id)
    if await database.remove_crate_song(crate.id, song_id):
        logger.info(f"📦 Song {song_id} removed from crate for event {event_id}")
    return await get_crate(event_id)


async def merge(event_id: str, source_crate_ids: Sequence[str]) -> MergeResult:
    """
    Union the songs of *source_crate_ids* into the event's crate.

    The union of the sources is de-duplicated first; ``added`` counts songs
    newly inserted into the target, ``skipped``/``duplicates`` the ones the
    target already held.  Merging the same sources twice adds nothing the
    second time.
    """
    if not source_crate_ids:
        raise ValidationError("At least one crate id is required", field="crate_ids")
    ids = [require_id(cid, "crate_ids") for cid in source_crate_ids]

    target = await get_or_create(event_id)

    sources = await database.get_crates_by_ids(ids)
    found = {c["id"] for c in sources}
    missing = [cid for cid in dict.fromkeys(ids) if cid not in found]
    if missing:
        raise NotFoundError("crate", missing[0] if len(missing) == 1 else missing)

    incoming: List[str] = []
    for source in sources:
        incoming.extend(source["song_ids"])
    incoming = list(dict.fromkeys(incoming))

    added_ids = set(await database.add_crate_songs(target.id, incoming))
    duplicates = [sid for sid in incoming if sid not in added_ids]

    result = MergeResult(added=len(added_ids), skipped=len(duplicates), duplicates=duplicates)
    logger.info(
        "📦 Merged {} crate(s) into event {}: {} added, {} skipped",
        len(sources),
        event_id,
        result.added,
        result.skipped,
    )
    return result
