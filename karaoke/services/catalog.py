"""
Karaoke Queue Service - Song Catalog & Deduplication

Handles:
- Normalizing titles and artist strings into match keys
- Idempotent save-from-source keyed by
  (source, source_id, normalized title, normalized artist)
- Paginated free-text search over title / artist / album
- Enrichment of existing rows (video URL, cover art)

Normalization lower-cases, drops every character that is not an ASCII
letter, digit or whitespace, collapses whitespace runs to a single space
and trims.  The same function derives keys at write time and for any
later comparison, so stored keys never drift.
"""

import re
from typing import Any, Iterable, Optional, Tuple, Union

from loguru import logger

from karaoke import database
from karaoke.config import SEARCH_DEFAULT_LIMIT, SEARCH_MAX_LIMIT
from karaoke.errors import NotFoundError, ValidationError
from karaoke.models import SaveSongResult, SearchPage, Song, SongSource, SourceTrack
from karaoke.validation import (
    like_pattern,
    optional_text,
    require_id,
    require_text,
    validate_url,
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------
def normalize_text(raw: str) -> str:
    """Return the match key for a title or artist string.

    >>> normalize_text("  Don't Stop Me Now! ")
    'dont stop me now'
    """
    text = _NON_ALNUM_RE.sub("", (raw or "").lower().strip())
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_artist(artists: Union[str, Iterable[str]]) -> str:
    """Join multi-artist credits with one space, then normalize as one string."""
    if isinstance(artists, str):
        return normalize_text(artists)
    return normalize_text(" ".join(artists))


def dedup_key(track: SourceTrack) -> Tuple[str, str, str, str]:
    return (
        track.source.value,
        track.source_id,
        normalize_text(track.title),
        normalize_artist(track.artists),
    )


def _fallback_part(raw: str, normalized: str) -> str:
    # Non-Latin or punctuation-only names normalize to "", keep them distinct
    if normalized:
        return normalized
    return _WHITESPACE_RE.sub(" ", raw.casefold()).strip()


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------
def build_source_track(
    *,
    title: Any,
    artists: Any,
    source: Any,
    source_id: Any = None,
    album: Any = None,
    duration_sec: Any = None,
    cover_art_url: Any = None,
    video_url: Any = None,
) -> SourceTrack:
    """Validate raw input and return a :class:`SourceTrack`.

    *artists* may be a single string or a list of names.  Manual and CSV
    entries without an external id fall back to the normalized
    ``title|artist`` pair (the casefolded raw text where normalization
    leaves nothing), so re-saving the same manual entry stays idempotent.
    """
    title = require_text(title, "title")

    if isinstance(artists, str):
        artists = [artists]
    if not isinstance(artists, (list, tuple)):
        raise ValidationError("artist is required", field="artist")
    names = tuple(a.strip() for a in artists if isinstance(a, str) and a.strip())
    if not names:
        raise ValidationError("artist is required", field="artist")

    try:
        source = SongSource(source)
    except ValueError:
        raise ValidationError(
            "source must be one of: " + ", ".join(s.value for s in SongSource),
            field="source",
        ) from None

    ext_id = optional_text(source_id, "source_id")
    if ext_id is None:
        if source is SongSource.SPOTIFY:
            raise ValidationError("source_id is required for spotify tracks", field="source_id")
        title_part = _fallback_part(title, normalize_text(title))
        artist_part = _fallback_part(" ".join(names), normalize_artist(names))
        ext_id = f"{title_part}|{artist_part}"

    if duration_sec is not None:
        if isinstance(duration_sec, bool) or not isinstance(duration_sec, (int, float)) or duration_sec < 0:
            raise ValidationError("duration_sec must be a non-negative number", field="duration_sec")
        duration_sec = int(round(duration_sec))

    return SourceTrack(
        title=title,
        artists=names,
        source=source,
        source_id=ext_id,
        album=optional_text(album, "album"),
        duration_sec=duration_sec,
        cover_art_url=validate_url(cover_art_url, "cover_art_url") if cover_art_url else None,
        video_url=validate_url(video_url, "video_url") if video_url else None,
    )


# ---------------------------------------------------------------------------
# Save / lookup
# ---------------------------------------------------------------------------
async def save_from_source(track: SourceTrack) -> SaveSongResult:
    """
    Insert *track* unless the catalog already holds it under the same dedup key.

    Calling this twice with identical input returns the same song both times;
    the second call reports ``duplicate=True`` and performs no write.
    """
    source, source_id, title_norm, artist_norm = dedup_key(track)

    row, inserted = await database.insert_song_if_absent(
        title=track.title,
        title_norm=title_norm,
        artist=track.artist,
        artist_norm=artist_norm,
        source=source,
        source_id=source_id,
        album=track.album,
        duration_sec=track.duration_sec,
        cover_art_url=track.cover_art_url,
        video_url=track.video_url,
    )
    song = Song.from_row(row)
    if inserted:
        logger.success(f"✅ Song added (id={song.id}): {song.title} - {song.artist} [{source}]")
    else:
        logger.info(f"♻️ Duplicate song skipped (id={song.id}): {song.title} - {song.artist} [{source}]")
    return SaveSongResult(song=song, duplicate=not inserted)


async def get_song(song_id: str) -> Song:
    require_id(song_id, "song_id")
    row = await database.get_song_by_id(song_id)
    if not row:
        raise NotFoundError("song", song_id)
    return Song.from_row(row)


async def enrich_song(
    song_id: str, video_url: Optional[str] = None, cover_art_url: Optional[str] = None
) -> Song:
    """Attach enrichment fields; every other catalog field is immutable."""
    fields = {}
    if video_url is not None:
        fields["video_url"] = validate_url(video_url, "video_url")
    if cover_art_url is not None:
        fields["cover_art_url"] = validate_url(cover_art_url, "cover_art_url")
    if not fields:
        raise ValidationError("No fields to update")

    await get_song(song_id)
    await database.update_song(song_id, **fields)
    return await get_song(song_id)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------
async def search_songs(
    query: str, page: int = 1, limit: int = SEARCH_DEFAULT_LIMIT
) -> SearchPage:
    """Case-insensitive substring search; ``limit`` is capped at SEARCH_MAX_LIMIT."""
    query = require_text(query, "q")
    if page < 1:
        raise ValidationError("page must be >= 1", field="page")
    if limit < 1:
        raise ValidationError("limit must be >= 1", field="limit")
    limit = min(limit, SEARCH_MAX_LIMIT)
    skip = (page - 1) * limit

    pattern = like_pattern(query)
    total = await database.count_songs(pattern)
    rows = await database.search_songs(pattern, limit=limit, offset=skip)
    return SearchPage(
        page=page,
        limit=limit,
        total=total,
        songs=[Song.from_row(r) for r in rows],
    )
