"""Per-entity readers that turn source rows into canonical records.

Every extractor follows the same contract: read the whole table once, resolve
its columns through :data:`services.schema_inference.COLUMN_SYNONYMS`, build
one record per row and report problems on the shared
:class:`~services.music_library.ConversionResult`.  A failing row only costs
that row; a failing table only costs that entity.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Union

from .music_library import (
    Album,
    Artist,
    ConversionResult,
    Event,
    Format,
    Lyrics,
    Playlist,
    SearchQuery,
    Song,
    SongAlbumMap,
    SongArtistMap,
)
from .sanitizer import Cleaner, coerce_float, coerce_int, coerce_timestamp
from .schema_inference import ColumnResolver
from .sqlite_engine import SqliteImage

LOGGER = logging.getLogger(__name__)

DEFAULT_PLAYLIST_NAME = "Unknown Playlist"


# ---------------------------------------------------------------------------
# Row outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Kept:
    record: Any


@dataclass(frozen=True)
class DroppedSilently:
    reason: str


@dataclass(frozen=True)
class DroppedWithWarning:
    reason: str


RowOutcome = Union[Kept, DroppedSilently, DroppedWithWarning]
RowBuilder = Callable[[Mapping[str, Any], ColumnResolver, Cleaner, List[Any]], RowOutcome]


def _run_extractor(
    image: SqliteImage,
    table_name: str,
    result: ConversionResult,
    entity: str,
    table_label: str,
    row_label: str,
    build_row: RowBuilder,
) -> List[Any]:
    records: List[Any] = []
    try:
        columns = [column.name for column in image.table_columns(table_name)]
        rows = image.read_table(table_name)
    except sqlite3.Error as exc:
        LOGGER.warning("Failed to read table %s: %s", table_name, exc)
        result.errors.append(f"Error reading {table_label} table: {exc}")
        return records

    if not columns and rows:
        columns = list(rows[0].keys())
    resolver = ColumnResolver.for_entity(entity, columns)
    cleaner = Cleaner(result.cleaning_report)

    for row in rows:
        try:
            outcome = build_row(row, resolver, cleaner, records)
        except (AttributeError, KeyError, OverflowError, TypeError, ValueError) as exc:
            LOGGER.debug("Could not parse %s row %r: %s", row_label, row, exc)
            result.warnings.append(f"Could not parse {row_label} row")
            continue
        if isinstance(outcome, Kept):
            records.append(outcome.record)
        elif isinstance(outcome, DroppedWithWarning):
            result.warnings.append(outcome.reason)
        else:
            LOGGER.debug("Dropped %s row: %s", row_label, outcome.reason)

    LOGGER.info("Extracted %d %s from %s", len(records), table_label, table_name)
    return records


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


# ---------------------------------------------------------------------------
# Songs and playlists
# ---------------------------------------------------------------------------


def _song_row(row, resolver: ColumnResolver, cleaner: Cleaner, records) -> RowOutcome:
    song_id = cleaner.text(resolver.value(row, "id"), "songId")
    title = cleaner.text(resolver.value(row, "title"), "title")
    artists = cleaner.text(resolver.value(row, "artists"), "artists")
    duration = cleaner.duration(resolver.value(row, "duration"))
    thumbnail = cleaner.text(resolver.value(row, "thumbnail"), "thumbnailUrl")
    liked_at = coerce_timestamp(resolver.value(row, "liked_at")) or None
    play_time = coerce_int(resolver.value(row, "total_play_time_ms"), 0) or 0

    if not song_id:
        return DroppedWithWarning("Skipped song with empty ID")
    return Kept(
        Song(
            song_id=song_id,
            title=title,
            artists_text=artists,
            duration_seconds=duration,
            thumbnail_url=thumbnail,
            liked_at=liked_at,
            total_play_time_ms=play_time,
        )
    )


def extract_songs(image: SqliteImage, table_name: str, result: ConversionResult) -> List[Song]:
    return _run_extractor(image, table_name, result, "songs", "songs", "song", _song_row)


def _playlist_row(row, resolver: ColumnResolver, cleaner: Cleaner, records) -> RowOutcome:
    # Missing, zero or non-numeric ids fall back to a sequential id.
    playlist_id = coerce_int(resolver.value(row, "id")) or len(records) + 1
    name = cleaner.text(resolver.value(row, "name"), "playlistName") or DEFAULT_PLAYLIST_NAME
    browse_id = cleaner.text(resolver.value(row, "browse_id"), "browseId")
    return Kept(Playlist(id=playlist_id, name=name, browse_id=browse_id, songs=[], selected=True))


def extract_playlists(image: SqliteImage, table_name: str, result: ConversionResult) -> List[Playlist]:
    return _run_extractor(image, table_name, result, "playlists", "playlists", "playlist", _playlist_row)


# ---------------------------------------------------------------------------
# Albums and artists
# ---------------------------------------------------------------------------


def _album_row(row, resolver: ColumnResolver, cleaner: Cleaner, records) -> RowOutcome:
    album_id = cleaner.text(resolver.value(row, "id"), "albumId")
    if not album_id:
        return DroppedWithWarning("Skipped album with empty ID")
    return Kept(
        Album(
            id=album_id,
            title=cleaner.text(resolver.value(row, "title"), "albumTitle"),
            thumbnail_url=cleaner.text(resolver.value(row, "thumbnail"), "thumbnailUrl"),
            year=cleaner.text(resolver.value(row, "year"), "year"),
            authors_text=cleaner.text(resolver.value(row, "authors"), "authorsText"),
            share_url=cleaner.text(resolver.value(row, "share_url"), "shareUrl"),
            timestamp=coerce_timestamp(resolver.value(row, "timestamp")),
            bookmarked_at=coerce_timestamp(resolver.value(row, "bookmarked_at")),
        )
    )


def extract_albums(image: SqliteImage, table_name: str, result: ConversionResult) -> List[Album]:
    return _run_extractor(image, table_name, result, "albums", "albums", "album", _album_row)


def _artist_row(row, resolver: ColumnResolver, cleaner: Cleaner, records) -> RowOutcome:
    artist_id = cleaner.text(resolver.value(row, "id"), "artistId")
    if not artist_id:
        return DroppedWithWarning("Skipped artist with empty ID")
    return Kept(
        Artist(
            id=artist_id,
            name=cleaner.text(resolver.value(row, "name"), "artistName"),
            thumbnail_url=cleaner.text(resolver.value(row, "thumbnail"), "thumbnailUrl"),
            timestamp=coerce_timestamp(resolver.value(row, "timestamp")),
            bookmarked_at=coerce_timestamp(resolver.value(row, "bookmarked_at")),
        )
    )


def extract_artists(image: SqliteImage, table_name: str, result: ConversionResult) -> List[Artist]:
    return _run_extractor(image, table_name, result, "artists", "artists", "artist", _artist_row)


# ---------------------------------------------------------------------------
# Association tables
# ---------------------------------------------------------------------------


def _position(row, resolver: ColumnResolver) -> Optional[int]:
    if not resolver.has("position"):
        return None
    return coerce_int(resolver.value(row, "position"))


def _song_album_row(row, resolver: ColumnResolver, cleaner: Cleaner, records) -> RowOutcome:
    song_id = cleaner.text(resolver.value(row, "song_id"), "mappingSongId")
    album_id = cleaner.text(resolver.value(row, "album_id"), "albumId")
    if not song_id or not album_id:
        return DroppedWithWarning("Skipped song-album mapping with missing IDs")
    return Kept(SongAlbumMap(song_id=song_id, album_id=album_id, position=_position(row, resolver)))


def extract_song_album_maps(
    image: SqliteImage, table_name: str, result: ConversionResult
) -> List[SongAlbumMap]:
    return _run_extractor(
        image, table_name, result, "song_album_map", "song-album map", "song-album map", _song_album_row
    )


def _song_artist_row(row, resolver: ColumnResolver, cleaner: Cleaner, records) -> RowOutcome:
    song_id = cleaner.text(resolver.value(row, "song_id"), "mappingSongId")
    artist_id = cleaner.text(resolver.value(row, "artist_id"), "artistId")
    if not song_id or not artist_id:
        return DroppedWithWarning("Skipped song-artist mapping with missing IDs")
    return Kept(SongArtistMap(song_id=song_id, artist_id=artist_id, position=_position(row, resolver)))


def extract_song_artist_maps(
    image: SqliteImage, table_name: str, result: ConversionResult
) -> List[SongArtistMap]:
    return _run_extractor(
        image, table_name, result, "song_artist_map", "song-artist map", "song-artist map", _song_artist_row
    )


# ---------------------------------------------------------------------------
# Per-song data
# ---------------------------------------------------------------------------


def _event_row(row, resolver: ColumnResolver, cleaner: Cleaner, records) -> RowOutcome:
    song_id = cleaner.text(resolver.value(row, "song_id"), "songId")
    if not song_id:
        return DroppedWithWarning("Skipped event with empty song ID")
    return Kept(
        Event(
            song_id=song_id,
            timestamp=coerce_timestamp(resolver.value(row, "timestamp")) or 0,
            play_time=coerce_int(resolver.value(row, "play_time"), 0) or 0,
        )
    )


def extract_events(image: SqliteImage, table_name: str, result: ConversionResult) -> List[Event]:
    return _run_extractor(image, table_name, result, "events", "events", "event", _event_row)


def _format_row(row, resolver: ColumnResolver, cleaner: Cleaner, records) -> RowOutcome:
    song_id = cleaner.text(resolver.value(row, "song_id"), "songId")
    if not song_id:
        return DroppedWithWarning("Skipped format with empty song ID")
    return Kept(
        Format(
            song_id=song_id,
            itag=coerce_int(resolver.value(row, "itag")),
            mime_type=cleaner.text(resolver.value(row, "mime_type"), "mimeType"),
            bitrate=coerce_int(resolver.value(row, "bitrate")),
            content_length=coerce_int(resolver.value(row, "content_length")),
            last_modified=coerce_timestamp(resolver.value(row, "last_modified")),
            loudness_db=coerce_float(resolver.value(row, "loudness_db")),
        )
    )


def extract_formats(image: SqliteImage, table_name: str, result: ConversionResult) -> List[Format]:
    return _run_extractor(image, table_name, result, "formats", "formats", "format", _format_row)


def _lyrics_row(row, resolver: ColumnResolver, cleaner: Cleaner, records) -> RowOutcome:
    song_id = cleaner.text(resolver.value(row, "song_id"), "songId")
    if not song_id:
        return DroppedWithWarning("Skipped lyrics with empty song ID")
    # Lyric bodies keep their line breaks, so they are not sanitised.
    return Kept(
        Lyrics(
            song_id=song_id,
            fixed=_optional_text(resolver.value(row, "fixed")),
            synced=_optional_text(resolver.value(row, "synced")),
        )
    )


def extract_lyrics(image: SqliteImage, table_name: str, result: ConversionResult) -> List[Lyrics]:
    return _run_extractor(image, table_name, result, "lyrics", "lyrics", "lyrics", _lyrics_row)


def _search_query_row(row, resolver: ColumnResolver, cleaner: Cleaner, records) -> RowOutcome:
    query = cleaner.text(resolver.value(row, "query"), "query")
    if not query:
        return DroppedWithWarning("Skipped empty search query")
    return Kept(SearchQuery(query=query))


def extract_search_queries(
    image: SqliteImage, table_name: str, result: ConversionResult
) -> List[SearchQuery]:
    return _run_extractor(
        image, table_name, result, "search_queries", "search queries", "search query", _search_query_row
    )


__all__ = [
    "DroppedSilently",
    "DroppedWithWarning",
    "Kept",
    "RowOutcome",
    "extract_albums",
    "extract_artists",
    "extract_events",
    "extract_formats",
    "extract_lyrics",
    "extract_playlists",
    "extract_search_queries",
    "extract_song_album_maps",
    "extract_song_artist_maps",
    "extract_songs",
]
