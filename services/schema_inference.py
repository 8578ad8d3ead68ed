"""Heuristics that map an unknown backup layout onto the canonical entities.

Kreate has renamed its tables and columns between releases, so nothing here is
declared by the source database.  Tables are located with a two pass search
(curated exact names, then lower-cased substrings) and columns are resolved
through ordered synonym lists.  Both live in plain data tables so new aliases
can be added without touching the extraction code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Table location
# ---------------------------------------------------------------------------


def locate_table(
    table_names: Sequence[str],
    exact_candidates: Iterable[str],
    *required_substrings: str,
    alternatives: Iterable[Sequence[str]] = (),
    exclude: Iterable[str] = (),
) -> Optional[str]:
    """Return the table that most plausibly holds an entity.

    Pass one looks for a case-sensitive match against ``exact_candidates``.
    Only when that fails, pass two returns the first table whose lower-cased
    name contains every one of ``required_substrings`` (or every substring of
    any group in ``alternatives``).  Tables named in ``exclude`` have already
    been claimed by another entity and are skipped.  Both passes honour the
    listing order of ``table_names``.
    """

    excluded = set(exclude)
    available = [name for name in table_names if name not in excluded]
    candidates = set(exact_candidates)

    for name in available:
        if name in candidates:
            return name

    groups: List[Tuple[str, ...]] = []
    if required_substrings:
        groups.append(tuple(part.lower() for part in required_substrings))
    for group in alternatives:
        if group:
            groups.append(tuple(part.lower() for part in group))
    if not groups:
        return None

    for name in available:
        lowered = name.lower()
        if any(all(part in lowered for part in group) for group in groups):
            return name
    return None


@dataclass(frozen=True)
class TableRule:
    exact: Tuple[str, ...]
    required: Tuple[str, ...] = ()
    alternatives: Tuple[Tuple[str, ...], ...] = ()
    # Substrings that disqualify a table from the fuzzy pass.
    avoid: Tuple[str, ...] = ()

    def locate(self, table_names: Sequence[str], claimed: Iterable[str] = ()) -> Optional[str]:
        exclude = set(claimed)
        if self.avoid:
            exclude.update(
                name
                for name in table_names
                if name not in self.exact and any(part in name.lower() for part in self.avoid)
            )
        return locate_table(
            table_names,
            self.exact,
            *self.required,
            alternatives=self.alternatives,
            exclude=exclude,
        )


TABLE_CANDIDATES: Dict[str, TableRule] = {
    "songs": TableRule(
        exact=("Song", "Songs", "song", "songs", "Track", "Tracks", "track", "tracks"),
        alternatives=(("song",), ("track",)),
        avoid=("map", "playlist", "album", "artist"),
    ),
    "playlists": TableRule(
        exact=("Playlist", "Playlists", "playlist", "playlists"),
        required=("playlist",),
    ),
    "song_playlist_map": TableRule(
        exact=(
            "PlaylistSongMap",
            "SongInPlaylist",
            "playlist_song",
            "PlaylistSong",
            "SongPlaylistMap",
            "song_playlist_map",
        ),
        alternatives=(("playlist", "song"), ("song", "map")),
        avoid=("album", "artist"),
    ),
    "albums": TableRule(
        exact=("Album", "Albums", "album", "albums"),
        required=("album",),
        avoid=("map", "song"),
    ),
    "artists": TableRule(
        exact=("Artist", "Artists", "artist", "artists"),
        required=("artist",),
        avoid=("map", "song"),
    ),
    "song_album_map": TableRule(
        exact=("SongAlbumMap", "AlbumSongMap", "song_album_map", "SongInAlbum"),
        required=("song", "album"),
        alternatives=(("album", "map"),),
    ),
    "song_artist_map": TableRule(
        exact=("SongArtistMap", "ArtistSongMap", "song_artist_map", "SongInArtist"),
        required=("song", "artist"),
        alternatives=(("artist", "map"),),
    ),
    "events": TableRule(
        exact=("Event", "Events", "event", "events"),
        required=("event",),
        alternatives=(("history",),),
        avoid=("search",),
    ),
    "formats": TableRule(
        exact=("Format", "Formats", "format", "formats"),
        required=("format",),
    ),
    "lyrics": TableRule(
        exact=("Lyrics", "lyrics", "Lyric", "lyric"),
        required=("lyric",),
    ),
    "search_queries": TableRule(
        exact=("SearchQuery", "SearchQueries", "search_query", "search_queries"),
        required=("search",),
    ),
}

# Claim order: earlier entities take their table before later ones look.
ENTITY_ORDER: Tuple[str, ...] = (
    "songs",
    "playlists",
    "song_playlist_map",
    "albums",
    "artists",
    "song_album_map",
    "song_artist_map",
    "events",
    "formats",
    "lyrics",
    "search_queries",
)


def locate_entity_tables(table_names: Sequence[str]) -> Dict[str, Optional[str]]:
    """Resolve a table for every entity, each table being claimed at most once."""

    claimed: List[str] = []
    located: Dict[str, Optional[str]] = {}
    for entity in ENTITY_ORDER:
        table = TABLE_CANDIDATES[entity].locate(table_names, claimed)
        located[entity] = table
        if table:
            claimed.append(table)
            LOGGER.debug("Using table %s for %s", table, entity)
    return located


# ---------------------------------------------------------------------------
# Column resolution
# ---------------------------------------------------------------------------

_SONG_REFERENCE = ("songid", "song_id", "videoid", "video_id")
_THUMBNAIL = ("thumbnailurl", "thumbnail_url", "thumbnail", "image", "artwork")
_BOOKMARKED = ("bookmarkedat", "bookmarked_at", "bookmarked")
_TIMESTAMP = ("timestamp", "createdat", "created_at")
_POSITION = ("position", "pos", "order", "index")

COLUMN_SYNONYMS: Dict[str, Tuple[Tuple[str, Tuple[str, ...]], ...]] = {
    "songs": (
        ("id", ("id", "songid", "song_id", "videoid", "video_id")),
        ("title", ("title", "name", "songtitle")),
        ("artists", ("artist", "artists", "artiststext", "artists_text", "artistname")),
        ("duration", ("duration", "durationtext", "duration_text", "length")),
        ("thumbnail", _THUMBNAIL),
        ("liked_at", ("likedat", "liked_at", "liked")),
        ("total_play_time_ms", ("totalplaytimems", "playtime", "play_time")),
    ),
    "playlists": (
        ("id", ("id", "playlistid", "playlist_id")),
        ("name", ("name", "title", "playlistname")),
        ("browse_id", ("browseid", "browse_id")),
    ),
    "albums": (
        ("id", ("id", "albumid", "album_id", "browseid", "browse_id")),
        ("title", ("title", "name", "albumtitle")),
        ("thumbnail", _THUMBNAIL),
        ("year", ("year", "releaseyear", "release_year")),
        ("authors", ("authorstext", "authors_text", "authors", "artiststext", "artists")),
        ("share_url", ("shareurl", "share_url", "url")),
        ("timestamp", _TIMESTAMP),
        ("bookmarked_at", _BOOKMARKED),
    ),
    "artists": (
        ("id", ("id", "artistid", "artist_id", "browseid", "browse_id")),
        ("name", ("name", "artistname", "title")),
        ("thumbnail", _THUMBNAIL),
        ("timestamp", _TIMESTAMP),
        ("bookmarked_at", _BOOKMARKED),
    ),
    "song_album_map": (
        ("song_id", _SONG_REFERENCE),
        ("album_id", ("albumid", "album_id")),
        ("position", _POSITION),
    ),
    "song_artist_map": (
        ("song_id", _SONG_REFERENCE),
        ("artist_id", ("artistid", "artist_id")),
        ("position", _POSITION),
    ),
    "events": (
        ("song_id", _SONG_REFERENCE),
        ("timestamp", ("timestamp", "playedat", "played_at", "time")),
        ("play_time", ("playtime", "play_time", "playtimems", "play_time_ms")),
    ),
    "formats": (
        ("song_id", _SONG_REFERENCE + ("id",)),
        ("itag", ("itag",)),
        ("mime_type", ("mimetype", "mime_type", "mime")),
        ("bitrate", ("bitrate",)),
        ("content_length", ("contentlength", "content_length", "size")),
        ("last_modified", ("lastmodified", "last_modified")),
        ("loudness_db", ("loudnessdb", "loudness_db", "loudness")),
    ),
    "lyrics": (
        ("song_id", _SONG_REFERENCE + ("id",)),
        ("fixed", ("fixed", "lyrics", "plain", "text")),
        ("synced", ("synced", "syncedlyrics", "synced_lyrics", "lrc")),
    ),
    "search_queries": (
        ("query", ("query", "text", "term", "search")),
    ),
}


class ColumnResolver:
    """Resolve canonical fields against the columns of one source table."""

    def __init__(self, columns: Iterable[str], synonyms: Sequence[Tuple[str, Sequence[str]]]):
        self.lookup: Dict[str, str] = {}
        for column in columns:
            self.lookup[str(column).strip().lower()] = column
        self.fields: Dict[str, Optional[str]] = {}
        for canonical, names in synonyms:
            self.fields[canonical] = self._resolve(names)

    @classmethod
    def for_entity(cls, entity: str, columns: Iterable[str]) -> "ColumnResolver":
        return cls(columns, COLUMN_SYNONYMS[entity])

    def _resolve(self, names: Sequence[str]) -> Optional[str]:
        for name in names:
            if name in self.lookup:
                return self.lookup[name]
        return None

    def column(self, canonical: str) -> Optional[str]:
        return self.fields.get(canonical)

    def has(self, canonical: str) -> bool:
        return self.fields.get(canonical) is not None

    def value(self, row: Mapping[str, Any], canonical: str) -> Any:
        column = self.fields.get(canonical)
        if column is None:
            return None
        return row.get(column)


def find_column(
    columns: Iterable[str],
    exact: Iterable[str] = (),
    contains: Iterable[str] = (),
) -> Optional[str]:
    """Return the first column whose lower-cased name equals one of ``exact``
    or contains one of ``contains``."""

    exact_names = {name.lower() for name in exact}
    fragments = [fragment.lower() for fragment in contains]
    for column in columns:
        lowered = str(column).strip().lower()
        if lowered in exact_names or any(fragment in lowered for fragment in fragments):
            return column
    return None


__all__ = [
    "COLUMN_SYNONYMS",
    "ColumnResolver",
    "ENTITY_ORDER",
    "TABLE_CANDIDATES",
    "TableRule",
    "find_column",
    "locate_entity_tables",
    "locate_table",
]
