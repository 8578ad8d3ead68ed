"""Canonical music-library records shared by the importers and exporters.

Every ingestion path (SQLite or CSV) normalises its input into a
:class:`ConversionResult`.  The result is a plain bundle of lists: songs,
playlists, albums, artists, association records and the diagnostics gathered
while reading the source.  Exporters only ever read from it, and the web layer
serialises it with :meth:`ConversionResult.to_dict` using the camelCase keys
the browser front-end expects.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class Song:
    song_id: str
    title: str = ""
    artists_text: str = ""
    duration_seconds: int = 0
    thumbnail_url: str = ""
    liked_at: Optional[int] = None
    total_play_time_ms: int = 0

    @property
    def duration_text(self) -> str:
        minutes, seconds = divmod(max(self.duration_seconds, 0), 60)
        return f"{minutes}:{seconds:02d}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "songId": self.song_id,
            "title": self.title,
            "artistsText": self.artists_text,
            "durationSeconds": self.duration_seconds,
            "thumbnailUrl": self.thumbnail_url,
            "likedAt": self.liked_at,
            "totalPlayTimeMs": self.total_play_time_ms,
        }


@dataclass
class Playlist:
    id: int
    name: str
    browse_id: str = ""
    songs: List[Song] = field(default_factory=list)
    selected: bool = True

    def with_selected(self, selected: bool) -> "Playlist":
        """Return a copy of the playlist with the export flag toggled."""

        return replace(self, songs=list(self.songs), selected=bool(selected))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "browseId": self.browse_id,
            "songs": [song.to_dict() for song in self.songs],
            "selected": self.selected,
        }


@dataclass
class Album:
    id: str
    title: str = ""
    thumbnail_url: str = ""
    year: str = ""
    authors_text: str = ""
    share_url: str = ""
    timestamp: Optional[int] = None
    bookmarked_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "thumbnailUrl": self.thumbnail_url,
            "year": self.year,
            "authorsText": self.authors_text,
            "shareUrl": self.share_url,
            "timestamp": self.timestamp,
            "bookmarkedAt": self.bookmarked_at,
        }


@dataclass
class Artist:
    id: str
    name: str = ""
    thumbnail_url: str = ""
    timestamp: Optional[int] = None
    bookmarked_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "thumbnailUrl": self.thumbnail_url,
            "timestamp": self.timestamp,
            "bookmarkedAt": self.bookmarked_at,
        }


@dataclass
class SongAlbumMap:
    song_id: str
    album_id: str
    position: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"songId": self.song_id, "albumId": self.album_id, "position": self.position}


@dataclass
class SongArtistMap:
    song_id: str
    artist_id: str
    position: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"songId": self.song_id, "artistId": self.artist_id, "position": self.position}


@dataclass
class Event:
    song_id: str
    timestamp: int = 0
    play_time: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"songId": self.song_id, "timestamp": self.timestamp, "playTime": self.play_time}


@dataclass
class Format:
    song_id: str
    itag: Optional[int] = None
    mime_type: str = ""
    bitrate: Optional[int] = None
    content_length: Optional[int] = None
    last_modified: Optional[int] = None
    loudness_db: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "songId": self.song_id,
            "itag": self.itag,
            "mimeType": self.mime_type,
            "bitrate": self.bitrate,
            "contentLength": self.content_length,
            "lastModified": self.last_modified,
            "loudnessDb": self.loudness_db,
        }


@dataclass
class Lyrics:
    song_id: str
    fixed: Optional[str] = None
    synced: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"songId": self.song_id, "fixed": self.fixed, "synced": self.synced}


@dataclass
class SearchQuery:
    query: str

    def to_dict(self) -> Dict[str, Any]:
        return {"query": self.query}


@dataclass(frozen=True)
class CleaningReportEntry:
    """Before/after pair recorded whenever a value had to be repaired."""

    field: str
    original: str
    cleaned: str
    issue: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "original": self.original,
            "cleaned": self.cleaned,
            "issue": self.issue,
        }


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str


@dataclass
class TableInfo:
    name: str
    columns: List[ColumnInfo] = field(default_factory=list)
    row_count: int = 0

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "columns": [{"name": column.name, "type": column.type} for column in self.columns],
            "rowCount": self.row_count,
        }


@dataclass
class ConversionResult:
    """Aggregate produced by an import run.

    ``source_schema`` is the introspected layout of the uploaded backup while
    ``target_schema`` always describes the fixed Cubic Music schema; the two are
    kept side by side so callers can present a comparison without re-reading
    the upload.
    """

    songs: List[Song] = field(default_factory=list)
    playlists: List[Playlist] = field(default_factory=list)
    albums: List[Album] = field(default_factory=list)
    artists: List[Artist] = field(default_factory=list)
    song_album_maps: List[SongAlbumMap] = field(default_factory=list)
    song_artist_maps: List[SongArtistMap] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)
    formats: List[Format] = field(default_factory=list)
    lyrics: List[Lyrics] = field(default_factory=list)
    search_queries: List[SearchQuery] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cleaning_report: List[CleaningReportEntry] = field(default_factory=list)
    table_info: List[TableInfo] = field(default_factory=list)
    source_schema: List[TableInfo] = field(default_factory=list)
    target_schema: List[TableInfo] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Derived lookups
    # ------------------------------------------------------------------
    @property
    def songs_by_id(self) -> Dict[str, Song]:
        # Later duplicates overwrite earlier ones, mirroring how the mapping
        # tables were resolved historically.
        return {song.song_id: song for song in self.songs}

    @property
    def album_ids(self) -> set:
        return {album.id for album in self.albums}

    @property
    def artist_ids(self) -> set:
        return {artist.id for artist in self.artists}

    @property
    def playlist_ids(self) -> List[int]:
        return [playlist.id for playlist in self.playlists]

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    def selected_playlists(self, playlist_ids: Optional[Iterable[int]] = None) -> List[Playlist]:
        """Return the playlists that should be exported.

        An explicit id list wins; otherwise every playlist whose ``selected``
        flag is not ``False`` is included.
        """

        if playlist_ids is not None:
            wanted = {int(playlist_id) for playlist_id in playlist_ids}
            return [playlist for playlist in self.playlists if playlist.id in wanted]
        return [playlist for playlist in self.playlists if playlist.selected is not False]

    def with_playlist_selection(self, playlist_ids: Iterable[int]) -> "ConversionResult":
        """Return a copy where only ``playlist_ids`` are flagged as selected."""

        wanted = {int(playlist_id) for playlist_id in playlist_ids}
        playlists = [playlist.with_selected(playlist.id in wanted) for playlist in self.playlists]
        return replace(self, playlists=playlists)

    def summary(self) -> Dict[str, int]:
        return {
            "songs": len(self.songs),
            "playlists": len(self.playlists),
            "playlistSongs": sum(len(playlist.songs) for playlist in self.playlists),
            "albums": len(self.albums),
            "artists": len(self.artists),
            "songAlbumMaps": len(self.song_album_maps),
            "songArtistMaps": len(self.song_artist_maps),
            "events": len(self.events),
            "formats": len(self.formats),
            "lyrics": len(self.lyrics),
            "searchQueries": len(self.search_queries),
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "cleanedValues": len(self.cleaning_report),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "songs": [song.to_dict() for song in self.songs],
            "playlists": [playlist.to_dict() for playlist in self.playlists],
            "albums": [album.to_dict() for album in self.albums],
            "artists": [artist.to_dict() for artist in self.artists],
            "songAlbumMaps": [entry.to_dict() for entry in self.song_album_maps],
            "songArtistMaps": [entry.to_dict() for entry in self.song_artist_maps],
            "events": [event.to_dict() for event in self.events],
            "formats": [entry.to_dict() for entry in self.formats],
            "lyrics": [entry.to_dict() for entry in self.lyrics],
            "searchQueries": [entry.to_dict() for entry in self.search_queries],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "cleaningReport": [entry.to_dict() for entry in self.cleaning_report],
            "tableInfo": [table.to_dict() for table in self.table_info],
            "kreateSchema": [table.to_dict() for table in self.source_schema],
            "cubicMusicSchema": [table.to_dict() for table in self.target_schema],
            "summary": self.summary(),
        }


__all__ = [
    "Album",
    "Artist",
    "CleaningReportEntry",
    "ColumnInfo",
    "ConversionResult",
    "Event",
    "Format",
    "Lyrics",
    "Playlist",
    "SearchQuery",
    "Song",
    "SongAlbumMap",
    "SongArtistMap",
    "TableInfo",
]
