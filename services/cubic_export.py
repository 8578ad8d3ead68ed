"""Write a :class:`ConversionResult` out as a Cubic Music database."""

from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, List, Optional, Set

from database import apply_target_schema, stamp_user_version

from .music_library import ConversionResult, Playlist, Song
from .sqlite_engine import SqliteEngine, StoreError, get_sqlite_engine

LOGGER = logging.getLogger(__name__)

DEFAULT_SONG_TITLE = "Unknown Title"


class ExportError(RuntimeError):
    """Raised when the target database could not be produced."""


def generate_cubic_database(
    result: ConversionResult,
    selected_playlist_ids: Optional[Iterable[int]] = None,
    engine: Optional[SqliteEngine] = None,
) -> bytes:
    """Return the bytes of a Cubic Music database built from ``result``.

    Only the selected playlists are written; every other collection is
    exported whole.  The file is stamped with the schema version Cubic Music
    migrates from, so the app upgrades it on first open.
    """

    engine = engine or get_sqlite_engine()
    playlists = result.selected_playlists(selected_playlist_ids)

    try:
        builder = engine.new_image()
    except StoreError as exc:
        raise ExportError(str(exc)) from exc

    try:
        conn = builder.connection
        apply_target_schema(conn)
        song_count = _insert_songs(conn, result.songs)
        _insert_playlists(conn, playlists)
        _insert_library(conn, result)
        stamp_user_version(conn)
        payload = builder.export()
    except (sqlite3.Error, OverflowError, TypeError, ValueError) as exc:
        builder.close()
        raise ExportError(f"Could not generate Cubic Music database: {exc}") from exc

    LOGGER.info(
        "Generated Cubic Music database with %d songs and %d playlists (%d bytes)",
        song_count,
        len(playlists),
        len(payload),
    )
    return payload


def _insert_songs(conn: sqlite3.Connection, songs: List[Song]) -> int:
    # First occurrence of a song id wins.
    added: Set[str] = set()
    rows = []
    for song in songs:
        if song.song_id in added:
            continue
        added.add(song.song_id)
        rows.append(
            (
                song.song_id,
                song.title or DEFAULT_SONG_TITLE,
                song.artists_text or "",
                song.duration_text,
                song.thumbnail_url or "",
                song.liked_at or None,
                song.total_play_time_ms or 0,
            )
        )
    conn.executemany(
        "INSERT OR REPLACE INTO Song (id, title, artistsText, durationText, thumbnailUrl, likedAt, totalPlayTimeMs) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        rows,
    )
    return len(rows)


def _insert_playlists(conn: sqlite3.Connection, playlists: List[Playlist]) -> None:
    cursor = conn.cursor()
    for playlist in playlists:
        cursor.execute(
            "INSERT INTO Playlist (name, browseId) VALUES (?, ?)",
            (playlist.name, playlist.browse_id or ""),
        )
        playlist_id = cursor.lastrowid
        cursor.executemany(
            "INSERT OR REPLACE INTO SongPlaylistMap (songId, playlistId, position) VALUES (?, ?, ?)",
            [(song.song_id, playlist_id, index) for index, song in enumerate(playlist.songs)],
        )


def _insert_library(conn: sqlite3.Connection, result: ConversionResult) -> None:
    if result.albums:
        conn.executemany(
            "INSERT OR REPLACE INTO Album (id, title, thumbnailUrl, year, authorsText, shareUrl, timestamp, bookmarkedAt) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    album.id,
                    album.title,
                    album.thumbnail_url,
                    album.year,
                    album.authors_text,
                    album.share_url,
                    album.timestamp,
                    album.bookmarked_at,
                )
                for album in result.albums
            ],
        )
    if result.artists:
        conn.executemany(
            "INSERT OR REPLACE INTO Artist (id, name, thumbnailUrl, timestamp, bookmarkedAt) VALUES (?, ?, ?, ?, ?)",
            [
                (artist.id, artist.name, artist.thumbnail_url, artist.timestamp, artist.bookmarked_at)
                for artist in result.artists
            ],
        )
    if result.song_album_maps:
        conn.executemany(
            "INSERT OR REPLACE INTO SongAlbumMap (songId, albumId, position) VALUES (?, ?, ?)",
            [(entry.song_id, entry.album_id, entry.position) for entry in result.song_album_maps],
        )
    if result.song_artist_maps:
        conn.executemany(
            "INSERT OR REPLACE INTO SongArtistMap (songId, artistId) VALUES (?, ?)",
            [(entry.song_id, entry.artist_id) for entry in result.song_artist_maps],
        )
    if result.events:
        conn.executemany(
            "INSERT INTO Event (songId, timestamp, playTime) VALUES (?, ?, ?)",
            [(event.song_id, event.timestamp or 0, event.play_time or 0) for event in result.events],
        )
    if result.formats:
        conn.executemany(
            "INSERT OR REPLACE INTO Format (songId, itag, mimeType, bitrate, contentLength, lastModified, loudnessDb) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    entry.song_id,
                    entry.itag,
                    entry.mime_type,
                    entry.bitrate,
                    entry.content_length,
                    entry.last_modified,
                    entry.loudness_db,
                )
                for entry in result.formats
            ],
        )
    if result.lyrics:
        conn.executemany(
            "INSERT OR REPLACE INTO Lyrics (songId, fixed, synced) VALUES (?, ?, ?)",
            [(entry.song_id, entry.fixed, entry.synced) for entry in result.lyrics],
        )
    if result.search_queries:
        conn.executemany(
            "INSERT OR IGNORE INTO SearchQuery (query) VALUES (?)",
            [(entry.query,) for entry in result.search_queries],
        )


__all__ = ["DEFAULT_SONG_TITLE", "ExportError", "generate_cubic_database"]
