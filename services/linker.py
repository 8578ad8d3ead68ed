"""Rebuild the relationships between extracted records.

Foreign keys are resolved by value: Kreate backups are not guaranteed to
declare them, and rows referencing songs rejected during extraction are
expected.  Such rows are dropped without a warning.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, TypeVar

from .extractors import DroppedSilently, Kept, RowOutcome
from .music_library import ConversionResult, Song
from .sanitizer import Cleaner, coerce_int
from .schema_inference import find_column
from .sqlite_engine import SqliteImage

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------


def link_playlists(image: SqliteImage, mapping_table: str, result: ConversionResult) -> None:
    """Fill ``playlist.songs`` from the song/playlist mapping table.

    Songs are ordered by the mapping's position column (stable, so ties keep
    row order).  Playlists without any mapping keep an empty list.
    """

    try:
        columns = [column.name for column in image.table_columns(mapping_table)]
        rows = image.read_table(mapping_table)

        playlist_column = find_column(columns, exact=("playlistid", "playlist_id"), contains=("playlist",))
        song_column = find_column(columns, exact=("songid", "song_id"), contains=("song", "video"))
        position_column = find_column(columns, exact=("position", "pos", "order", "index"))

        if playlist_column is None or song_column is None:
            result.warnings.append("Could not find playlist-song mapping columns")
            return

        songs_by_id = result.songs_by_id
        cleaner = Cleaner(result.cleaning_report)
        groups: Dict[Optional[int], List[Tuple[Song, int]]] = {}
        dropped = 0

        for row in rows:
            playlist_id = coerce_int(row.get(playlist_column))
            song_id = cleaner.text(row.get(song_column), "mappingSongId")
            position = 0
            if position_column is not None:
                position = coerce_int(row.get(position_column), 0) or 0

            song = songs_by_id.get(song_id)
            if song is None:
                dropped += 1
                continue
            groups.setdefault(playlist_id, []).append((replace(song), position))

        for playlist in result.playlists:
            entries = groups.get(playlist.id)
            if entries:
                entries.sort(key=lambda entry: entry[1])
                playlist.songs = [song for song, _ in entries]

        if dropped:
            LOGGER.debug("Ignored %d mapping rows referencing unknown songs", dropped)
        LOGGER.info(
            "Linked %d songs across %d playlists",
            sum(len(playlist.songs) for playlist in result.playlists),
            len(result.playlists),
        )
    except sqlite3.Error as exc:
        LOGGER.warning("Failed to link playlists from %s: %s", mapping_table, exc)
        result.errors.append(f"Error linking songs to playlists: {exc}")


# ---------------------------------------------------------------------------
# Album / artist associations
# ---------------------------------------------------------------------------


def _resolve_references(
    records: List[T], classify: Callable[[T], RowOutcome], label: str
) -> List[T]:
    kept: List[T] = []
    for record in records:
        outcome = classify(record)
        if isinstance(outcome, Kept):
            kept.append(outcome.record)
        else:
            LOGGER.debug("Dropped %s: %s", label, getattr(outcome, "reason", ""))
    return kept


def _order_groups(records: List[T], group_key: Callable[[T], Any]) -> List[T]:
    """Stable-sort each group by position when every member has one.

    Sorted groups are written back into the slots their members held, so
    records of other groups keep their place in the collection.
    """

    groups: Dict[Any, List[T]] = {}
    for record in records:
        groups.setdefault(group_key(record), []).append(record)

    sorted_groups = {
        key: iter(sorted(members, key=lambda member: member.position))
        for key, members in groups.items()
        if all(member.position is not None for member in members)
    }
    if not sorted_groups:
        return list(records)

    ordered: List[T] = []
    for record in records:
        key = group_key(record)
        ordered.append(next(sorted_groups[key]) if key in sorted_groups else record)
    return ordered


def _reference_classifier(known_songs: Set[str], known_parents: Set[str], parent_attr: str, parent_label: str):
    def classify(record) -> RowOutcome:
        if record.song_id not in known_songs:
            return DroppedSilently(f"unknown song {record.song_id}")
        if getattr(record, parent_attr) not in known_parents:
            return DroppedSilently(f"unknown {parent_label} {getattr(record, parent_attr)}")
        return Kept(record)

    return classify


def link_album_maps(result: ConversionResult) -> None:
    classify = _reference_classifier(set(result.songs_by_id), result.album_ids, "album_id", "album")
    kept = _resolve_references(result.song_album_maps, classify, "song-album map")
    result.song_album_maps = _order_groups(kept, lambda record: record.album_id)


def link_artist_maps(result: ConversionResult) -> None:
    classify = _reference_classifier(set(result.songs_by_id), result.artist_ids, "artist_id", "artist")
    kept = _resolve_references(result.song_artist_maps, classify, "song-artist map")
    result.song_artist_maps = _order_groups(kept, lambda record: record.artist_id)


# ---------------------------------------------------------------------------
# Per-song records
# ---------------------------------------------------------------------------


def link_song_references(result: ConversionResult) -> None:
    """Drop events, formats and lyrics whose song was not extracted."""

    known_songs = set(result.songs_by_id)

    def classify(record) -> RowOutcome:
        if record.song_id in known_songs:
            return Kept(record)
        return DroppedSilently(f"unknown song {record.song_id}")

    result.events = _resolve_references(result.events, classify, "event")
    result.formats = _resolve_references(result.formats, classify, "format")
    result.lyrics = _resolve_references(result.lyrics, classify, "lyrics")


__all__ = [
    "link_album_maps",
    "link_artist_maps",
    "link_playlists",
    "link_song_references",
]
