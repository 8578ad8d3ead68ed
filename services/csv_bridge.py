"""CSV import and export of the song/playlist subset of a library."""

from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import replace
from typing import Iterable, List, Optional, Union

from database import describe_target_schema

from .music_library import ColumnInfo, ConversionResult, Playlist, Song, TableInfo
from .sanitizer import Cleaner
from .schema_inference import COLUMN_SYNONYMS, ColumnResolver

LOGGER = logging.getLogger(__name__)

CSV_TABLE_NAME = "CSV Import"
CSV_HEADER = [
    "PlaylistBrowseId",
    "PlaylistName",
    "SongId",
    "Title",
    "Artists",
    "Duration",
    "ThumbnailUrl",
]

CSV_SYNONYMS = COLUMN_SYNONYMS["songs"] + (
    ("playlist_name", ("playlistname", "playlist_name", "playlist")),
    ("playlist_browse_id", ("playlistbrowseid", "playlist_browse_id")),
)

_LINE_BREAK = re.compile(r"\r?\n")


def _split_line(line: str) -> List[str]:
    return next(csv.reader([line]), [])


def parse_csv(content: Union[str, bytes]) -> ConversionResult:
    """Read a CSV export into a :class:`ConversionResult`.

    Songs are grouped into playlists by playlist name, in the order the names
    first appear; songs inside a playlist keep file order.
    """

    if isinstance(content, (bytes, bytearray)):
        content = bytes(content).decode("utf-8-sig", errors="replace")
    elif content.startswith("\ufeff"):
        content = content[1:]

    result = ConversionResult(target_schema=describe_target_schema())
    lines = [line for line in _LINE_BREAK.split(content) if line.strip()]
    if not lines:
        result.errors.append("Empty CSV file")
        return result

    try:
        headers = [header.strip().lower() for header in _split_line(lines[0])]
    except csv.Error as exc:
        result.errors.append(f"CSV parsing error: {exc}")
        return result

    table = TableInfo(
        name=CSV_TABLE_NAME,
        columns=[ColumnInfo(name=header, type="TEXT") for header in headers],
        row_count=len(lines) - 1,
    )
    result.table_info.append(table)
    result.source_schema.append(table)

    resolver = ColumnResolver(headers, CSV_SYNONYMS)
    cleaner = Cleaner(result.cleaning_report)
    playlists = {}

    for number, line in enumerate(lines[1:], start=2):
        try:
            row = dict(zip(headers, _split_line(line)))
            song = Song(
                song_id=cleaner.text(resolver.value(row, "id"), "songId"),
                title=cleaner.text(resolver.value(row, "title"), "title"),
                artists_text=cleaner.text(resolver.value(row, "artists"), "artists"),
                duration_seconds=cleaner.duration(resolver.value(row, "duration")),
                thumbnail_url=cleaner.text(resolver.value(row, "thumbnail"), "thumbnailUrl"),
            )
            if not song.song_id:
                result.warnings.append(f"Row {number}: Missing song ID")
                continue
            result.songs.append(song)

            playlist_name = cleaner.text(resolver.value(row, "playlist_name"), "playlistName")
            if not playlist_name:
                continue
            if playlist_name not in playlists:
                playlists[playlist_name] = Playlist(
                    id=len(playlists) + 1,
                    name=playlist_name,
                    browse_id=cleaner.text(resolver.value(row, "playlist_browse_id"), "browseId"),
                )
            playlists[playlist_name].songs.append(replace(song))
        except (csv.Error, TypeError, ValueError) as exc:
            LOGGER.debug("Could not parse CSV row %d: %s", number, exc)
            result.warnings.append(f"Row {number}: Could not parse row")

    result.playlists = list(playlists.values())
    LOGGER.info("Parsed %d songs and %d playlists from CSV", len(result.songs), len(result.playlists))
    return result


def render_csv(result: ConversionResult, selected_playlist_ids: Optional[Iterable[int]] = None) -> str:
    """Render songs and the selected playlists using :data:`CSV_HEADER`."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    assigned = set()
    for playlist in result.selected_playlists(selected_playlist_ids):
        for song in playlist.songs:
            assigned.add(song.song_id)
            writer.writerow(_song_cells(song, playlist.browse_id, playlist.name))

    for song in result.songs:
        if song.song_id in assigned:
            continue
        assigned.add(song.song_id)
        writer.writerow(_song_cells(song, "", ""))

    return buffer.getvalue()


def _song_cells(song: Song, browse_id: str, playlist_name: str) -> List[str]:
    return [
        browse_id or "",
        playlist_name or "",
        song.song_id,
        song.title,
        song.artists_text,
        str(song.duration_seconds),
        song.thumbnail_url,
    ]


__all__ = ["CSV_HEADER", "CSV_TABLE_NAME", "parse_csv", "render_csv"]
