"""Convert Kreate backups into databases Cubic Music can restore.

Kreate stamps its backups with a schema version Cubic Music cannot open and
its exporter is known to emit renamed tables, loosely typed values and broken
escaping.  This module detects the upload type, infers where the songs,
playlists and related records live, repairs their values and writes a fresh
Cubic Music database (or a CSV rendering of the songs and playlists).

Usage::

    python -m services.converter backup.db --output-dir out/ --report
"""

from __future__ import annotations

import argparse
import json
import logging
import sqlite3
from pathlib import Path
from typing import Iterable, Optional, Union

from database import describe_target_schema

from .csv_bridge import parse_csv, render_csv
from .cubic_export import ExportError, generate_cubic_database
from .extractors import (
    extract_albums,
    extract_artists,
    extract_events,
    extract_formats,
    extract_lyrics,
    extract_playlists,
    extract_search_queries,
    extract_song_album_maps,
    extract_song_artist_maps,
    extract_songs,
)
from .linker import link_album_maps, link_artist_maps, link_playlists, link_song_references
from .music_library import ConversionResult
from .schema_inference import locate_entity_tables
from .sqlite_engine import SQLITE_SIGNATURE, SqliteEngine, SqliteImage, StoreError, get_sqlite_engine

LOGGER = logging.getLogger(__name__)

FILE_TYPE_SQLITE = "sqlite"
FILE_TYPE_CSV = "csv"
FILE_TYPE_UNKNOWN = "unknown"

OUTPUT_FORMATS = ("sqlite", "csv")
OUTPUT_EXTENSIONS = {"sqlite": "db", "csv": "csv"}
DOWNLOAD_PREFIX = "cubic_music"

CSV_SNIFF_BYTES = 1000


class ConversionError(RuntimeError):
    """Raised when an input cannot be converted at all."""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def detect_file_type(data: Union[bytes, str]) -> str:
    """Return ``"sqlite"``, ``"csv"`` or ``"unknown"`` for an upload."""

    if isinstance(data, str):
        text = data[:CSV_SNIFF_BYTES]
    else:
        data = bytes(data)
        if data[:6] == SQLITE_SIGNATURE[:6]:
            return FILE_TYPE_SQLITE
        text = data[:CSV_SNIFF_BYTES].decode("utf-8", errors="replace")

    if "," in text and ("\n" in text or "\r" in text):
        return FILE_TYPE_CSV
    return FILE_TYPE_UNKNOWN


def parse_source(data: Union[bytes, str], engine: Optional[SqliteEngine] = None) -> ConversionResult:
    """Parse an uploaded backup, rejecting inputs that are neither SQLite nor CSV."""

    file_type = detect_file_type(data)
    if file_type == FILE_TYPE_SQLITE:
        return parse_sqlite(data, engine=engine)
    if file_type == FILE_TYPE_CSV:
        return parse_csv(data)
    raise ConversionError("Unsupported file type. Please upload a Kreate SQLite backup or CSV export.")


def parse_sqlite(data: bytes, engine: Optional[SqliteEngine] = None) -> ConversionResult:
    """Read a Kreate SQLite backup.

    Problems are reported on the returned result rather than raised.  When
    the database as a whole cannot be read a single ``Database parsing error``
    is recorded and whatever was extracted until then is still returned.
    """

    engine = engine or get_sqlite_engine()
    result = ConversionResult(target_schema=describe_target_schema())
    image: Optional[SqliteImage] = None
    try:
        image = engine.open_image(data)
        _populate_from_image(image, result)
    except (sqlite3.Error, StoreError) as exc:
        LOGGER.warning("Database parsing failed: %s", exc)
        result.errors.append(f"Database parsing error: {exc}")
    finally:
        if image is not None:
            image.close()
    return result


def generate_target(
    result: ConversionResult,
    selected_playlist_ids: Optional[Iterable[int]] = None,
    output_format: str = "sqlite",
    engine: Optional[SqliteEngine] = None,
) -> Union[bytes, str]:
    if output_format == "sqlite":
        return generate_cubic_database(result, selected_playlist_ids, engine=engine)
    if output_format == "csv":
        return render_csv(result, selected_playlist_ids)
    raise ConversionError(f"Unsupported output format '{output_format}'")


def build_download_name(original_name: str, output_format: str = "sqlite") -> str:
    """Return ``cubic_music_<basename>.<ext>`` for an uploaded file name."""

    stem = Path(original_name or "").stem or "backup"
    extension = OUTPUT_EXTENSIONS.get(output_format)
    if extension is None:
        raise ConversionError(f"Unsupported output format '{output_format}'")
    return f"{DOWNLOAD_PREFIX}_{stem}.{extension}"


def convert_file(
    source: Path,
    destination_dir: Optional[Path] = None,
    output_format: str = "sqlite",
    selected_playlist_ids: Optional[Iterable[int]] = None,
    write_report: bool = False,
    engine: Optional[SqliteEngine] = None,
) -> Path:
    """Convert the backup at *source* and write the result next to it.

    Parameters
    ----------
    source:
        Kreate SQLite backup or CSV export.

    destination_dir:
        Directory for the converted file.  Defaults to the source directory.

    write_report:
        Also write the conversion report as ``<output>.report.json``.
    """

    source = Path(source).expanduser().resolve()
    if not source.exists():
        raise FileNotFoundError(f"Backup source '{source}' does not exist")

    result = parse_source(source.read_bytes(), engine=engine)

    if destination_dir is None:
        destination_dir = source.parent
    destination_dir = Path(destination_dir).expanduser().resolve()
    destination_dir.mkdir(parents=True, exist_ok=True)

    output_path = destination_dir / build_download_name(source.name, output_format)
    payload = generate_target(result, selected_playlist_ids, output_format, engine=engine)
    if isinstance(payload, str):
        output_path.write_text(payload, encoding="utf-8")
    else:
        output_path.write_bytes(payload)

    if write_report:
        report_path = output_path.with_name(output_path.name + ".report.json")
        report_path.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")

    for message in result.errors:
        LOGGER.error(message)
    LOGGER.info("Wrote converted backup to %s", output_path)
    return output_path


def main(argv: Optional[Iterable[str]] = None) -> int:
    """Command line entry point used by ``python -m services.converter``."""

    parser = argparse.ArgumentParser(description="Convert a Kreate backup into a Cubic Music backup")
    parser.add_argument("source", type=Path, help="Path to the Kreate backup (SQLite or CSV)")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory where the converted file should be written",
    )
    parser.add_argument("--format", choices=OUTPUT_FORMATS, default="sqlite", help="Output format")
    parser.add_argument(
        "--playlist",
        type=int,
        action="append",
        dest="playlists",
        default=None,
        help="Playlist id to export (repeatable; defaults to every playlist)",
    )
    parser.add_argument("--report", action="store_true", help="Write the JSON conversion report")
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        output = convert_file(
            args.source,
            destination_dir=args.output_dir,
            output_format=args.format,
            selected_playlist_ids=args.playlists,
            write_report=args.report,
        )
    except ConversionError as exc:
        LOGGER.error("%s", exc)
        return 2
    except ExportError as exc:
        LOGGER.error("%s", exc)
        return 1
    print(output)
    return 0


# ---------------------------------------------------------------------------
# SQLite helpers
# ---------------------------------------------------------------------------


def _populate_from_image(image: SqliteImage, result: ConversionResult) -> None:
    table_names = image.list_tables()

    for table_name in table_names:
        try:
            info = image.describe_table(table_name)
        except sqlite3.Error as exc:
            LOGGER.debug("Could not describe %s: %s", table_name, exc)
            result.warnings.append(f"Could not read table info for {table_name}")
            continue
        result.table_info.append(info)
        result.source_schema.append(info)

    located = locate_entity_tables(table_names)

    if located["songs"]:
        result.songs = extract_songs(image, located["songs"], result)
    if located["playlists"]:
        result.playlists = extract_playlists(image, located["playlists"], result)
    if located["song_playlist_map"] and result.playlists and result.songs:
        link_playlists(image, located["song_playlist_map"], result)

    if located["albums"]:
        result.albums = extract_albums(image, located["albums"], result)
    if located["artists"]:
        result.artists = extract_artists(image, located["artists"], result)
    if located["song_album_map"]:
        result.song_album_maps = extract_song_album_maps(image, located["song_album_map"], result)
    if located["song_artist_map"]:
        result.song_artist_maps = extract_song_artist_maps(image, located["song_artist_map"], result)
    if located["events"]:
        result.events = extract_events(image, located["events"], result)
    if located["formats"]:
        result.formats = extract_formats(image, located["formats"], result)
    if located["lyrics"]:
        result.lyrics = extract_lyrics(image, located["lyrics"], result)
    if located["search_queries"]:
        result.search_queries = extract_search_queries(image, located["search_queries"], result)

    link_album_maps(result)
    link_artist_maps(result)
    link_song_references(result)

    for playlist in result.playlists:
        playlist.selected = True


if __name__ == "__main__":  # pragma: no cover - manual invocation helper
    raise SystemExit(main())
