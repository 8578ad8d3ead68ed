import sqlite3

import pytest

import database
from services import cubic_export
from services.converter import parse_sqlite
from services.cubic_export import ExportError, generate_cubic_database
from services.music_library import (
    Album,
    ConversionResult,
    Event,
    Playlist,
    SearchQuery,
    Song,
    SongAlbumMap,
)


def _open(tmp_path, payload, name="cubic.db"):
    path = tmp_path / name
    path.write_bytes(payload)
    return sqlite3.connect(str(path))


def _library():
    one = Song("s1", title="One", artists_text="A", duration_seconds=245, liked_at=1700000000000)
    two = Song("s2", title="", artists_text="B", duration_seconds=59)
    duplicate = Song("s1", title="Impostor", duration_seconds=1)
    return ConversionResult(
        songs=[one, two, duplicate],
        playlists=[
            Playlist(7, "Mix", "VL1", songs=[two, one]),
            Playlist(9, "Other", "", songs=[one], selected=False),
        ],
        albums=[Album("a1", title="Greatest", year="2020")],
        song_album_maps=[SongAlbumMap("s1", "a1", 1)],
        events=[Event("s1", 1, 10), Event("s1", 2, 20)],
        search_queries=[SearchQuery("lofi"), SearchQuery("lofi"), SearchQuery("jazz")],
    )


def test_database_has_full_target_schema(tmp_path, engine):
    conn = _open(tmp_path, generate_cubic_database(ConversionResult(), engine=engine))
    try:
        objects = {
            (row[0], row[1]): row[2]
            for row in conn.execute("SELECT type, name, sql FROM sqlite_master")
        }
        for table in database.TARGET_TABLES:
            assert objects[("table", table.name)] == database.create_table_sql(table)
        for index in database.TARGET_INDEXES:
            assert ("index", index.name) in objects
        assert ("view", "SortedSongPlaylistMap") in objects
        assert ("table", "room_master_table") in objects
        assert ("table", "android_metadata") in objects

        cascade = conn.execute("PRAGMA foreign_key_list(SongPlaylistMap)").fetchall()
        assert {row[2] for row in cascade} == {"Song", "Playlist"}
        assert {row[6] for row in cascade} == {"CASCADE"}

        unique = conn.execute("PRAGMA index_list(SearchQuery)").fetchall()
        assert [(row[1], row[2]) for row in unique if row[1] == "index_SearchQuery_query"] == [
            ("index_SearchQuery_query", 1)
        ]
    finally:
        conn.close()


def test_database_is_stamped_for_cubic_music(tmp_path, engine):
    conn = _open(tmp_path, generate_cubic_database(ConversionResult(), engine=engine))
    try:
        assert conn.execute("PRAGMA user_version").fetchone()[0] == 23
        assert conn.execute("SELECT id, identity_hash FROM room_master_table").fetchall() == [
            (42, "205c24811149a247279bcbfdc2d6c396")
        ]
        assert conn.execute("SELECT locale FROM android_metadata").fetchall() == [("en_US",)]
    finally:
        conn.close()


def test_songs_are_deduplicated_first_occurrence_wins(tmp_path, engine):
    conn = _open(tmp_path, generate_cubic_database(_library(), engine=engine))
    try:
        rows = conn.execute(
            "SELECT id, title, artistsText, durationText, thumbnailUrl, likedAt, totalPlayTimeMs FROM Song ORDER BY id"
        ).fetchall()
    finally:
        conn.close()
    assert rows == [
        ("s1", "One", "A", "4:05", "", 1700000000000, 0),
        ("s2", "Unknown Title", "B", "0:59", "", None, 0),
    ]


def test_only_selected_playlists_are_written_in_order(tmp_path, engine):
    conn = _open(tmp_path, generate_cubic_database(_library(), engine=engine))
    try:
        playlists = conn.execute("SELECT id, name, browseId FROM Playlist").fetchall()
        mapping = conn.execute("SELECT songId, playlistId, position FROM SortedSongPlaylistMap").fetchall()
    finally:
        conn.close()
    assert playlists == [(1, "Mix", "VL1")]
    assert mapping == [("s2", 1, 0), ("s1", 1, 1)]


def test_explicit_selection_overrides_flags(tmp_path, engine):
    conn = _open(tmp_path, generate_cubic_database(_library(), [9], engine=engine))
    try:
        playlists = conn.execute("SELECT id, name, browseId FROM Playlist").fetchall()
    finally:
        conn.close()
    assert playlists == [(1, "Other", "")]


def test_library_rows_are_exported_regardless_of_selection(tmp_path, engine):
    conn = _open(tmp_path, generate_cubic_database(_library(), [], engine=engine))
    try:
        assert conn.execute("SELECT COUNT(*) FROM Playlist").fetchone()[0] == 0
        assert conn.execute("SELECT id, title, year FROM Album").fetchall() == [("a1", "Greatest", "2020")]
        assert conn.execute("SELECT songId, albumId, position FROM SongAlbumMap").fetchall() == [("s1", "a1", 1)]
        assert conn.execute("SELECT songId, timestamp, playTime FROM Event ORDER BY id").fetchall() == [
            ("s1", 1, 10),
            ("s1", 2, 20),
        ]
        assert conn.execute("SELECT query FROM SearchQuery ORDER BY id").fetchall() == [("lofi",), ("jazz",)]
    finally:
        conn.close()


def test_round_trip_from_kreate_backup(kreate_backup, tmp_path, engine):
    result = parse_sqlite(kreate_backup, engine=engine)
    conn = _open(tmp_path, generate_cubic_database(result, engine=engine))
    try:
        assert conn.execute("SELECT COUNT(*) FROM Song").fetchone()[0] == 3
        assert conn.execute(
            "SELECT songId FROM SortedSongPlaylistMap WHERE playlistId = 1"
        ).fetchall() == [("s2",), ("s3",), ("s1",)]
        assert conn.execute("SELECT COUNT(*) FROM SongArtistMap").fetchone()[0] == 2
        assert conn.execute("SELECT fixed FROM Lyrics").fetchone()[0] == "line one\nline two"
        assert conn.execute("SELECT loudnessDb FROM Format").fetchone()[0] == -7.5
        assert conn.execute("PRAGMA foreign_key_check").fetchall() == []
    finally:
        conn.close()


def test_generation_failure_raises_export_error(tmp_path, engine, monkeypatch):
    def broken_schema(conn):
        raise sqlite3.OperationalError("disk on fire")

    monkeypatch.setattr(cubic_export, "apply_target_schema", broken_schema)

    with pytest.raises(ExportError) as excinfo:
        generate_cubic_database(_library(), engine=engine)

    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
    assert list((tmp_path / "spool").iterdir()) == []


def test_integer_overflow_is_reported_as_export_error(tmp_path, engine):
    result = ConversionResult(songs=[Song("s1", title="One", liked_at=10 ** 20)])

    with pytest.raises(ExportError) as excinfo:
        generate_cubic_database(result, engine=engine)

    assert isinstance(excinfo.value.__cause__, OverflowError)
    assert list((tmp_path / "spool").iterdir()) == []
