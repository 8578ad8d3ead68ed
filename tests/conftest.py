import sqlite3

import pytest

from services.sqlite_engine import SqliteEngine


KREATE_SCHEMA = """
CREATE TABLE Song (
    id TEXT,
    title TEXT,
    artistsText TEXT,
    durationText TEXT,
    thumbnailUrl TEXT,
    likedAt INTEGER,
    totalPlayTimeMs INTEGER
);
CREATE TABLE Playlist (id INTEGER, name TEXT, browseId TEXT);
CREATE TABLE SongPlaylistMap (songId TEXT, playlistId INTEGER, position INTEGER);
CREATE TABLE Album (id TEXT, title TEXT, thumbnailUrl TEXT, year TEXT, authorsText TEXT,
                    shareUrl TEXT, timestamp INTEGER, bookmarkedAt INTEGER);
CREATE TABLE Artist (id TEXT, name TEXT, thumbnailUrl TEXT, timestamp INTEGER, bookmarkedAt INTEGER);
CREATE TABLE SongAlbumMap (songId TEXT, albumId TEXT, position INTEGER);
CREATE TABLE SongArtistMap (songId TEXT, artistId TEXT);
CREATE TABLE Event (id INTEGER PRIMARY KEY AUTOINCREMENT, songId TEXT, timestamp INTEGER, playTime INTEGER);
CREATE TABLE Format (songId TEXT, itag INTEGER, mimeType TEXT, bitrate INTEGER, contentLength INTEGER,
                     lastModified INTEGER, loudnessDb REAL);
CREATE TABLE Lyrics (songId TEXT, fixed TEXT, synced TEXT);
CREATE TABLE SearchQuery (id INTEGER PRIMARY KEY AUTOINCREMENT, query TEXT);
"""


def _populate_library(conn):
    conn.executemany(
        "INSERT INTO Song VALUES (?, ?, ?, ?, ?, ?, ?)",
        [
            ("s1", "First", "Artist A", "245", "https://img/1", 1700000000000, 5000),
            ("s2", "  Second  ", "Artist B", "3:45", None, None, None),
            ("s3", 'Third \\"Live\\"', "Artist C", 180000, "", 0, 42),
            ("", "Nameless", "Nobody", "10", None, None, None),
        ],
    )
    conn.executemany(
        "INSERT INTO Playlist VALUES (?, ?, ?)",
        [(1, "Road Trip", "VLroad"), (2, "Empty", None)],
    )
    conn.executemany(
        "INSERT INTO SongPlaylistMap VALUES (?, ?, ?)",
        [("s1", 1, 2), ("s2", 1, 0), ("ghost", 1, 3), ("s3", 1, 1)],
    )
    conn.execute(
        "INSERT INTO Album VALUES ('a1', 'Greatest', '', 2020, 'Artist A', 'https://share/a1', 1700000000000, NULL)"
    )
    conn.execute("INSERT INTO Artist VALUES ('ar1', 'Artist A', '', NULL, NULL)")
    conn.executemany(
        "INSERT INTO SongAlbumMap VALUES (?, ?, ?)",
        [("s1", "a1", 2), ("s2", "a1", 1), ("ghost", "a1", 0), ("s3", "missing", 0)],
    )
    conn.executemany(
        "INSERT INTO SongArtistMap VALUES (?, ?)",
        [("s1", "ar1"), ("s2", "ar1"), ("ghost", "ar1")],
    )
    conn.executemany(
        "INSERT INTO Event (songId, timestamp, playTime) VALUES (?, ?, ?)",
        [("s1", 1700000000000, 30000), ("s1", 1700000100000, 15000), ("ghost", 1700000200000, 100)],
    )
    conn.execute(
        "INSERT INTO Format VALUES ('s1', 251, 'audio/webm', 128000, 3000000, 1700000000000, -7.5)"
    )
    conn.execute("INSERT INTO Lyrics VALUES ('s1', 'line one\nline two', NULL)")
    conn.executemany(
        "INSERT INTO SearchQuery (query) VALUES (?)",
        [("lofi",), ("   ",), ("lofi",)],
    )


def write_sqlite(path, script, populate=None):
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(script)
        if populate is not None:
            populate(conn)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture()
def make_sqlite(tmp_path):
    """Return a factory producing SQLite file bytes from a script."""

    counter = {"value": 0}

    def factory(script, populate=None):
        counter["value"] += 1
        path = tmp_path / f"source_{counter['value']}.db"
        write_sqlite(path, script, populate)
        return path.read_bytes()

    return factory


@pytest.fixture()
def kreate_backup_path(tmp_path):
    return write_sqlite(tmp_path / "kreate.db", KREATE_SCHEMA, _populate_library)


@pytest.fixture()
def kreate_backup(kreate_backup_path):
    return kreate_backup_path.read_bytes()


@pytest.fixture()
def engine(tmp_path):
    return SqliteEngine(temp_root=tmp_path / "spool")
