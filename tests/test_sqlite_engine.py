import sqlite3
import threading

import pytest

from services import sqlite_engine
from services.sqlite_engine import SqliteEngine, get_sqlite_engine, reset_sqlite_engine


def test_initialise_runs_once_across_threads(tmp_path):
    engine = SqliteEngine(temp_root=tmp_path)
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        engine.initialize()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert engine.initialised
    assert engine.initialise_count == 1
    assert engine.sqlite_version
    assert engine.foreign_keys_supported


def test_shared_engine_is_memoised():
    reset_sqlite_engine()
    try:
        first = get_sqlite_engine()
        assert get_sqlite_engine() is first
    finally:
        reset_sqlite_engine()
    assert sqlite_engine._engine_instance is None


def test_open_image_is_read_only_and_cleans_up(kreate_backup, engine, tmp_path):
    image = engine.open_image(kreate_backup)
    try:
        assert image.list_tables()[:2] == ["Song", "Playlist"]
        assert "sqlite_sequence" not in image.list_tables()
        assert image.row_count("Song") == 4
        assert image.read_table("Playlist")[0] == {"id": 1, "name": "Road Trip", "browseId": "VLroad"}
        with pytest.raises(sqlite3.OperationalError):
            image.connection.execute("INSERT INTO Playlist VALUES (3, 'x', NULL)")
    finally:
        image.close()
    image.close()
    assert list((tmp_path / "spool").iterdir()) == []


def test_image_context_manager_closes_on_error(kreate_backup, engine, tmp_path):
    with pytest.raises(RuntimeError):
        with engine.open_image(kreate_backup) as image:
            image.list_tables()
            raise RuntimeError("stop")
    assert list((tmp_path / "spool").iterdir()) == []


def test_columns_without_declared_type_are_unknown(make_sqlite, engine):
    image = engine.open_image(make_sqlite("CREATE TABLE loose (a, b TEXT);"))
    with image:
        columns = image.table_columns("loose")
    assert [(c.name, c.type) for c in columns] == [("a", "UNKNOWN"), ("b", "TEXT")]


def test_new_image_exports_bytes(engine, tmp_path):
    builder = engine.new_image()
    builder.connection.execute("CREATE TABLE t (x INTEGER)")
    builder.connection.execute("INSERT INTO t VALUES (1)")
    payload = builder.export()

    assert payload.startswith(b"SQLite format 3\x00")
    assert list((tmp_path / "spool").iterdir()) == []

    target = tmp_path / "copy.db"
    target.write_bytes(payload)
    conn = sqlite3.connect(str(target))
    try:
        assert conn.execute("SELECT x FROM t").fetchall() == [(1,)]
    finally:
        conn.close()
