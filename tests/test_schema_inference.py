from services.schema_inference import (
    COLUMN_SYNONYMS,
    ColumnResolver,
    TABLE_CANDIDATES,
    find_column,
    locate_entity_tables,
    locate_table,
)


def test_exact_match_wins_over_earlier_substring_match():
    tables = ["SongPlaylistMap", "SongArchive", "Song"]
    assert locate_table(tables, ["Song", "Songs"], "song") == "Song"


def test_exact_match_is_case_sensitive():
    assert locate_table(["SONG"], ["Song"]) is None
    assert locate_table(["SONG"], ["Song"], "song") == "SONG"


def test_substring_pass_requires_every_substring():
    tables = ["SongMeta", "AlbumInfo", "SongAlbumLink"]
    assert locate_table(tables, [], "song", "album") == "SongAlbumLink"


def test_substring_pass_honours_listing_order():
    tables = ["tracks_v2", "track_old"]
    assert locate_table(tables, ["Track"], alternatives=[("track",)]) == "tracks_v2"


def test_alternative_substring_groups():
    tables = ["history", "SongMapping"]
    assert locate_table(tables, [], "playlist", "song", alternatives=[("song", "map")]) == "SongMapping"


def test_excluded_tables_are_skipped():
    tables = ["Playlist", "PlaylistBackup"]
    assert locate_table(tables, ["Playlist"], "playlist", exclude=["Playlist"]) == "PlaylistBackup"


def test_returns_none_when_nothing_matches():
    assert locate_table(["users", "settings"], ["Song"], "song") is None


def test_locate_entity_tables_for_standard_kreate_layout():
    tables = [
        "Song",
        "Playlist",
        "SongPlaylistMap",
        "Album",
        "Artist",
        "SongAlbumMap",
        "SongArtistMap",
        "Event",
        "Format",
        "Lyrics",
        "SearchQuery",
        "QueuedMediaItem",
    ]
    located = locate_entity_tables(tables)
    assert located == {
        "songs": "Song",
        "playlists": "Playlist",
        "song_playlist_map": "SongPlaylistMap",
        "albums": "Album",
        "artists": "Artist",
        "song_album_map": "SongAlbumMap",
        "song_artist_map": "SongArtistMap",
        "events": "Event",
        "formats": "Format",
        "lyrics": "Lyrics",
        "search_queries": "SearchQuery",
    }


def test_locate_entity_tables_for_renamed_layout():
    tables = ["user_playlists", "my_tracks", "playlist_song_links", "album_tracks_map"]
    located = locate_entity_tables(tables)
    assert located["songs"] == "my_tracks"
    assert located["playlists"] == "user_playlists"
    assert located["song_playlist_map"] == "playlist_song_links"
    assert located["song_album_map"] == "album_tracks_map"
    assert located["albums"] is None
    assert located["events"] is None


def test_each_table_is_claimed_once():
    located = locate_entity_tables(["playlist_entries"])
    assert located["playlists"] == "playlist_entries"
    assert located["song_playlist_map"] is None


def test_table_rule_avoids_association_tables():
    assert TABLE_CANDIDATES["albums"].locate(["SongAlbumMap"]) is None
    assert TABLE_CANDIDATES["albums"].locate(["album_catalog", "SongAlbumMap"]) == "album_catalog"


def test_column_resolver_uses_synonym_priority():
    resolver = ColumnResolver.for_entity("songs", ["songId", "ID", "Title", "Artists_Text"])
    assert resolver.column("id") == "ID"
    assert resolver.column("title") == "Title"
    assert resolver.column("artists") == "Artists_Text"
    assert resolver.column("duration") is None
    assert not resolver.has("thumbnail")


def test_column_resolver_reads_row_values():
    resolver = ColumnResolver.for_entity("playlists", ["playlist_id", "playlistName"])
    row = {"playlist_id": 3, "playlistName": "Mix"}
    assert resolver.value(row, "id") == 3
    assert resolver.value(row, "name") == "Mix"
    assert resolver.value(row, "browse_id") is None


def test_every_entity_has_an_identifier_synonym_table():
    for entity in ("songs", "playlists", "albums", "artists"):
        fields = [name for name, _ in COLUMN_SYNONYMS[entity]]
        assert fields[0] == "id"


def test_find_column_exact_and_contains():
    columns = ["browseId", "PlaylistRef", "videoId", "position"]
    assert find_column(columns, exact=("playlistid",), contains=("playlist",)) == "PlaylistRef"
    assert find_column(columns, exact=("songid",), contains=("song", "video")) == "videoId"
    assert find_column(columns, exact=("position", "pos")) == "position"
    assert find_column(columns, exact=("order",)) is None
