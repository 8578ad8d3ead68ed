from services.linker import link_album_maps, link_artist_maps
from services.music_library import Album, Artist, ConversionResult, Song, SongAlbumMap, SongArtistMap


def _songs(*ids):
    return [Song(song_id) for song_id in ids]


def test_groups_without_positions_are_not_reordered():
    result = ConversionResult(
        songs=_songs("s1", "s2", "s3"),
        albums=[Album("A"), Album("B")],
        song_album_maps=[SongAlbumMap("s1", "A"), SongAlbumMap("s2", "B"), SongAlbumMap("s3", "A")],
    )
    link_album_maps(result)
    assert [(m.song_id, m.album_id) for m in result.song_album_maps] == [("s1", "A"), ("s2", "B"), ("s3", "A")]


def test_positioned_groups_are_sorted_in_place():
    result = ConversionResult(
        songs=_songs("s1", "s2", "s3", "s4"),
        albums=[Album("A"), Album("B")],
        song_album_maps=[
            SongAlbumMap("s1", "A", 2),
            SongAlbumMap("s2", "B"),
            SongAlbumMap("s3", "A", 1),
            SongAlbumMap("s4", "B"),
        ],
    )
    link_album_maps(result)
    assert [(m.song_id, m.album_id) for m in result.song_album_maps] == [
        ("s3", "A"),
        ("s2", "B"),
        ("s1", "A"),
        ("s4", "B"),
    ]


def test_partially_positioned_group_keeps_source_order():
    result = ConversionResult(
        songs=_songs("s1", "s2"),
        artists=[Artist("ar1")],
        song_artist_maps=[SongArtistMap("s1", "ar1", 5), SongArtistMap("s2", "ar1")],
    )
    link_artist_maps(result)
    assert [m.song_id for m in result.song_artist_maps] == ["s1", "s2"]


def test_unknown_references_are_dropped():
    result = ConversionResult(
        songs=_songs("s1"),
        albums=[Album("A")],
        song_album_maps=[SongAlbumMap("ghost", "A", 0), SongAlbumMap("s1", "missing", 0), SongAlbumMap("s1", "A", 0)],
    )
    link_album_maps(result)
    assert [(m.song_id, m.album_id) for m in result.song_album_maps] == [("s1", "A")]
