from services.music_library import ConversionResult, Playlist, Song


def _result():
    one = Song("s1", title="One", duration_seconds=245)
    two = Song("s2", title="Two")
    return ConversionResult(
        songs=[one, two, Song("s1", title="Later")],
        playlists=[
            Playlist(1, "Mix", songs=[one, two]),
            Playlist(2, "Hidden", songs=[two], selected=False),
        ],
    )


def test_duration_text_is_minutes_and_seconds():
    assert Song("a", duration_seconds=245).duration_text == "4:05"
    assert Song("a").duration_text == "0:00"


def test_with_selected_copies_the_playlist():
    playlist = Playlist(1, "Mix", songs=[Song("s1")])
    toggled = playlist.with_selected(False)
    toggled.songs.append(Song("s2"))

    assert playlist.selected is True
    assert toggled.selected is False
    assert len(playlist.songs) == 1


def test_selected_playlists_defaults_to_flags():
    result = _result()
    assert [playlist.id for playlist in result.selected_playlists()] == [1]
    assert [playlist.id for playlist in result.selected_playlists([2])] == [2]
    assert result.selected_playlists([]) == []


def test_with_playlist_selection_leaves_original_untouched():
    result = _result()
    updated = result.with_playlist_selection([2])
    assert [p.selected for p in updated.playlists] == [False, True]
    assert [p.selected for p in result.playlists] == [True, False]


def test_songs_by_id_keeps_last_duplicate():
    assert _result().songs_by_id["s1"].title == "Later"


def test_summary_counts():
    summary = _result().summary()
    assert summary["songs"] == 3
    assert summary["playlists"] == 2
    assert summary["playlistSongs"] == 3
    assert summary["warnings"] == 0
