# tests/test_utils.py
import pytest
from pathlib import Path
from types import SimpleNamespace

from media_rename import utils
from media_rename.enums import MediaFileType

# --- Sanitization ---
@pytest.mark.parametrize("input_str, expected", [
    ("jb: the bla", "jb - the bla"),
    ("2:22", "2-22"),
    ("Aladdin  () [1080p]", "Aladdin [1080p]"),
    ("Name [] {} (x)", "Name (x)"),
    ('Who? "Me" <3|*', "Who Me 3"),
    ("-Leading and trailing-.", "Leading and trailing"),
    ("([])", ""),
])
def test_clean_path_segment(input_str, expected):
    assert utils.clean_path_segment(input_str) == expected

def test_sanitize_filename_stem_records_change():
    stem, changes = utils.sanitize_filename_stem("jb: the bla")
    assert stem == "jb - the bla"
    assert len(changes) == 1
    assert changes[0].context == 'filename'
    assert changes[0].raw == "jb: the bla"

def test_sanitize_filename_stem_flattens_separators():
    stem, changes = utils.sanitize_filename_stem("a/b\\c")
    assert stem == "a b c"

@pytest.mark.parametrize("raw, expected", [
    ("A/Aladdin (1992)", Path("A/Aladdin (1992)")),
    ("../../etc/passwd", Path("etc/passwd")),
    ("A//B/./", Path("A/B")),
    ("  /  ", None),
])
def test_sanitize_relative_path(raw, expected):
    rel, _ = utils.sanitize_relative_path(raw)
    assert rel == expected

def test_sanitize_relative_path_changes_per_segment():
    _, changes = utils.sanitize_relative_path("Star Wars: Saga/Episode IV: A New Hope")
    assert [c.sanitized for c in changes] == ["Star Wars - Saga", "Episode IV - A New Hope"]

def test_normalize_path_key_case_insensitive():
    assert utils.normalize_path_key(Path("/a/B/../Movie")) == utils.normalize_path_key(Path("/a/movie"))


# --- Titles ---
@pytest.mark.parametrize("title, expected", [
    ("The Dish", "Dish, The"),
    ("A Bug's Life", "Bug's Life, A"),
    ("Aladdin", "Aladdin"),
    ("Theory of Everything", "Theory of Everything"),
    ("", ""),
])
def test_sortable_title(title, expected):
    assert utils.sortable_title(title) == expected

@pytest.mark.parametrize("value, expected", [("the dish", "T"), ("12 Monkeys", "#"), ("Ängel", "A"), ("...", "")])
def test_first_character(value, expected):
    assert utils.first_character(value) == expected

def test_decade_start():
    assert utils.decade_start(2009) == 2000
    assert utils.decade_start(None) is None

@pytest.mark.parametrize("stem, expected", [
    ("Titanic cd1", ("Titanic", "cd1")),
    ("Titanic.Part.02", ("Titanic", "part2")),
    ("Titanic", ("Titanic", "")),
])
def test_split_stacking_marker(stem, expected):
    assert utils.split_stacking_marker(stem) == expected

def test_matches_any_pattern():
    assert utils.matches_any_pattern("Thumbs.db", ["thumbs.db"])
    assert utils.matches_any_pattern("site.URL", ["*.url"])
    assert not utils.matches_any_pattern("movie.mkv", ["*.url", "Thumbs.db"])


# --- Languages ---
@pytest.mark.parametrize("value, expected", [("en", "eng"), ("eng", "eng"), ("de", "ger"), ("", "")])
def test_normalize_language(value, expected):
    assert utils.normalize_language(value) == expected

def test_parse_subtitle_language_uses_guessit(mocker):
    utils.parse_subtitle_language.cache_clear()
    mocker.patch('media_rename.utils.guessit', return_value={'subtitle_language': 'fr', 'other': ['Forced']})
    assert utils.parse_subtitle_language("movie.fr.forced.srt") == ("fre", True)

def test_parse_subtitle_language_survives_guessit_errors(mocker):
    utils.parse_subtitle_language.cache_clear()
    mocker.patch('media_rename.utils.guessit', side_effect=ValueError("boom"))
    assert utils.parse_subtitle_language("movie.forced.srt") == ("", True)


# --- File types ---
@pytest.mark.parametrize("relative, expected", [
    ("movie.mkv", MediaFileType.VIDEO),
    ("movie-trailer.mp4", MediaFileType.TRAILER),
    ("trailers/teaser.mp4", MediaFileType.TRAILER),
    ("extras/deleted.mkv", MediaFileType.EXTRA),
    ("sample.mkv", MediaFileType.SAMPLE),
    ("poster.jpg", MediaFileType.POSTER),
    ("movie-fanart.jpg", MediaFileType.FANART),
    ("season01-poster.jpg", MediaFileType.SEASON_POSTER),
    ("clearlogo.png", MediaFileType.CLEARLOGO),
    ("random.jpg", MediaFileType.UNKNOWN),
    ("movie.nfo", MediaFileType.NFO),
    ("movie.en.srt", MediaFileType.SUBTITLE),
    ("theme.mp3", MediaFileType.THEME),
    ("score.flac", MediaFileType.AUDIO),
    ("readme.txt", MediaFileType.TEXT),
    ("movie.url", MediaFileType.UNKNOWN),
])
def test_detect_file_type(tmp_path, relative, expected):
    path = tmp_path / relative
    assert utils.detect_file_type(path, Path(relative).parts[:-1]) == expected

def test_detect_file_type_optical_directory(tmp_path):
    (tmp_path / "VIDEO_TS").mkdir()
    assert utils.detect_file_type(tmp_path / "VIDEO_TS") == MediaFileType.VIDEO


# --- Stream info ---
def test_extract_stream_info(tmp_path, mocker):
    video = tmp_path / "movie.mkv"
    video.write_bytes(b"\0")
    tracks = [
        SimpleNamespace(track_type='Video', width=1920, height=1080, format='AVC'),
        SimpleNamespace(track_type='Audio', format='E-AC-3', channel_s=6, language='en'),
    ]
    mocker.patch('media_rename.utils.MediaInfoParser.parse', return_value=SimpleNamespace(tracks=tracks))
    info = utils.extract_stream_info(video)
    assert info['width'] == 1920 and info['height'] == 1080
    assert info['video_codec'] == 'h264'
    assert info['audio'] == [{'codec': 'EAC3', 'channels': 6, 'language': 'en'}]

def test_extract_stream_info_missing_file(tmp_path):
    info = utils.extract_stream_info(tmp_path / "nope.mkv")
    assert info == {'width': None, 'height': None, 'video_codec': None, 'audio': []}
