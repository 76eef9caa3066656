# tests/test_library_loader.py
import json
import pytest
from pathlib import Path

from media_rename.enums import MediaFileType
from media_rename.exceptions import ManifestError
from media_rename.library_loader import LibraryLoader, load_library

def _write_manifest(tmp_path: Path, payload) -> Path:
    path = tmp_path / "library.json"
    path.write_text(json.dumps(payload) if not isinstance(payload, str) else payload, encoding='utf-8')
    return path

def _touch(path: Path, size: int = 1) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    return path

@pytest.fixture(autouse=True)
def fixed_subtitle_language(mocker):
    return mocker.patch('media_rename.library_loader.parse_subtitle_language', return_value=("eng", False))


# --- Explicit files ---
def test_explicit_files_and_relative_paths(tmp_path, mock_cfg_helper):
    manifest = _write_manifest(tmp_path, {
        "data_source": "library",
        "entities": [{
            "title": "Aladdin", "year": 1992, "path": "Aladdin", "ids": {"imdb": "tt0103639", "tmdb": 812},
            "files": [
                {"path": "singlefile.avi", "type": "video", "width": 1920, "height": 1080, "video_codec": "h264",
                 "audio": [{"codec": "DTS", "channels": 6, "language": "eng"}]},
                {"path": "extras/cut-scenes.mkv"},
            ],
        }],
    })
    entities = load_library(mock_cfg_helper, manifest)

    assert len(entities) == 1
    entity = entities[0]
    assert entity.data_source == tmp_path / "library"
    assert entity.path == tmp_path / "library" / "Aladdin"
    assert entity.ids == {"imdb": "tt0103639", "tmdb": "812"}
    video = entity.main_video()
    assert video.path == entity.path / "singlefile.avi"
    assert video.get_video_format() == "1080p"
    assert video.audio_streams[0].codec == "DTS"
    assert entity.media_files[1].file_type == MediaFileType.EXTRA

def test_entity_data_source_overrides_manifest(tmp_path, mock_cfg_helper):
    other = tmp_path / "other"
    manifest = _write_manifest(tmp_path, {
        "data_source": "library",
        "entities": [{"title": "Jaws", "path": "Jaws", "data_source": str(other), "files": [{"path": "jaws.mkv"}]}],
    })
    entity = load_library(mock_cfg_helper, manifest)[0]
    assert entity.data_source == other
    assert entity.main_video().path == other / "Jaws" / "jaws.mkv"

def test_subtitle_language_given_or_guessed(tmp_path, mock_cfg_helper, fixed_subtitle_language):
    manifest = _write_manifest(tmp_path, {
        "data_source": "library",
        "entities": [{"title": "Jaws", "path": "Jaws", "files": [
            {"path": "jaws.mkv"},
            {"path": "jaws.de.srt", "language": "ger", "forced": True},
            {"path": "jaws.srt"},
        ]}],
    })
    entity = load_library(mock_cfg_helper, manifest)[0]
    german, guessed = entity.files_of_type(MediaFileType.SUBTITLE)
    assert (german.language, german.forced) == ("ger", True)
    assert (guessed.language, guessed.forced) == ("eng", False)
    fixed_subtitle_language.assert_called_once_with("jaws.srt")

def test_stacking_marker_detected(tmp_path, mock_cfg_helper):
    manifest = _write_manifest(tmp_path, {
        "data_source": "library",
        "entities": [{"title": "Titanic", "path": "Titanic", "files": [{"path": "titanic cd1.avi"}, {"path": "titanic cd2.avi"}]}],
    })
    entity = load_library(mock_cfg_helper, manifest)[0]
    assert [mf.stacking for mf in entity.media_files] == ["cd1", "cd2"]

def test_episode(tmp_path, mock_cfg_helper):
    manifest = _write_manifest(tmp_path, {
        "data_source": "library",
        "entities": [{"kind": "Episode", "title": "Serenity", "show_title": "Firefly", "season": 1, "episode": 1,
                      "path": "Firefly/S1", "files": [{"path": "e1.mkv", "type": "VIDEO"}]}],
    })
    entity = load_library(mock_cfg_helper, manifest)[0]
    assert entity.is_episode
    assert entity.display_name == "Firefly S01E01"


# --- Discovery ---
def test_discovers_files_and_keeps_disc_tree_whole(tmp_path, mock_cfg_helper):
    folder = tmp_path / "library" / "Brave"
    _touch(folder / "BDMV" / "index.bdmv")
    _touch(folder / "BDMV" / "STREAM" / "00000.m2ts")
    _touch(folder / "movie.nfo")
    _touch(folder / "poster.jpg")
    _touch(folder / "trailer" / "teaser.mp4")
    manifest = _write_manifest(tmp_path, {"data_source": "library", "entities": [{"title": "Brave", "year": 2012, "path": "Brave"}]})

    entity = load_library(mock_cfg_helper, manifest)[0]

    found = {mf.path.relative_to(folder).as_posix(): mf.file_type for mf in entity.media_files}
    assert found == {
        "BDMV": MediaFileType.VIDEO,
        "movie.nfo": MediaFileType.NFO,
        "poster.jpg": MediaFileType.POSTER,
        "trailer/teaser.mp4": MediaFileType.TRAILER,
    }
    assert entity.main_video().path == folder / "BDMV"

def test_discovery_puts_largest_video_first(tmp_path, mock_cfg_helper):
    folder = tmp_path / "library" / "Jaws"
    _touch(folder / "a.mkv", size=1)
    _touch(folder / "b.mkv", size=50)
    _touch(folder / "jaws.nfo")
    manifest = _write_manifest(tmp_path, {"data_source": "library", "entities": [{"title": "Jaws", "path": "Jaws"}]})
    entity = load_library(mock_cfg_helper, manifest)[0]
    assert entity.main_video().path.name == "b.mkv"

def test_stream_info_fills_missing_dimensions(tmp_path, mock_cfg_helper, mocker):
    mock_cfg_helper.values['extract_stream_info'] = True
    info = {'width': 1280, 'height': 720, 'video_codec': 'h265', 'audio': [{'codec': 'AAC', 'channels': 2, 'language': 'en'}]}
    extract = mocker.patch('media_rename.library_loader.extract_stream_info', return_value=info)
    _touch(tmp_path / "library" / "Jaws" / "jaws.mkv")
    manifest = _write_manifest(tmp_path, {"data_source": "library", "entities": [{"title": "Jaws", "path": "Jaws"}]})

    video = load_library(mock_cfg_helper, manifest)[0].main_video()

    extract.assert_called_once()
    assert video.get_video_format() == "720p"
    assert video.video_codec == "h265"
    assert video.audio_streams[0].channels == 2

def test_stream_info_not_read_when_disabled(tmp_path, mock_cfg_helper, mocker):
    extract = mocker.patch('media_rename.library_loader.extract_stream_info')
    _touch(tmp_path / "library" / "Jaws" / "jaws.mkv")
    manifest = _write_manifest(tmp_path, {"data_source": "library", "entities": [{"title": "Jaws", "path": "Jaws"}]})
    load_library(mock_cfg_helper, manifest)
    extract.assert_not_called()


# --- Errors ---
@pytest.mark.parametrize("payload, message", [
    ("{not json", "not valid JSON"),
    ({"entities": [{"title": "X", "path": "X", "kind": "series"}]}, "validation failed"),
    ({"entities": [{"title": "X", "path": "X", "files": [{"path": "a.mkv", "type": "MOVIE"}]}]}, "validation failed"),
    ({"entities": [{"path": "X"}]}, "validation failed"),
    ({"entities": [{"title": "X", "path": "X", "files": []}]}, "has no data_source"),
    ({"data_source": "lib", "entities": [{"kind": "episode", "title": "X", "path": "X"}]}, "must list its files"),
    ({"data_source": "lib", "entities": [{"title": "X", "path": "missing"}]}, "not a directory"),
])
def test_manifest_errors(tmp_path, mock_cfg_helper, payload, message):
    manifest = _write_manifest(tmp_path, payload)
    with pytest.raises(ManifestError, match=message):
        LibraryLoader(mock_cfg_helper, manifest).load()

def test_missing_manifest(tmp_path, mock_cfg_helper):
    with pytest.raises(ManifestError, match="Cannot read manifest"):
        load_library(mock_cfg_helper, tmp_path / "nope.json")
