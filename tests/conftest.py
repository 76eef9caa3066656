# tests/conftest.py
import pytest
from pathlib import Path
import sys
from typing import Any, Dict

# Ensure the app package is findable by pytest by adding the project root to the path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from media_rename.enums import MediaFileType
from media_rename.models import MediaEntity, MediaFile, AudioStream

DEFAULT_TEST_SETTINGS: Dict[str, Any] = {
    'movie_folder_format': "${title} ${(,year,)}",
    'movie_file_format': "${title} ${(,year,)}",
    'episode_folder_format': "${showTitle}/Season ${seasonNr}",
    'episode_file_format': "${showTitle} - S${seasonNr2}E${episodeNr2} - ${episodeTitle}",
    'first_character_number_replacement': '#',
    'poster_folder_naming': False,
    'cleanup_unwanted': False,
    'unwanted_patterns': ['*.url', 'Thumbs.db'],
    'preserved_subfolders': ['extras', 'trailer', 'trailers'],
    'allow_overwrite': False,
    'temp_file_suffix_prefix': '.renametmp_',
}


class MockConfigHelper:
    """Same call surface as ConfigHelper, backed by a plain dict."""
    def __init__(self, values: Dict[str, Any]):
        self.values = dict(values)
    def __call__(self, key, default_value=None, arg_value=None):
        if arg_value is not None: return arg_value
        return self.values.get(key, default_value)
    def get_list(self, key, default_value=None):
        val = self(key, default_value)
        if isinstance(val, str): return [i.strip() for i in val.split(',') if i.strip()]
        if isinstance(val, list): return val
        return default_value if isinstance(default_value, list) else []


@pytest.fixture
def mock_cfg_helper():
    return MockConfigHelper(DEFAULT_TEST_SETTINGS)


@pytest.fixture
def data_source(tmp_path: Path) -> Path:
    root = tmp_path / "library"
    root.mkdir()
    return root


@pytest.fixture
def make_entity(data_source: Path):
    """
    Creates an entity folder on disk and the matching MediaEntity.
    `files` maps a path relative to the entity folder to its MediaFileType (or to a
    dict of MediaFile fields including 'file_type'); a trailing '/' creates a directory.
    `extra_files` are created on disk without being owned by the entity.
    """
    def _make(folder: str, files: Dict[str, Any], extra_files=(), **entity_fields) -> MediaEntity:
        entity_path = data_source / folder if folder else data_source
        entity_path.mkdir(parents=True, exist_ok=True)
        media_files = []
        for rel, value in files.items():
            fields = dict(value) if isinstance(value, dict) else {'file_type': value}
            path = entity_path / rel.rstrip('/')
            if rel.endswith('/'):
                path.mkdir(parents=True, exist_ok=True)
            else:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(rel, encoding='utf-8')
            media_files.append(MediaFile(path=path, **fields))
        for rel in extra_files:
            path = entity_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(rel, encoding='utf-8')
        entity_fields.setdefault('title', folder or "Untitled")
        return MediaEntity(data_source=data_source, path=entity_path, media_files=media_files, **entity_fields)
    return _make


@pytest.fixture
def aladdin(make_entity) -> MediaEntity:
    return make_entity("Aladdin", {
        "singlefile.avi": {'file_type': MediaFileType.VIDEO, 'video_width': 1920, 'video_height': 1080,
                           'video_codec': 'h264', 'audio_streams': [AudioStream(codec='DTS', channels=6, language='eng')]},
        "extras/cut-scenes.mkv": MediaFileType.EXTRA,
        "trailer/trailer2.mp4": MediaFileType.TRAILER,
    }, title="Aladdin", year=1992)


@pytest.fixture
def brave_bdmv(make_entity) -> MediaEntity:
    """Blu-ray folder: the VIDEO entry is the BDMV directory, stream files are not owned individually."""
    return make_entity("Brave", {
        "BDMV/": MediaFileType.VIDEO,
        "movie.nfo": MediaFileType.NFO,
        "poster.jpg": MediaFileType.POSTER,
        "trailer.mp4": MediaFileType.TRAILER,
    }, extra_files=("BDMV/index.bdmv", "BDMV/STREAM/00000.m2ts", "BDMV/STREAM/00001.m2ts"),
       title="Brave", year=2012)


@pytest.fixture
def cars_video_ts(make_entity) -> MediaEntity:
    return make_entity("Cars", {
        "VIDEO_TS/VIDEO_TS.IFO": MediaFileType.VIDEO,
        "cars.nfo": MediaFileType.NFO,
    }, extra_files=("VIDEO_TS/VTS_01_1.VOB", "VIDEO_TS/VTS_01_0.IFO"),
       title="Cars", year=2006)


@pytest.fixture
def relative_tree():
    """Every file and directory below a root as sorted posix paths."""
    def _tree(root: Path):
        return sorted(p.relative_to(root).as_posix() for p in root.rglob('*'))
    return _tree
