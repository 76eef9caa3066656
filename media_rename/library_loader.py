# media_rename/library_loader.py
"""
Reads a library manifest: the JSON export of an entity store describing data
sources, entities and the files they own.

    {
      "entities": [
        {"kind": "movie", "title": "Aladdin", "year": 1992,
         "data_source": "/media/movies", "path": "Aladdin",
         "files": [{"path": "singlefile.avi", "type": "VIDEO", "width": 1920, "height": 1080}]}
      ]
    }

Entity paths are relative to their data source, file paths relative to the
entity path (absolute paths are accepted too). When "files" is omitted for a
movie, its folder is scanned and file types are detected from names.
"""
import os
import json
import logging
from pathlib import Path
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from .enums import MediaFileType
from .exceptions import ManifestError
from .models import MediaEntity, MediaFile, AudioStream
from .utils import (
    detect_file_type, extract_stream_info, is_optical_dir_name,
    parse_subtitle_language, split_stacking_marker, VIDEO_EXTENSIONS,
)

log = logging.getLogger(__name__)


class ManifestAudio(BaseModel):
    codec: str = ""
    channels: int = 0
    language: str = ""


class ManifestFile(BaseModel):
    path: str
    type: Optional[str] = None
    video_codec: str = ""
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    video_format: str = ""
    audio: List[ManifestAudio] = Field(default_factory=list)
    language: Optional[str] = None
    forced: Optional[bool] = None
    stacking: Optional[str] = None

    @field_validator('type', mode='before')
    @classmethod
    def check_type(cls, v: Any) -> Optional[str]:
        if v is None: return v
        if not isinstance(v, str) or v.upper() not in MediaFileType.__members__:
            raise ValueError(f"unknown file type '{v}'")
        return v.upper()


class ManifestEntity(BaseModel):
    kind: str = 'movie'
    title: str
    data_source: Optional[str] = None
    path: str
    year: Optional[int] = None
    original_title: str = ""
    sort_title: str = ""
    edition: str = ""
    ids: Dict[str, str] = Field(default_factory=dict)
    show_title: str = ""
    season: Optional[int] = Field(default=None, ge=0)
    episode: Optional[int] = Field(default=None, ge=0)
    episode_title: str = ""
    files: Optional[List[ManifestFile]] = None

    @field_validator('kind', mode='before')
    @classmethod
    def check_kind(cls, v: Any) -> str:
        if not isinstance(v, str) or v.lower() not in ('movie', 'episode'):
            raise ValueError("kind must be 'movie' or 'episode'")
        return v.lower()

    @field_validator('ids', mode='before')
    @classmethod
    def stringify_ids(cls, v: Any) -> Dict[str, str]:
        if v is None: return {}
        if not isinstance(v, dict): raise ValueError("ids must be an object")
        return {str(k): str(val) for k, val in v.items() if val is not None}


class LibraryManifest(BaseModel):
    data_source: Optional[str] = None
    entities: List[ManifestEntity] = Field(default_factory=list)


class LibraryLoader:
    def __init__(self, cfg_helper, manifest_path: Path):
        self.cfg = cfg_helper
        self.manifest_path = Path(manifest_path)
        self.extract_stream_info = bool(cfg_helper('extract_stream_info', False))

    def _read_manifest(self) -> LibraryManifest:
        try:
            raw = json.loads(self.manifest_path.read_text(encoding='utf-8'))
        except OSError as e:
            raise ManifestError(f"Cannot read manifest '{self.manifest_path}': {e}") from e
        except json.JSONDecodeError as e:
            raise ManifestError(f"Manifest '{self.manifest_path}' is not valid JSON: {e}") from e
        try:
            return LibraryManifest.model_validate(raw)
        except ValidationError as e_val:
            error_msgs = [f"  - Field `{' -> '.join(map(str, err['loc']))}`: {err['msg']}" for err in e_val.errors()]
            raise ManifestError(f"Manifest '{self.manifest_path}' validation failed:\n" + "\n".join(error_msgs)) from e_val

    def _resolve(self, value: str, base: Path) -> Path:
        p = Path(value).expanduser()
        return p if p.is_absolute() else base / p

    def load(self) -> List[MediaEntity]:
        manifest = self._read_manifest()
        manifest_dir = self.manifest_path.parent.resolve()
        entities: List[MediaEntity] = []
        for index, item in enumerate(manifest.entities):
            data_source_str = item.data_source or manifest.data_source
            if not data_source_str:
                raise ManifestError(f"Entity #{index} ('{item.title}') has no data_source and the manifest defines none.")
            data_source = self._resolve(data_source_str, manifest_dir)
            entity_path = self._resolve(item.path, data_source)
            entity = MediaEntity(
                title=item.title, data_source=data_source, path=entity_path, year=item.year,
                original_title=item.original_title, sort_title=item.sort_title, edition=item.edition,
                ids=item.ids, kind=item.kind, show_title=item.show_title, season=item.season,
                episode=item.episode, episode_title=item.episode_title,
            )
            if item.files is not None:
                entity.media_files = [self._build_file(f, entity_path) for f in item.files]
            elif item.kind == 'episode':
                raise ManifestError(f"Episode '{item.title}' must list its files; episode folders are shared.")
            else:
                entity.media_files = self._discover_files(entity_path)
            if entity.main_video() is None:
                log.warning(f"Entity '{entity.display_name}' has no VIDEO file; its files keep their names.")
            entities.append(entity)
        log.info(f"Loaded {len(entities)} entities from '{self.manifest_path}'")
        return entities

    def _build_file(self, manifest_file: ManifestFile, entity_path: Path) -> MediaFile:
        path = self._resolve(manifest_file.path, entity_path)
        try:
            relative_parts = path.relative_to(entity_path).parts[:-1]
        except ValueError:
            relative_parts = ()
        file_type = MediaFileType[manifest_file.type] if manifest_file.type else detect_file_type(path, relative_parts)
        mf = MediaFile(
            path=path, file_type=file_type, video_codec=manifest_file.video_codec,
            video_width=manifest_file.width, video_height=manifest_file.height, video_format=manifest_file.video_format,
            audio_streams=[AudioStream(codec=a.codec, channels=a.channels, language=a.language) for a in manifest_file.audio],
            language=manifest_file.language or "", forced=bool(manifest_file.forced), stacking=manifest_file.stacking or "",
        )
        self._complete_file(mf, language_given=manifest_file.language is not None, forced_given=manifest_file.forced is not None, stacking_given=manifest_file.stacking is not None)
        return mf

    def _discover_files(self, entity_path: Path) -> List[MediaFile]:
        if not entity_path.is_dir():
            raise ManifestError(f"Cannot scan '{entity_path}': not a directory. List the entity's files in the manifest.")
        found: List[MediaFile] = []
        for dirpath, dirnames, filenames in os.walk(entity_path):
            current = Path(dirpath)
            relative_parts = current.relative_to(entity_path).parts
            for dirname in sorted(dirnames):
                if is_optical_dir_name(dirname):
                    found.append(MediaFile(path=current / dirname, file_type=MediaFileType.VIDEO))
            # disc trees are owned as a whole by their VIDEO entry
            dirnames[:] = sorted(d for d in dirnames if not is_optical_dir_name(d))
            for filename in sorted(filenames):
                path = current / filename
                mf = MediaFile(path=path, file_type=detect_file_type(path, relative_parts))
                self._complete_file(mf)
                found.append(mf)
        # main video first: the largest top-level video wins over samples and parts
        videos = [mf for mf in found if mf.file_type == MediaFileType.VIDEO]
        if len(videos) > 1 and not any(mf.path.is_dir() for mf in videos):
            videos.sort(key=lambda mf: (mf.stacking or "", -_size(mf.path)))
            others = [mf for mf in found if mf.file_type != MediaFileType.VIDEO]
            found = videos + others
        log.debug(f"Discovered {len(found)} files in '{entity_path}'")
        return found

    def _complete_file(self, mf: MediaFile, language_given: bool = False, forced_given: bool = False, stacking_given: bool = False):
        if mf.file_type == MediaFileType.SUBTITLE and not (language_given and forced_given):
            lang, forced = parse_subtitle_language(mf.path.name)
            if not language_given: mf.language = lang
            if not forced_given: mf.forced = forced
        if mf.file_type == MediaFileType.VIDEO and mf.path.suffix.lower() in VIDEO_EXTENSIONS:
            if not stacking_given:
                _, mf.stacking = split_stacking_marker(mf.path.stem)
            if self.extract_stream_info and not (mf.video_width and mf.video_height):
                self._apply_stream_info(mf)

    def _apply_stream_info(self, mf: MediaFile):
        info = extract_stream_info(mf.path)
        mf.video_width = info['width'] or 0
        mf.video_height = info['height'] or 0
        if not mf.video_codec and info['video_codec']:
            mf.video_codec = info['video_codec']
        if not mf.audio_streams:
            mf.audio_streams = [AudioStream(codec=a['codec'], channels=a['channels'], language=a['language']) for a in info['audio']]


def _size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0


def load_library(cfg_helper, manifest_path: Path) -> List[MediaEntity]:
    return LibraryLoader(cfg_helper, manifest_path).load()
