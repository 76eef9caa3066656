# media_rename/models.py
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Tuple, Set, Iterator

from .enums import MediaFileType, LayoutKind, JournalOp
from .exceptions import TemplateResolutionWarning

# (format, max width, max height); first row that fits wins. 1% blur so 1920x1088 is still 1080p.
VIDEO_FORMAT_LIMITS = (
    ('480p', 720, 480),
    ('576p', 768, 576),
    ('540p', 960, 544),
    ('720p', 1280, 720),
    ('1080p', 1920, 1080),
    ('1440p', 2560, 1440),
    ('2160p', 3840, 2160),
)
_BLUR = 1.01


@dataclass
class AudioStream:
    codec: str = ""
    channels: int = 0
    language: str = ""


@dataclass
class MediaFile:
    """One physical file (or optical-disc directory) owned by a MediaEntity."""
    path: Path
    file_type: MediaFileType = MediaFileType.UNKNOWN
    video_codec: str = ""
    video_width: int = 0
    video_height: int = 0
    video_format: str = "" # explicit override, e.g. from a scraper
    audio_streams: List[AudioStream] = field(default_factory=list)
    language: str = ""     # subtitles
    forced: bool = False   # subtitles
    stacking: str = ""     # e.g. 'cd1'

    @property
    def extension(self) -> str:
        return self.path.suffix[1:] if self.path.suffix else ""

    def get_video_format(self) -> str:
        if self.video_format: return self.video_format
        w, h = self.video_width, self.video_height
        if not w or not h: return ""
        for name, max_w, max_h in VIDEO_FORMAT_LIMITS:
            if w <= max_w * _BLUR and h <= max_h * _BLUR:
                return name
        return '4320p'

    def get_video_resolution(self) -> str:
        if not self.video_width or not self.video_height: return ""
        return f"{self.video_width}x{self.video_height}"


@dataclass
class MediaEntity:
    """A movie or a TV episode, as handed over by the entity store."""
    title: str
    data_source: Path
    path: Path
    media_files: List[MediaFile] = field(default_factory=list)
    year: Optional[int] = None
    original_title: str = ""
    sort_title: str = ""
    edition: str = ""
    ids: Dict[str, str] = field(default_factory=dict)
    kind: str = 'movie' # 'movie' | 'episode'

    # Episode specific
    show_title: str = ""
    season: Optional[int] = None
    episode: Optional[int] = None
    episode_title: str = ""

    @property
    def is_episode(self) -> bool:
        return self.kind == 'episode'

    @property
    def display_name(self) -> str:
        if self.is_episode and self.season is not None and self.episode is not None:
            return f"{self.show_title or self.title} S{self.season:02d}E{self.episode:02d}"
        return f"{self.title} ({self.year})" if self.year else self.title

    def main_video(self) -> Optional[MediaFile]:
        return next((mf for mf in self.media_files if mf.file_type == MediaFileType.VIDEO), None)

    def files_of_type(self, file_type: MediaFileType) -> List[MediaFile]:
        return [mf for mf in self.media_files if mf.file_type == file_type]


@dataclass
class PathSanitizationChange:
    """A path segment had forbidden characters substituted."""
    context: str # 'folder' | 'filename'
    raw: str
    sanitized: str


@dataclass
class FileRenameEntry:
    """
    Planned placement of one owned MediaFile (or, for optical layouts, of the whole
    disc tree). `moves` holds (old relative, new relative) pairs; relative to the
    plan's old_path/new_path respectively. `root_item` is the directory the entry
    stands for when it is not moved as a unit (the disc directory).
    `extra_names` are further new relative paths of the first move's file; they
    are filled with copies once the move is done (e.g. 'folder.jpg' next to the poster).
    """
    file_type: MediaFileType
    moves: List[Tuple[Path, Path]] = field(default_factory=list)
    root_item: Optional[Tuple[Path, Path]] = None
    duplicate: bool = False
    media_file: Optional[MediaFile] = None
    extra_names: List[Path] = field(default_factory=list)

    def _pairs(self) -> Iterator[Tuple[Path, Path]]:
        if self.root_item: yield self.root_item
        yield from self.moves
        if self.moves:
            old_rel = self.moves[0][0]
            for extra in self.extra_names:
                yield old_rel, extra

    @property
    def new_targets(self) -> List[Path]:
        """Every new relative path this entry writes, copies included."""
        return [new for _, new in self.moves] + list(self.extra_names)

    @property
    def old_relative_paths(self) -> Set[str]:
        return {old.as_posix() for old, _ in self._pairs()}

    @property
    def new_relative_paths(self) -> Set[str]:
        return {new.as_posix() for _, new in self._pairs()}

    @property
    def unchanged(self) -> bool:
        return all(old == new for old, new in self._pairs())


@dataclass
class RenamePlan:
    """Computed old -> new mapping for one entity. Built fresh per pass, never persisted."""
    entity: MediaEntity
    old_path: Path
    new_path: Path
    layout: LayoutKind = LayoutKind.SINGLE_FILE
    entries: List[FileRenameEntry] = field(default_factory=list)
    renamer_problems: bool = False
    problem_messages: List[str] = field(default_factory=list)
    warnings: List[TemplateResolutionWarning] = field(default_factory=list)
    sanitization_changes: List[PathSanitizationChange] = field(default_factory=list)
    unwanted_files: List[Path] = field(default_factory=list)
    main_video_new_relative: Optional[Path] = None
    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def path_changed(self) -> bool:
        return self.old_path != self.new_path

    @property
    def any_entry_changed(self) -> bool:
        return any(not e.unchanged for e in self.entries)

    @property
    def needs_rename(self) -> bool:
        return self.path_changed or self.any_entry_changed or self.renamer_problems or bool(self.unwanted_files)

    @property
    def collision_target(self) -> Path:
        # Episodes share season folders, so their identity is the main video's destination.
        if self.entity.is_episode and self.main_video_new_relative is not None:
            return self.new_path / self.main_video_new_relative
        return self.new_path

    def flag_problem(self, message: str):
        self.renamer_problems = True
        if message not in self.problem_messages:
            self.problem_messages.append(message)

    def iter_moves(self) -> Iterator[Tuple[Path, Path]]:
        """Absolute (source, destination) pairs that actually change location."""
        for entry in self.entries:
            for old_rel, new_rel in entry.moves:
                src, dst = self.old_path / old_rel, self.new_path / new_rel
                if src != dst:
                    yield src, dst

    def iter_copies(self) -> Iterator[Tuple[Path, Path]]:
        """Absolute (moved file, copy) pairs, to run after every move is done."""
        for entry in self.entries:
            if not entry.moves: continue
            placed = self.new_path / entry.moves[0][1]
            for extra in entry.extra_names:
                yield placed, self.new_path / extra


@dataclass
class PreviewFileGroup:
    file_type: MediaFileType
    old_names: List[str]
    new_names: List[str]
    duplicate: bool = False

    @property
    def changed(self) -> bool:
        return self.old_names != self.new_names


@dataclass
class PreviewRecord:
    """One reviewable row: only produced for entities that need a rename."""
    plan: RenamePlan
    old_path: Path
    new_path: Path
    groups: List[PreviewFileGroup] = field(default_factory=list)
    needs_rename: bool = True

    @property
    def renamer_problems(self) -> bool:
        return self.plan.renamer_problems

    @property
    def title(self) -> str:
        return self.plan.entity.display_name


@dataclass
class JournalEntry:
    seq: int
    op: JournalOp
    source: Path
    destination: Optional[Path] = None
    item_type: str = 'file' # 'file' | 'dir'


@dataclass
class AppliedPlan:
    """Append-only record of what an apply actually did; the input to undo."""
    batch_id: str
    old_path: Path
    new_path: Path
    entries: List[JournalEntry] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list) # non-fatal problems after the moves (cleanup, copies)

    def record(self, op: JournalOp, source: Path, destination: Optional[Path] = None, item_type: str = 'file') -> JournalEntry:
        entry = JournalEntry(seq=len(self.entries) + 1, op=op, source=source, destination=destination, item_type=item_type)
        self.entries.append(entry)
        return entry

    @property
    def moved_count(self) -> int:
        return sum(1 for e in self.entries if e.op == JournalOp.MOVE)


@dataclass
class UndoFailure:
    entry: JournalEntry
    reason: str


@dataclass
class UndoReport:
    batch_id: str
    reverted: List[JournalEntry] = field(default_factory=list)
    failures: List[UndoFailure] = field(default_factory=list)
    not_restorable: List[JournalEntry] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
