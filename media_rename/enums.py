# media_rename/enums.py
from enum import Enum, auto

class ProcessingStatus(Enum):
    """
    Represents the outcome of handling one entity during a preview/rename/undo pass.
    Used for standardized logging and the end-of-run summary.
    """
    SUCCESS = auto()
    SKIPPED = auto()

    # --- Planning Phase ---
    PATH_ALREADY_CORRECT = auto()       # Plan contains no move at all
    PLAN_COLLISION = auto()             # Destination shared with another entity (or inside the entity)
    PLAN_INVALID_GENERATED_NAME = auto()# Template resolved to an empty name, fell back to current name

    # --- Execution Phase ---
    FILE_OPERATION_ERROR = auto()       # Generic OS/shutil error during a move
    PARTIAL_APPLY = auto()              # Some moves of the entity done, then a failure
    UNDO_INTEGRITY_FAILURE = auto()     # Size/mtime mismatch before reverting a file

    # --- User Interaction ---
    USER_ABORTED_OPERATION = auto()
    CANCELLED = auto()                  # Preview cancelled between entities

    def __str__(self):
        return self.name.replace("_", " ").title()


class MediaFileType(Enum):
    VIDEO = auto()
    POSTER = auto()
    FANART = auto()
    BANNER = auto()
    CLEARART = auto()
    CLEARLOGO = auto()
    LOGO = auto()
    THUMB = auto()
    DISC = auto()
    NFO = auto()
    TRAILER = auto()
    SUBTITLE = auto()
    AUDIO = auto()
    EXTRA = auto()
    THEME = auto()
    SAMPLE = auto()
    SEASON_POSTER = auto()
    SEASON_FANART = auto()
    SEASON_BANNER = auto()
    TEXT = auto()
    UNKNOWN = auto()

    @classmethod
    def from_name(cls, value: str) -> "MediaFileType":
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            return cls.UNKNOWN

    @property
    def is_artwork(self) -> bool:
        return self in _ARTWORK_TYPES

    @property
    def artwork_suffix(self) -> str:
        # SEASON_POSTER -> "poster", CLEARLOGO -> "clearlogo"
        return self.name.split("_")[-1].lower()


_ARTWORK_TYPES = frozenset({
    MediaFileType.POSTER, MediaFileType.FANART, MediaFileType.BANNER, MediaFileType.CLEARART,
    MediaFileType.CLEARLOGO, MediaFileType.LOGO, MediaFileType.THUMB, MediaFileType.DISC,
    MediaFileType.SEASON_POSTER, MediaFileType.SEASON_FANART, MediaFileType.SEASON_BANNER,
})


class LayoutKind(Enum):
    SINGLE_FILE = auto()
    OPTICAL_BDMV = auto()
    OPTICAL_VIDEO_TS = auto()

    @property
    def is_optical(self) -> bool:
        return self is not LayoutKind.SINGLE_FILE


class JournalOp(Enum):
    MOVE = "move"
    MKDIR = "mkdir"
    RMDIR = "rmdir"
    TRASH = "trash"
    COPY = "copy"
