# media_rename/renamer_engine.py
import logging
import os
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from .enums import MediaFileType, LayoutKind, ProcessingStatus
from .exceptions import TemplateResolutionWarning
from .models import MediaEntity, MediaFile, RenamePlan, FileRenameEntry
from .tokens import TokenResolver
from .utils import (
    sanitize_relative_path, sanitize_filename_stem, is_optical_dir_name, detect_file_type,
    is_relative_to, matches_any_pattern, normalize_language, normalize_path_key,
)

log = logging.getLogger(__name__)

# Fixed basename of companion files placed directly inside the disc directory
OPTICAL_INDEX_NAMES = {LayoutKind.OPTICAL_BDMV: 'index', LayoutKind.OPTICAL_VIDEO_TS: 'VIDEO_TS'}
THEME_BASENAME = 'theme'
FOLDER_POSTER_BASENAME = 'folder'
DEFAULT_PRESERVED_SUBFOLDERS = ['extras', 'trailer', 'trailers']


def _disc_dir(entity: MediaEntity) -> Optional[Path]:
    video = entity.main_video()
    if video is None: return None
    if is_optical_dir_name(video.path.name): return video.path
    if is_optical_dir_name(video.path.parent.name): return video.path.parent
    return None

def classify_layout(entity: MediaEntity) -> LayoutKind:
    """SINGLE_FILE unless the main video is (or sits directly in) a BDMV / VIDEO_TS directory."""
    disc = _disc_dir(entity)
    if disc is None: return LayoutKind.SINGLE_FILE
    return LayoutKind.OPTICAL_BDMV if disc.name.lower() == 'bdmv' else LayoutKind.OPTICAL_VIDEO_TS


def _relative(path: Path, root: Path) -> Path:
    try:
        return path.relative_to(root)
    except ValueError:
        return Path(path.name)

def _with_ext(stem: str, mf: MediaFile) -> str:
    return f"{stem}.{mf.extension}" if mf.extension else stem

def _leaf_items(root: Path) -> List[Path]:
    """Files plus empty directories below root, sorted for stable plans."""
    leaves: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        if not dirnames and not filenames and current != root:
            leaves.append(current)
        leaves.extend(current / f for f in filenames)
    return sorted(leaves)


class RenamerEngine:
    def __init__(self, cfg_helper):
        self.cfg = cfg_helper
        self.resolver = TokenResolver(cfg_helper('first_character_number_replacement', '#') or '#')

    # --- Templates ---
    def _templates_for(self, entity: MediaEntity) -> Tuple[str, str]:
        if entity.is_episode:
            return self.cfg('episode_folder_format', ''), self.cfg('episode_file_format', '')
        return self.cfg('movie_folder_format', ''), self.cfg('movie_file_format', '')

    def _preserved_subfolders(self) -> Set[str]:
        names = self.cfg.get_list('preserved_subfolders', DEFAULT_PRESERVED_SUBFOLDERS)
        return {n.lower() for n in names}

    def _owns_folder(self, entity: MediaEntity, folder: Path, owned_paths: Set[str]) -> bool:
        """Movies alone in their folder move it as a whole; episodes and multi-movie folders only move owned files."""
        if entity.is_episode or entity.path.resolve() == entity.data_source.resolve():
            return False
        foreign = self._foreign_videos(folder, owned_paths)
        if foreign:
            names = ", ".join(p.name for p in foreign[:3])
            log.info(f"'{entity.display_name}' shares '{folder}' with other videos ({names}); only its own files move.")
            return False
        return True

    def _foreign_videos(self, folder: Path, owned_paths: Set[str]) -> List[Path]:
        foreign: List[Path] = []
        for leaf in _leaf_items(folder):
            if not leaf.is_file() or normalize_path_key(leaf) in owned_paths: continue
            rel = _relative(leaf, folder)
            if self._is_preserved(rel): continue
            if detect_file_type(leaf, rel.parts[:-1]) == MediaFileType.VIDEO:
                foreign.append(leaf)
        return foreign

    # --- Plan ---
    def plan_rename(self, entity: MediaEntity, folder_template: Optional[str] = None, filename_template: Optional[str] = None) -> RenamePlan:
        default_folder, default_file = self._templates_for(entity)
        folder_template = default_folder if folder_template is None else folder_template
        filename_template = default_file if filename_template is None else filename_template

        layout = classify_layout(entity)
        old_path = entity.path
        plan = RenamePlan(entity=entity, old_path=old_path, new_path=old_path, layout=layout)
        log.debug(f"Planning '{entity.display_name}' (layout: {layout.name})")

        plan.new_path = self._compute_new_path(entity, folder_template, plan)
        basename = self._compute_basename(entity, filename_template, plan)
        disc_dir = _disc_dir(entity)
        disc_rel = _relative(disc_dir, old_path) if disc_dir is not None else None

        owned_paths: Set[str] = set()
        for mf in entity.media_files:
            entry = self._plan_file(mf, plan, basename, disc_rel)
            plan.entries.append(entry)
            owned_paths.add(normalize_path_key(mf.path))
            if mf is entity.main_video() and entry.moves:
                plan.main_video_new_relative = entry.moves[0][1]
            elif mf is entity.main_video() and entry.root_item:
                plan.main_video_new_relative = entry.root_item[1]

        self._add_unowned_entries(entity, plan, disc_dir, owned_paths)
        self._drop_satisfied_extra_names(plan)
        self._mark_duplicates(plan)
        return plan

    def _compute_new_path(self, entity: MediaEntity, folder_template: str, plan: RenamePlan) -> Path:
        if not folder_template or not folder_template.strip():
            return entity.path
        warnings: List[TemplateResolutionWarning] = []
        raw = self.resolver.resolve(folder_template, entity, warnings)
        plan.warnings.extend(warnings)
        rel, changes = sanitize_relative_path(raw, context='folder')
        plan.sanitization_changes.extend(changes)
        if rel is None:
            log.warning(f"[{ProcessingStatus.PLAN_INVALID_GENERATED_NAME}] Folder template '{folder_template}' resolved to nothing for '{entity.display_name}'; keeping '{entity.path}'.")
            plan.warnings.append(TemplateResolutionWarning(f"[{ProcessingStatus.PLAN_INVALID_GENERATED_NAME}] Folder template resolved to an empty path; keeping current folder."))
            return entity.path
        return entity.data_source / rel

    def _compute_basename(self, entity: MediaEntity, filename_template: str, plan: RenamePlan) -> str:
        video = entity.main_video()
        current = video.path.stem if video is not None else entity.path.name
        if plan.layout.is_optical:
            return OPTICAL_INDEX_NAMES[plan.layout]
        if not filename_template or not filename_template.strip():
            return current
        warnings: List[TemplateResolutionWarning] = []
        raw = self.resolver.resolve(filename_template, entity, warnings)
        plan.warnings.extend(warnings)
        stem, changes = sanitize_filename_stem(raw)
        plan.sanitization_changes.extend(changes)
        if not stem:
            log.warning(f"[{ProcessingStatus.PLAN_INVALID_GENERATED_NAME}] Filename template '{filename_template}' resolved to nothing for '{entity.display_name}'; keeping '{current}'.")
            plan.warnings.append(TemplateResolutionWarning(f"[{ProcessingStatus.PLAN_INVALID_GENERATED_NAME}] Filename template resolved to an empty name; keeping current name."))
            return current
        return stem

    def _is_preserved(self, old_rel: Path) -> bool:
        folders = [p.lower() for p in old_rel.parts[:-1]]
        return bool(folders) and folders[0] in self._preserved_subfolders()

    def _plan_file(self, mf: MediaFile, plan: RenamePlan, basename: str, disc_rel: Optional[Path]) -> FileRenameEntry:
        old_rel = _relative(mf.path, plan.old_path)
        entry = FileRenameEntry(file_type=mf.file_type, media_file=mf)

        if mf.file_type == MediaFileType.EXTRA or self._is_preserved(old_rel):
            entry.moves.append((old_rel, old_rel))
            return entry

        folder_poster = self._folder_poster_name(mf)
        if folder_poster is not None and mf.path.stem.lower() == FOLDER_POSTER_BASENAME and len(plan.entity.files_of_type(MediaFileType.POSTER)) > 1:
            # copy left by an earlier run next to the real poster
            entry.moves.append((old_rel, folder_poster))
            return entry

        if plan.layout.is_optical:
            if mf.file_type == MediaFileType.VIDEO and disc_rel is not None and (old_rel == disc_rel or is_relative_to(old_rel, disc_rel)):
                # the disc tree itself; leaves are added from disk afterwards
                entry.root_item = (disc_rel, disc_rel)
                if old_rel != disc_rel:
                    entry.moves.append((old_rel, old_rel))
                return entry
            if disc_rel is not None and is_relative_to(old_rel, disc_rel) and len(old_rel.parts) > len(disc_rel.parts) + 1:
                entry.moves.append((old_rel, old_rel)) # nested disc content, e.g. BDMV/STREAM/...
                return entry
            new_rel = self._optical_placement(mf, basename, disc_rel, old_rel)
        else:
            new_rel = self._single_file_placement(mf, basename, old_rel)
        entry.moves.append((old_rel, new_rel))
        if folder_poster is not None and folder_poster != new_rel:
            entry.extra_names.append(folder_poster)
        return entry

    def _folder_poster_name(self, mf: MediaFile) -> Optional[Path]:
        if mf.file_type != MediaFileType.POSTER or not self.cfg('poster_folder_naming', False):
            return None
        return Path(_with_ext(FOLDER_POSTER_BASENAME, mf))

    def _single_file_placement(self, mf: MediaFile, basename: str, old_rel: Path) -> Path:
        ft = mf.file_type
        if ft == MediaFileType.VIDEO:
            stem = f"{basename} {mf.stacking}" if mf.stacking else basename
            return Path(_with_ext(stem, mf))
        if ft.is_artwork:
            return Path(_with_ext(f"{basename}-{ft.artwork_suffix}", mf))
        if ft == MediaFileType.NFO:
            return Path(f"{basename}.nfo")
        if ft == MediaFileType.TRAILER:
            return Path(_with_ext(f"{basename}-trailer", mf))
        if ft == MediaFileType.SAMPLE:
            return Path(_with_ext(f"{basename}-sample", mf))
        if ft == MediaFileType.SUBTITLE:
            return Path(_with_ext(self._subtitle_stem(mf, basename), mf))
        if ft == MediaFileType.THEME:
            return Path(_with_ext(THEME_BASENAME, mf))
        return old_rel

    def _optical_placement(self, mf: MediaFile, index_name: str, disc_rel: Optional[Path], old_rel: Path) -> Path:
        ft = mf.file_type
        disc = disc_rel if disc_rel is not None else Path()
        if ft.is_artwork:
            return Path(_with_ext(ft.artwork_suffix, mf))
        if ft == MediaFileType.NFO:
            return disc / f"{index_name}.nfo"
        if ft == MediaFileType.TRAILER:
            return disc / _with_ext(f"{index_name}-trailer", mf)
        if ft == MediaFileType.SUBTITLE:
            return disc / _with_ext(self._subtitle_stem(mf, index_name), mf)
        if ft == MediaFileType.THEME:
            return Path(_with_ext(THEME_BASENAME, mf))
        return old_rel

    def _subtitle_stem(self, mf: MediaFile, basename: str) -> str:
        stem = basename
        lang = normalize_language(mf.language) if mf.language else ""
        if lang: stem += f".{lang}"
        if mf.forced: stem += ".forced"
        return stem

    # --- On-disk content not described by media files ---
    def _add_unowned_entries(self, entity: MediaEntity, plan: RenamePlan, disc_dir: Optional[Path], owned_paths: Set[str]):
        if disc_dir is not None and disc_dir.is_dir():
            disc_entry = next((e for e in plan.entries if e.root_item is not None), None)
            if disc_entry is not None:
                for leaf in _leaf_items(disc_dir):
                    key = normalize_path_key(leaf)
                    if key in owned_paths: continue
                    rel = _relative(leaf, plan.old_path)
                    disc_entry.moves.append((rel, rel))
                    owned_paths.add(key)

        if not plan.old_path.is_dir() or not self._owns_folder(entity, plan.old_path, owned_paths):
            return

        cleanup = bool(self.cfg('cleanup_unwanted', False))
        patterns = self.cfg.get_list('unwanted_patterns', None)
        leftovers = FileRenameEntry(file_type=MediaFileType.UNKNOWN)
        for leaf in _leaf_items(plan.old_path):
            key = normalize_path_key(leaf)
            if key in owned_paths: continue
            rel = _relative(leaf, plan.old_path)
            if cleanup and leaf.is_file() and len(rel.parts) == 1 and matches_any_pattern(leaf.name, patterns):
                plan.unwanted_files.append(leaf)
                continue
            leftovers.moves.append((rel, rel))
        if leftovers.moves:
            plan.entries.append(leftovers)

    def _drop_satisfied_extra_names(self, plan: RenamePlan):
        """An extra name that another planned file already lands on (e.g. folder.jpg from an earlier run) needs no copy."""
        taken = {normalize_path_key(new_rel) for entry in plan.entries for _, new_rel in entry.moves}
        for entry in plan.entries:
            kept = [name for name in entry.extra_names if normalize_path_key(name) not in taken]
            for name in entry.extra_names:
                if name not in kept: log.debug(f"'{name}' already exists for '{plan.entity.display_name}'; no copy planned.")
            entry.extra_names = kept

    def _mark_duplicates(self, plan: RenamePlan):
        by_target: Dict[str, List[FileRenameEntry]] = defaultdict(list)
        for entry in plan.entries:
            for new_rel in entry.new_targets:
                by_target[normalize_path_key(new_rel)].append(entry)
        for target, entries in by_target.items():
            if len(entries) < 2: continue
            for entry in entries:
                entry.duplicate = True
            plan.flag_problem(f"{len(entries)} files of '{plan.entity.display_name}' would be renamed to '{target}'.")
            log.warning(f"Duplicate destination '{target}' inside plan for '{plan.entity.display_name}'.")
