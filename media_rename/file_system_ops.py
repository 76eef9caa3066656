# media_rename/file_system_ops.py
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

import send2trash

from .enums import JournalOp
from .exceptions import CollisionConflict, PartialApplyFailure
from .models import RenamePlan, AppliedPlan, JournalEntry, UndoReport, UndoFailure
from .utils import is_relative_to, normalize_path_key

log = logging.getLogger(__name__)
TEMP_SUFFIX_PREFIX = ".renametmp_"


def _move(src: Path, dst: Path):
    try:
        os.rename(str(src), str(dst))
    except OSError as e:
        log.debug(f"os.rename failed ('{e}'), attempting shutil.move for '{src.name}' -> '{dst.name}'")
        shutil.move(str(src), str(dst))

def _exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()

def _item_type(path: Path) -> str:
    return 'dir' if path.is_dir() and not path.is_symlink() else 'file'

def _same_item(a: Path, b: Path) -> bool:
    try:
        return os.path.samefile(a, b)
    except OSError:
        return False

def temp_path_for(target: Path, temp_suffix_prefix: str = TEMP_SUFFIX_PREFIX) -> Path:
    while True:
        candidate = target.parent / f"{target.stem}{temp_suffix_prefix}{uuid.uuid4().hex[:8]}{target.suffix}"
        if not _exists(candidate):
            return candidate


def revert_entry(entry: JournalEntry) -> Optional[str]:
    """Reverts one journal entry. Returns None on success, otherwise the reason it could not be reverted."""
    try:
        if entry.op == JournalOp.MOVE:
            current, original = entry.destination, entry.source
            if current is None or not _exists(current):
                return f"Moved item '{current}' no longer exists."
            if _exists(original) and not _same_item(current, original):
                return f"Original location '{original}' is occupied."
            original.parent.mkdir(parents=True, exist_ok=True)
            _move(current, original)
            log.debug(f"Reverted move '{current}' -> '{original}'")
            return None
        if entry.op == JournalOp.MKDIR:
            created = entry.source
            if not _exists(created):
                log.debug(f"Created directory '{created}' already gone.")
                return None
            if not created.is_dir():
                return f"'{created}' is no longer a directory."
            if any(created.iterdir()):
                return f"Directory '{created}' is not empty."
            created.rmdir()
            log.debug(f"Removed created directory '{created}'")
            return None
        if entry.op == JournalOp.RMDIR:
            entry.source.mkdir(parents=True, exist_ok=True)
            log.debug(f"Recreated directory '{entry.source}'")
            return None
        if entry.op == JournalOp.COPY:
            copy = entry.destination
            if copy is None or not _exists(copy):
                log.debug(f"Copy '{copy}' already gone.")
                return None
            if copy.is_dir():
                return f"'{copy}' is no longer a file."
            copy.unlink()
            log.debug(f"Removed copy '{copy}'")
            return None
        return f"Operation '{entry.op.value}' cannot be reverted."
    except OSError as e:
        return f"{type(e).__name__}: {e}"


def revert_journal(batch_id: str, entries: List[JournalEntry]) -> UndoReport:
    """Replays `entries` newest first. Failures are collected per entry; the replay never stops early."""
    report = UndoReport(batch_id=batch_id)
    for entry in sorted(entries, key=lambda e: e.seq, reverse=True):
        if entry.op == JournalOp.TRASH:
            log.warning(f"'{entry.source}' was sent to the trash and cannot be restored automatically.")
            report.not_restorable.append(entry)
            continue
        reason = revert_entry(entry)
        if reason is None:
            report.reverted.append(entry)
        else:
            log.error(f"Undo failed for #{entry.seq} ({entry.op.value} '{entry.source}'): {reason}")
            report.failures.append(UndoFailure(entry=entry, reason=reason))
    return report


class FileSystemExecutor:
    """
    Applies RenamePlans to disk and reverts them. Every operation is journaled into an
    AppliedPlan (and into the undo log when an UndoManager is given) right after it happened.
    """
    def __init__(self, cfg_helper, undo_manager=None):
        self.cfg = cfg_helper
        self.undo_manager = undo_manager
        self.temp_suffix_prefix = cfg_helper('temp_file_suffix_prefix', TEMP_SUFFIX_PREFIX) or TEMP_SUFFIX_PREFIX

    # --- Journal ---
    def _record(self, applied: AppliedPlan, op: JournalOp, source: Path, destination: Optional[Path] = None, item_type: str = 'file') -> JournalEntry:
        entry = applied.record(op, source, destination, item_type)
        if self.undo_manager is not None and self.undo_manager.is_enabled:
            if not self.undo_manager.log_action(applied.batch_id, entry):
                log.error(f"Operation #{entry.seq} done, but FAILED to write it to the undo log: {op.value} '{source}'")
        return entry

    # --- Apply ---
    def apply(self, plan: RenamePlan) -> AppliedPlan:
        if plan.renamer_problems:
            raise CollisionConflict(plan, f"Refusing to apply plan for '{plan.entity.display_name}': " + "; ".join(plan.problem_messages))

        applied = AppliedPlan(batch_id=plan.batch_id, old_path=plan.old_path, new_path=plan.new_path)
        log.info(f"Applying plan for '{plan.entity.display_name}' (batch {plan.batch_id}): '{plan.old_path}' -> '{plan.new_path}'")

        for unwanted in plan.unwanted_files:
            self._trash_unwanted(plan, applied, unwanted)

        pending = list(plan.iter_moves())
        self._run_moves(plan, applied, pending)
        self._run_copies(plan, applied)
        self._remove_empty_sources(plan, applied, [src for src, _ in plan.iter_moves()])
        log.info(f"Applied plan for '{plan.entity.display_name}': {applied.moved_count} move(s), {len(applied.entries)} operation(s).")
        return applied

    def _warn(self, applied: AppliedPlan, message: str):
        log.warning(message)
        applied.warnings.append(message)

    def _trash_unwanted(self, plan: RenamePlan, applied: AppliedPlan, path: Path):
        if not _exists(path):
            log.warning(f"Cannot trash non-existent file: '{path}'. Skipping.")
            return
        item_type = _item_type(path)
        try:
            send2trash.send2trash(str(path))
        except OSError as e:
            raise PartialApplyFailure(plan, applied, path, None, e) from e
        self._record(applied, JournalOp.TRASH, path, item_type=item_type)
        log.info(f"Trashed unwanted file '{path}'")

    def _run_moves(self, plan: RenamePlan, applied: AppliedPlan, pending: List[Tuple[Path, Path]]):
        while pending:
            progressed = False
            for move in list(pending):
                src, dst = move
                if self._waits_for_pending_source(src, dst, pending):
                    continue
                self._move_one(plan, applied, src, dst)
                pending.remove(move)
                progressed = True
            if not progressed:
                # every destination is still occupied by another pending source: a cycle
                src, dst = pending[0]
                parked = temp_path_for(src, self.temp_suffix_prefix)
                log.debug(f"Breaking move cycle: parking '{src}' as '{parked.name}'")
                self._do_move(plan, applied, src, parked)
                pending[0] = (parked, dst)

    def _waits_for_pending_source(self, src: Path, dst: Path, pending: List[Tuple[Path, Path]]) -> bool:
        if not _exists(dst) or _same_item(src, dst):
            return False
        dst_key = normalize_path_key(dst)
        return any(normalize_path_key(other) == dst_key for other, _ in pending if other != src)

    def _move_one(self, plan: RenamePlan, applied: AppliedPlan, src: Path, dst: Path):
        if _exists(dst):
            if _same_item(src, dst):
                # case-only rename on a case-insensitive filesystem
                parked = temp_path_for(dst, self.temp_suffix_prefix)
                self._do_move(plan, applied, src, parked)
                self._do_move(plan, applied, parked, dst)
                return
            if not self.cfg('allow_overwrite', False):
                raise PartialApplyFailure(plan, applied, src, dst, FileExistsError(f"Destination '{dst}' already exists."))
            log.warning(f"Overwriting existing destination (allow_overwrite): '{dst}' is sent to the trash.")
            item_type = _item_type(dst)
            try:
                send2trash.send2trash(str(dst))
            except OSError as e:
                raise PartialApplyFailure(plan, applied, src, dst, e) from e
            self._record(applied, JournalOp.TRASH, dst, item_type=item_type)
        self._do_move(plan, applied, src, dst)

    def _do_move(self, plan: RenamePlan, applied: AppliedPlan, src: Path, dst: Path):
        try:
            self._ensure_directory(applied, dst.parent)
            item_type = _item_type(src)
            _move(src, dst)
        except OSError as e:
            raise PartialApplyFailure(plan, applied, src, dst, e) from e
        self._record(applied, JournalOp.MOVE, src, dst, item_type)
        log.debug(f"Moved '{src}' -> '{dst}'")

    def _run_copies(self, plan: RenamePlan, applied: AppliedPlan):
        for src, dst in plan.iter_copies():
            if _exists(dst):
                self._warn(applied, f"Not copying '{src.name}' to '{dst}': destination already exists.")
                continue
            if not src.is_file():
                self._warn(applied, f"Not copying '{src}' to '{dst.name}': source is missing.")
                continue
            try:
                self._ensure_directory(applied, dst.parent)
                shutil.copy2(str(src), str(dst))
            except OSError as e:
                raise PartialApplyFailure(plan, applied, src, dst, e) from e
            self._record(applied, JournalOp.COPY, src, dst)
            log.debug(f"Copied '{src}' -> '{dst}'")

    def _ensure_directory(self, applied: AppliedPlan, directory: Path):
        missing: List[Path] = []
        current = directory
        while not current.exists() and current != current.parent:
            missing.append(current)
            current = current.parent
        for folder in reversed(missing):
            folder.mkdir()
            self._record(applied, JournalOp.MKDIR, folder, item_type='dir')
            log.debug(f"Created directory '{folder}'")

    def _remove_empty_sources(self, plan: RenamePlan, applied: AppliedPlan, sources: List[Path]):
        root = plan.entity.data_source
        candidates = {src.parent for src in sources}
        if plan.old_path != plan.new_path:
            candidates.add(plan.old_path)
        for folder in sorted(candidates, key=lambda p: len(p.parts), reverse=True):
            current = folder
            while current != root and is_relative_to(current, root):
                if not current.is_dir() or any(current.iterdir()):
                    break
                try:
                    current.rmdir()
                except OSError as e:
                    # every move is done; a folder left behind does not fail the entity
                    self._warn(applied, f"Could not remove emptied folder '{current}': {e}")
                    break
                self._record(applied, JournalOp.RMDIR, current, item_type='dir')
                log.debug(f"Removed empty source directory '{current}'")
                current = current.parent

    # --- Undo ---
    def undo(self, applied: AppliedPlan) -> UndoReport:
        log.info(f"Undoing batch {applied.batch_id}: {len(applied.entries)} operation(s) to revert.")
        report = revert_journal(applied.batch_id, applied.entries)
        if self.undo_manager is not None and self.undo_manager.is_enabled:
            self.undo_manager.mark_reverted(applied.batch_id, report.reverted)
        log.info(f"Undo of batch {applied.batch_id}: {len(report.reverted)} reverted, {len(report.failures)} failed, {len(report.not_restorable)} not restorable.")
        return report
