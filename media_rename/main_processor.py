# media_rename/main_processor.py
import asyncio
import logging
import threading
import uuid
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Tuple

from rich.console import Console
from rich.prompt import Confirm

from .enums import ProcessingStatus
from .exceptions import CollisionConflict, PartialApplyFailure, UserAbortError
from .file_system_ops import FileSystemExecutor
from .library_loader import LibraryLoader
from .models import MediaEntity, RenamePlan, PreviewRecord
from .preview import scan_entities, build_records, PreviewScan
from .renamer_engine import RenamerEngine
from .ui_utils import make_progress, render_preview_table, render_summary, short_name, print_stderr

log = logging.getLogger(__name__)


class MainProcessor:
    def __init__(self, args, cfg_helper, undo_manager=None):
        self.args = args
        self.cfg = cfg_helper
        self.undo_manager = undo_manager
        self.quiet = bool(getattr(args, 'quiet', False))
        self.console = Console(quiet=self.quiet)
        self.engine = RenamerEngine(cfg_helper)
        self.executor = FileSystemExecutor(cfg_helper, undo_manager)
        self.cancel_event = threading.Event()
        self.outcomes: List[Tuple[RenamePlan, ProcessingStatus, str]] = []

    # --- Loading & Planning ---
    def load_entities(self) -> List[MediaEntity]:
        return LibraryLoader(self.cfg, Path(self.args.manifest)).load()

    def _scan(self, entities: List[MediaEntity]) -> PreviewScan:
        with make_progress(self.console, disable=self.quiet) as progress:
            task = progress.add_task("Planning", total=len(entities), item_name="")
            def on_progress(done: int, total: int, entity: MediaEntity):
                progress.update(task, completed=done, item_name=short_name(entity.display_name))
            return scan_entities(entities, self.engine, self.cancel_event, on_progress)

    async def plan_all(self, entities: List[MediaEntity]) -> PreviewScan:
        scan = await asyncio.to_thread(self._scan, entities)
        if scan.cancelled:
            self.console.print(f"[yellow][{ProcessingStatus.CANCELLED}] Planning cancelled after {len(scan.plans)} of {len(entities)} entities.[/yellow]")
        return scan

    # --- Preview ---
    async def run_preview(self) -> List[PreviewRecord]:
        entities = self.load_entities()
        scan = await self.plan_all(entities)
        records = build_records(scan.plans)
        if not records:
            self.console.print(f"[green][{ProcessingStatus.PATH_ALREADY_CORRECT}] All {len(scan.plans)} entities are already named correctly.[/green]")
            return records
        render_preview_table(self.console, records)
        problems = sum(1 for r in records if r.renamer_problems)
        self.console.print(f"{len(records)} of {len(scan.plans)} entities need a rename" + (f", [bold red]{problems} with problems[/bold red]." if problems else "."))
        return records

    # --- Rename ---
    def _confirm_live_run(self, actionable: int) -> bool:
        if getattr(self.args, 'yes', False):
            log.info("Live run confirmed by --yes.")
            return True
        if self.quiet:
            log.info("Quiet mode without --yes: live run NOT confirmed.")
            return False
        self.console.print("-" * 30)
        self.console.print(f"{actionable} entities will be renamed/moved.")
        self.console.print("[bold red]THIS IS A LIVE RUN.[/bold red]")
        if self.undo_manager is not None and self.undo_manager.is_enabled: self.console.print("Undo logging is [green]ENABLED[/green].")
        else: self.console.print("Undo logging is [yellow]DISABLED[/yellow].")
        self.console.print("-" * 30)
        try:
            if Confirm.ask("Proceed with actions?", default=False, console=self.console):
                log.info("User confirmed live run.")
                return True
            log.info("User aborted live run.")
            self.console.print("Operation cancelled by user.")
            return False
        except EOFError:
            log.warning("Live run confirmation aborted (EOF).")
            print_stderr("\nOperation cancelled by user.")
            return False

    def _apply_plan(self, plan: RenamePlan) -> Tuple[ProcessingStatus, str]:
        name = plan.entity.display_name
        try:
            applied = self.executor.apply(plan)
        except CollisionConflict as e:
            return ProcessingStatus.PLAN_COLLISION, str(e)
        except PartialApplyFailure as e:
            log.error(f"Apply of '{name}' stopped: {e}")
            status = ProcessingStatus.PARTIAL_APPLY if e.applied.entries else ProcessingStatus.FILE_OPERATION_ERROR
            return status, str(e)
        message = f"'{plan.old_path}' -> '{plan.new_path}' ({applied.moved_count} moves)"
        if applied.warnings:
            message += f" with {len(applied.warnings)} warning(s): " + "; ".join(applied.warnings)
        return ProcessingStatus.SUCCESS, message

    async def run_rename(self) -> Dict[ProcessingStatus, int]:
        live = bool(getattr(self.args, 'live', False))
        entities = self.load_entities()
        scan = await self.plan_all(entities)
        records = build_records(scan.plans)
        counts: Counter = Counter()

        if records:
            render_preview_table(self.console, records)
        for plan in scan.plans:
            if not plan.needs_rename:
                counts[ProcessingStatus.PATH_ALREADY_CORRECT] += 1

        actionable = [r.plan for r in records if not r.renamer_problems]
        for record in records:
            if record.renamer_problems:
                counts[ProcessingStatus.PLAN_COLLISION] += 1
                self.outcomes.append((record.plan, ProcessingStatus.PLAN_COLLISION, "; ".join(record.plan.problem_messages)))

        if not live:
            self.console.print(f"\n[bold]DRY RUN[/bold]: {len(actionable)} entities would be renamed. Use --live to apply.")
            counts[ProcessingStatus.SKIPPED] += len(actionable)
            render_summary(self.console, counts, title="Dry Run Summary")
            return dict(counts)
        if not actionable:
            self.console.print(f"[yellow][{ProcessingStatus.SKIPPED}] Nothing to rename.[/yellow]")
            render_summary(self.console, counts)
            return dict(counts)
        if not self._confirm_live_run(len(actionable)):
            raise UserAbortError(f"[{ProcessingStatus.USER_ABORTED_OPERATION}] Live run cancelled by user.")

        run_batch_id = f"run-{datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}"
        log.info(f"Starting live run {run_batch_id} for {len(actionable)} entities.")
        with make_progress(self.console, disable=self.quiet) as progress:
            task = progress.add_task("Renaming", total=len(actionable), item_name="")
            for plan in actionable:
                plan.batch_id = run_batch_id
                progress.update(task, item_name=short_name(plan.entity.display_name))
                status, message = await asyncio.to_thread(self._apply_plan, plan)
                counts[status] += 1
                self.outcomes.append((plan, status, message))
                if status == ProcessingStatus.SUCCESS and "warning(s):" in message:
                    print_stderr(f"[yellow][{status}] {plan.entity.display_name}:[/yellow] {message}")
                elif status == ProcessingStatus.SUCCESS:
                    log.info(f"[{status}] {plan.entity.display_name}: {message}")
                else:
                    print_stderr(f"[bold red][{status}] {plan.entity.display_name}:[/bold red] {message}")
                progress.advance(task)

        render_summary(self.console, counts)
        if self.undo_manager is not None and self.undo_manager.is_enabled and counts[ProcessingStatus.SUCCESS] + counts[ProcessingStatus.PARTIAL_APPLY]:
            self.console.print(f"Undo with: [cyan]media-rename undo {run_batch_id}[/cyan]")
        return dict(counts)

    @staticmethod
    def has_failures(counts: Dict[ProcessingStatus, int]) -> bool:
        failing = (ProcessingStatus.PARTIAL_APPLY, ProcessingStatus.FILE_OPERATION_ERROR, ProcessingStatus.PLAN_COLLISION)
        return any(counts.get(status, 0) for status in failing)
