# media_rename/undo_manager.py
import sqlite3
import logging
from pathlib import Path
from datetime import datetime, timezone, timedelta
from typing import Optional, Tuple, List, Dict, Any

import platformdirs
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from .enums import JournalOp, ProcessingStatus
from .models import JournalEntry, UndoReport, UndoFailure
from .file_system_ops import revert_entry

log = logging.getLogger(__name__)
APP_NAME = "media_rename"
MTIME_TOLERANCE = 1.0


class UndoManager:
    """
    Persists apply journals in a SQLite `rename_log` table so a batch can be reverted
    in a later session. One row per journal operation; rows move from 'applied' to
    'reverted' once undone.
    """
    def __init__(self, cfg_helper, quiet_mode: bool = False, console_instance: Optional[Console] = None):
        self.cfg = cfg_helper
        self.db_path: Optional[Path] = None
        self.is_enabled: bool = False
        self.check_integrity: bool = False
        self.quiet_mode = quiet_mode
        self.console = console_instance if console_instance else Console(quiet=quiet_mode)
        self.err_console = Console(stderr=True)

        self.is_enabled = bool(self.cfg('enable_undo', False))
        if not self.is_enabled:
            log.info("Undo feature disabled by configuration.")
            return
        self.db_path = self._resolve_db_path()
        if self.db_path:
            self._init_db()
        else:
            self.is_enabled = False
            log.error("UndoManager: DB path not resolved, disabling undo.")
        if self.is_enabled:
            self.check_integrity = bool(self.cfg('undo_check_integrity', False))
            log.info(f"UndoManager initialized (DB: {self.db_path}, Integrity: {self.check_integrity})")

    def _resolve_db_path(self) -> Optional[Path]:
        db_path_config = self.cfg('undo_db_path', None)
        try:
            if db_path_config:
                path = Path(db_path_config).expanduser().resolve()
            else:
                path = Path(platformdirs.user_data_dir(APP_NAME, appauthor=False)) / "rename_log.db"
            path.parent.mkdir(parents=True, exist_ok=True)
            return path
        except OSError as e:
            log.error(f"Cannot resolve or create undo database path: {e}")
            return None

    def _connect(self) -> Optional[sqlite3.Connection]:
        if not self.db_path:
            log.error("Cannot connect to undo database: path not resolved or invalid.")
            return None
        try:
            conn = sqlite3.connect(self.db_path, timeout=10.0)
            conn.row_factory = sqlite3.Row
            try: conn.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.Error as pe: log.warning(f"Could not set PRAGMA journal_mode=WAL for undo DB ({self.db_path}): {pe}")
            try: conn.execute("PRAGMA busy_timeout=5000;")
            except sqlite3.Error as pe: log.warning(f"Could not set PRAGMA busy_timeout=5000 for undo DB ({self.db_path}): {pe}")
            return conn
        except sqlite3.Error as e:
            log.error(f"Cannot connect to undo database '{self.db_path}': {e}")
            return None

    def _init_db(self):
        conn = self._connect()
        if not conn:
            self.is_enabled = False
            log.error("UndoManager: Database connection failed during init. Disabling undo.")
            return
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS rename_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT, batch_id TEXT NOT NULL, seq INTEGER NOT NULL, timestamp TEXT NOT NULL,
                    op TEXT CHECK(op IN ('move', 'mkdir', 'rmdir', 'trash', 'copy')) NOT NULL,
                    source TEXT NOT NULL, destination TEXT NULL, type TEXT CHECK(type IN ('file', 'dir')) NOT NULL,
                    status TEXT CHECK(status IN ('applied', 'reverted', 'not_restorable')) NOT NULL,
                    original_size INTEGER, original_mtime REAL
                )""")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_batch_id ON rename_log(batch_id)")
            conn.commit()
        except sqlite3.Error as e:
            log.error(f"Failed to initialize undo database schema: {e}")
            self.is_enabled = False
        finally:
            conn.close()

    # --- Writing ---
    def log_action(self, batch_id: str, entry: JournalEntry) -> bool:
        """Stores one journal entry. Moved files get their size/mtime recorded for the integrity check."""
        if not self.is_enabled: return False

        original_size: Optional[int] = None
        original_mtime: Optional[float] = None
        if entry.op == JournalOp.MOVE and entry.item_type == 'file' and entry.destination is not None:
            try:
                stat_info = entry.destination.stat()
                original_size, original_mtime = stat_info.st_size, stat_info.st_mtime
            except OSError as e:
                log.warning(f"Could not stat moved file for log_action '{entry.destination}': {e}")

        conn = self._connect()
        if not conn: return False
        try:
            conn.execute(
                "INSERT INTO rename_log (batch_id, seq, timestamp, op, source, destination, type, status, original_size, original_mtime) VALUES (?, ?, ?, ?, ?, ?, ?, 'applied', ?, ?)",
                (batch_id, entry.seq, datetime.now(timezone.utc).isoformat(), entry.op.value, str(entry.source),
                 str(entry.destination) if entry.destination is not None else None, entry.item_type, original_size, original_mtime)
            )
            conn.commit()
            log.debug(f"Logged {entry.op.value} #{entry.seq} for '{entry.source}' (batch '{batch_id}').")
            return True
        except sqlite3.Error as e:
            log.error(f"DB error log_action for '{entry.source}' ('{batch_id}'): {e}")
            return False
        finally:
            conn.close()

    def _update_row_status(self, row_id: int, new_status: str, conn: sqlite3.Connection) -> bool:
        cursor = conn.execute("UPDATE rename_log SET status = ? WHERE id = ?", (new_status, row_id))
        return cursor.rowcount > 0

    def mark_reverted(self, batch_id: str, entries: List[JournalEntry]) -> int:
        """Marks entries reverted outside of perform_undo (e.g. by FileSystemExecutor.undo)."""
        if not self.is_enabled or not entries: return 0
        conn = self._connect()
        if not conn: return 0
        updated = 0
        try:
            for entry in entries:
                cursor = conn.execute(
                    "UPDATE rename_log SET status = 'reverted' WHERE batch_id = ? AND op = ? AND source = ? AND destination IS ? AND status = 'applied'",
                    (batch_id, entry.op.value, str(entry.source), str(entry.destination) if entry.destination is not None else None)
                )
                updated += cursor.rowcount
            conn.commit()
        except sqlite3.Error as e:
            log.error(f"Failed marking undo entries reverted for batch '{batch_id}': {e}")
        finally:
            conn.close()
        return updated

    def prune_old_batches(self) -> int:
        if not self.is_enabled: return 0

        expire_days_cfg = self.cfg('undo_expire_days', 30)
        try:
            expire_days = int(expire_days_cfg if expire_days_cfg is not None else 30)
        except (ValueError, TypeError):
            log.warning(f"Invalid 'undo_expire_days' ('{expire_days_cfg}'). Defaulting to 30.")
            expire_days = 30
        if expire_days < 0:
            log.info("Undo expiration days set to -1 (forever). Skipping prune.")
            return 0

        cutoff_iso = (datetime.now(timezone.utc) - timedelta(days=expire_days)).isoformat()
        log.debug(f"Pruning undo records older than {cutoff_iso} ({expire_days} days)")
        conn = self._connect()
        if not conn: return 0
        try:
            cur = conn.execute("DELETE FROM rename_log WHERE timestamp < ?", (cutoff_iso,))
            deleted_rows = cur.rowcount if cur else 0
            conn.commit()
            if deleted_rows > 0: log.info(f"Pruned {deleted_rows} old undo log records.")
            else: log.debug("No expired entries found to prune.")
            return deleted_rows
        except sqlite3.Error as e:
            log.error(f"Error during undo log pruning: {e}")
            return 0
        finally:
            conn.close()

    # --- Reading ---
    def list_batches(self) -> List[Dict[str, Any]]:
        if not self.is_enabled or not self.db_path or not self.db_path.exists():
            log.error("Cannot list batches: Undo disabled or DB not found.")
            return []
        query = """
            SELECT batch_id, MIN(timestamp) as first_timestamp, MAX(timestamp) as last_timestamp, COUNT(*) as action_count,
                   SUM(CASE WHEN status = 'applied' THEN 1 ELSE 0 END) as revertible_count
            FROM rename_log
            GROUP BY batch_id
            ORDER BY last_timestamp DESC
        """
        conn = self._connect()
        if not conn: return []
        try:
            batches = [dict(row) for row in conn.execute(query).fetchall()]
            log.info(f"Found {len(batches)} batches in undo log.")
            return batches
        except sqlite3.Error as e:
            log.error(f"Database error listing undo batches: {e}")
            return []
        finally:
            conn.close()

    def _fetch_undo_actions_from_db(self, batch_id: str, conn: sqlite3.Connection) -> List[sqlite3.Row]:
        cursor = conn.execute("SELECT * FROM rename_log WHERE batch_id = ? AND status = 'applied' ORDER BY id DESC", (batch_id,))
        return cursor.fetchall()

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> JournalEntry:
        return JournalEntry(
            seq=row['seq'], op=JournalOp(row['op']), source=Path(row['source']),
            destination=Path(row['destination']) if row['destination'] else None, item_type=row['type'],
        )

    def _check_file_integrity(self, current_path: Path, logged_size: Optional[int], logged_mtime: Optional[float]) -> Tuple[bool, str]:
        if not self.check_integrity:
            return True, "Skipped (Check Disabled)"
        if logged_size is None and logged_mtime is None:
            return True, "Skipped (no stats logged)"
        try:
            current_stat = current_path.stat()
        except OSError as e:
            return False, f"FAIL (Cannot stat: {e})"

        reasons: List[str] = []
        if logged_size is not None and current_stat.st_size != logged_size:
            reasons.append(f"Size ({current_stat.st_size} != {logged_size})")
        if logged_mtime is not None and abs(current_stat.st_mtime - logged_mtime) >= MTIME_TOLERANCE:
            reasons.append(f"MTime ({current_stat.st_mtime:.2f} !~= {logged_mtime:.2f})")
        return (True, "OK") if not reasons else (False, f"FAIL ({', '.join(reasons)})")

    # --- Undo ---
    def _display_undo_preview_table(self, actions: List[sqlite3.Row], batch_id: str):
        self.console.print("Operations to be reverted (newest first):")
        preview_table = Table(title=f"Undo Plan for Batch: {batch_id}", show_header=True, header_style="bold magenta")
        preview_table.add_column("ID", style="dim", width=5, justify="right")
        preview_table.add_column("Op", style="yellow", width=6)
        preview_table.add_column("Type", width=4)
        preview_table.add_column("Current Path / Item", style="cyan", no_wrap=True, min_width=30)
        preview_table.add_column("->", justify="center", width=2)
        preview_table.add_column("Target Path / Action", style="green", no_wrap=True, min_width=30)
        preview_table.add_column("Integrity", width=25)

        for action in actions:
            op = action['op']
            integrity_msg = "N/A"
            if op == JournalOp.MOVE.value:
                current, target = action['destination'], action['source']
                if self.check_integrity and action['type'] == 'file':
                    _, integrity_msg = self._check_file_integrity(Path(action['destination']), action['original_size'], action['original_mtime'])
            elif op == JournalOp.MKDIR.value:
                current, target = action['source'], "[red]Remove Directory[/red]"
            elif op == JournalOp.RMDIR.value:
                current, target = "-", f"Recreate '{action['source']}'"
            elif op == JournalOp.COPY.value:
                current, target = action['destination'], "[red]Delete Copy[/red]"
            else:
                current, target = action['source'], "[red]Not restorable (trashed)[/red]"
            preview_table.add_row(str(action['id']), op, action['type'].capitalize(), str(current), "->", target, integrity_msg)
        self.console.print(preview_table)

    def _confirm_undo_with_user(self) -> bool:
        if self.quiet_mode:
            log.info("Quiet mode: Skipping undo confirmation. Undo will NOT proceed by default.")
            return False
        try:
            if Confirm.ask("Proceed with UNDO operation?", default=False, console=self.console):
                return True
            self.console.print("[yellow]Undo operation cancelled by user.[/yellow]")
            return False
        except (EOFError, KeyboardInterrupt) as e:
            log.warning(f"Undo confirmation aborted by user ({type(e).__name__}).")
            self.err_console.print("\n[yellow]Undo operation cancelled by user.[/yellow]")
            return False

    def revert_batch(self, batch_id: str) -> UndoReport:
        """Non-interactive revert of every 'applied' row of a batch, newest first."""
        report = UndoReport(batch_id=batch_id)
        conn = self._connect()
        if not conn:
            log.error(f"Could not connect to undo database to revert batch '{batch_id}'.")
            return report
        try:
            for row in self._fetch_undo_actions_from_db(batch_id, conn):
                entry = self._row_to_entry(row)
                log_prefix = f"[Undo ID {row['id']}] "
                if entry.op == JournalOp.TRASH:
                    log.warning(f"{log_prefix}'{entry.source}' was sent to the trash and cannot be restored automatically.")
                    report.not_restorable.append(entry)
                    self._update_row_status(row['id'], 'not_restorable', conn)
                    continue
                if entry.op == JournalOp.MOVE and entry.item_type == 'file' and entry.destination is not None and entry.destination.exists():
                    passed, integrity_msg = self._check_file_integrity(entry.destination, row['original_size'], row['original_mtime'])
                    log.info(f"{log_prefix}Integrity check for '{entry.destination}': {integrity_msg}")
                    if not passed:
                        report.failures.append(UndoFailure(entry=entry, reason=f"[{ProcessingStatus.UNDO_INTEGRITY_FAILURE}] Integrity check failed: {integrity_msg}"))
                        continue
                reason = revert_entry(entry)
                if reason is not None:
                    log.error(f"{log_prefix}{reason}")
                    report.failures.append(UndoFailure(entry=entry, reason=reason))
                    continue
                if not self._update_row_status(row['id'], 'reverted', conn):
                    log.error(f"{log_prefix}FS op OK, but FAILED DB update to 'reverted' for '{entry.source}'")
                report.reverted.append(entry)
            conn.commit()
        except sqlite3.Error as e:
            log.error(f"Database error while reverting batch '{batch_id}': {e}")
            conn.rollback()
        finally:
            conn.close()
        return report

    def perform_undo(self, batch_id: str, dry_run: bool = False, confirm: bool = True) -> bool:
        if not self.is_enabled:
            self.err_console.print("[bold red]Error: Undo disabled.[/bold red]")
            return False
        if not self.db_path or not self.db_path.exists():
            self.err_console.print(f"[bold red]Error: Undo DB not found at {self.db_path}[/bold red]")
            return False

        action_word = "DRY RUN UNDO" if dry_run else "UNDO"
        self.console.print(f"--- Starting {action_word} for batch '[cyan]{batch_id}[/cyan]' ---")
        conn = self._connect()
        if not conn:
            self.err_console.print("[bold red]Error: Could not connect to undo database.[/bold red]")
            return False
        try:
            actions = self._fetch_undo_actions_from_db(batch_id, conn)
        except sqlite3.Error as e:
            self.err_console.print(f"[bold red]Error accessing undo database:[/bold red] {e}")
            return False
        finally:
            conn.close()

        if not actions:
            self.console.print(f"No revertible actions found for batch '[cyan]{batch_id}[/cyan]'.")
            return False

        self._display_undo_preview_table(actions, batch_id)
        if dry_run:
            self.console.print(f"\n--- {action_word} Preview Complete. No changes made. ---")
            return True
        if confirm and not self._confirm_undo_with_user():
            return False

        self.console.print("--- Performing Revert ---")
        report = self.revert_batch(batch_id)
        for failure in report.failures:
            self.console.print(f"  [bold red]Failed:[/bold red] {failure.entry.op.value} '{failure.entry.source}': {failure.reason}")
        for entry in report.not_restorable:
            self.console.print(f"  [yellow]Not restorable:[/yellow] '{entry.source}' (in trash)")

        summary_parts = []
        if report.reverted: summary_parts.append(f"[green]{len(report.reverted)} reverted[/]")
        if report.not_restorable: summary_parts.append(f"[yellow]{len(report.not_restorable)} not restorable[/]")
        if report.failures: summary_parts.append(f"[red]{len(report.failures)} failed[/]")
        self.console.print(f"--- {action_word} Complete for batch '[cyan]{batch_id}[/cyan]' ---")
        self.console.print(f"Summary: {', '.join(summary_parts) if summary_parts else 'No actions tallied.'}.")
        if not report.ok:
            self.err_console.print("[bold red]Undo operation finished with errors. Please check logs.[/bold red]")
        return report.ok
