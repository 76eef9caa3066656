# media_rename/ui_utils.py
from typing import Any, Dict, Iterable, List

from rich.console import Console
from rich.progress import Progress, BarColumn, TextColumn, TimeElapsedColumn, MofNCompleteColumn
from rich.table import Table
from rich.text import Text

from .enums import ProcessingStatus
from .models import PreviewRecord

_STDERR_CONSOLE = Console(stderr=True)


def make_progress(console: Console, disable: bool = False) -> Progress:
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TextColumn("[cyan]{task.fields[item_name]}"),
        console=console,
        disable=disable,
    )

def short_name(name: str, width: int = 30) -> str:
    return name[:width] + ("..." if len(name) > width else "")

def print_stderr(message: Any):
    """Errors go to stderr even in quiet mode."""
    _STDERR_CONSOLE.print(message)


def _names_cell(names: List[str], changed: bool, style: str) -> Text:
    text = Text()
    for i, name in enumerate(names):
        if i: text.append("\n")
        text.append(name, style=style if changed else "dim")
    return text

def render_preview_table(console: Console, records: Iterable[PreviewRecord]) -> int:
    """Prints one panel-like table per record. Returns the number of records printed."""
    count = 0
    for record in records:
        count += 1
        title = Text(record.title, style="bold")
        if record.renamer_problems:
            title.append("  [PROBLEM]", style="bold red")
        table = Table(title=title, show_header=True, header_style="bold magenta", title_justify="left", expand=True)
        table.add_column("Type", style="yellow", width=14)
        table.add_column("Old", no_wrap=False, ratio=1)
        table.add_column("->", justify="center", width=2)
        table.add_column("New", no_wrap=False, ratio=1)

        path_changed = record.old_path != record.new_path
        table.add_row("FOLDER", _names_cell([str(record.old_path)], path_changed, "cyan"), "->", _names_cell([str(record.new_path)], path_changed, "green"))
        for group in record.groups:
            type_cell = Text(group.file_type.name)
            if group.duplicate: type_cell.append(" (dup)", style="bold red")
            table.add_row(type_cell, _names_cell(group.old_names, group.changed, "cyan"), "->", _names_cell(group.new_names, group.changed, "green"))
        console.print(table)

        plan = record.plan
        for message in plan.problem_messages:
            console.print(f"  [bold red]Problem:[/bold red] {message}")
        for warning in plan.warnings:
            console.print(f"  [yellow]Warning:[/yellow] {warning}")
        for change in plan.sanitization_changes:
            console.print(f"  [dim]Sanitized {change.context}: '{change.raw}' -> '{change.sanitized}'[/dim]")
        for unwanted in plan.unwanted_files:
            console.print(f"  [dim]Will trash unwanted file: '{unwanted}'[/dim]")
    return count

def render_batches_table(console: Console, batches: List[Dict[str, Any]]):
    table = Table(title="Undo Batches", show_header=True, header_style="bold magenta")
    table.add_column("Batch ID", style="cyan", no_wrap=True)
    table.add_column("First Action")
    table.add_column("Last Action")
    table.add_column("Actions", justify="right")
    table.add_column("Revertible", justify="right")
    for batch in batches:
        table.add_row(batch['batch_id'], str(batch['first_timestamp']), str(batch['last_timestamp']),
                      str(batch['action_count']), str(batch.get('revertible_count') or 0))
    console.print(table)

def render_summary(console: Console, counts: Dict[ProcessingStatus, int], title: str = "Summary"):
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Status")
    table.add_column("Entities", justify="right")
    styles = {ProcessingStatus.SUCCESS: "green", ProcessingStatus.PATH_ALREADY_CORRECT: "dim",
              ProcessingStatus.PLAN_COLLISION: "red", ProcessingStatus.PARTIAL_APPLY: "bold red",
              ProcessingStatus.FILE_OPERATION_ERROR: "red", ProcessingStatus.SKIPPED: "yellow"}
    for status, count in counts.items():
        if count:
            table.add_row(Text(str(status), style=styles.get(status, "")), str(count))
    console.print(table)
