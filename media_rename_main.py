#!/usr/bin/env python3
import sys
import json
import logging
import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.prompt import Confirm

from media_rename.cli import parse_arguments
from media_rename.config_manager import (
    ConfigManager, ConfigHelper, BaseProfileSettings,
    generate_default_toml_content, DEFAULT_CONFIG_FILENAME,
)
from media_rename.log_setup import setup_logging, level_from_name, LOGGER_NAME
from media_rename.main_processor import MainProcessor
from media_rename.undo_manager import UndoManager
from media_rename.exceptions import RenamerError, UserAbortError, ConfigError, ManifestError
from media_rename.ui_utils import print_stderr, render_batches_table

log = logging.getLogger(LOGGER_NAME)


def generate_config(args, console: Console) -> int:
    if not log.handlers:
        setup_logging(log_level_console=logging.INFO)
    target_path: Path = (args.output or Path.cwd() / DEFAULT_CONFIG_FILENAME).resolve()
    if target_path.exists() and not args.force:
        if args.quiet:
            print_stderr(f"Config file {target_path} exists. Use --force to overwrite.")
            return 1
        console.print(f"[bold yellow]Warning:[/bold yellow] Config file already exists at [cyan]{target_path}[/cyan].")
        if not Confirm.ask("Overwrite existing file?", default=False, console=console):
            console.print("Config file generation cancelled.")
            return 0
        log.info(f"User confirmed overwrite for existing config file at {target_path}")
    try:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        target_path.write_text(generate_default_toml_content(), encoding="utf-8")
    except OSError as e:
        print_stderr(f"[bold red]Error:[/bold red] Could not write configuration file to {target_path}: {e}")
        log.error(f"Failed to write generated config to {target_path}: {e}")
        return 1
    console.print(f"[green]Default configuration file generated at: {target_path}[/green]")
    log.info(f"Default config.toml generated at {target_path}")
    return 0


def show_config(args, manager: ConfigManager, cfg: ConfigHelper, console: Console) -> int:
    console.print(f"--- Configuration Effective for Profile: '{args.profile}' ---")
    if manager.config_path.is_file():
        console.print(f"Config file loaded: [cyan]{manager.config_path}[/cyan]")
    else:
        console.print(f"Config file [yellow]{manager.config_path}[/yellow] not found. Using internal defaults and environment variables.")
    if args.raw:
        raw_content = manager.get_raw_toml_content()
        console.print(raw_content if raw_content else "# No config file loaded or content was empty.", markup=False)
        return 0
    effective: Dict[str, Any] = {key: cfg(key) for key in BaseProfileSettings.model_fields}
    effective["_profiles_"] = manager.profile_names()
    console.print_json(json.dumps(effective, default=str))
    return 0


def list_undo_batches(undo_manager: UndoManager, console: Console, quiet: bool) -> int:
    batches = undo_manager.list_batches()
    if quiet:
        for batch in batches: log.info(f"Undo Batch: ID={batch['batch_id']}, Actions={batch['action_count']}")
    elif not batches:
        console.print("No undo batches found in the log.")
    else:
        render_batches_table(console, batches)
    return 0


async def main_async(argv=None) -> int:
    args = parse_arguments(argv)
    is_quiet = bool(getattr(args, 'quiet', False))
    console = Console(quiet=is_quiet)
    undo_manager: Optional[UndoManager] = None

    try:
        if args.command == 'config' and args.config_command == 'generate':
            return generate_config(args, console)

        config_manager = ConfigManager(
            config_path_override=getattr(args, 'config', None),
            interactive_fallback=not is_quiet,
            quiet_mode=is_quiet
        )
        cfg = ConfigHelper(config_manager, args)

        setup_logging(
            log_level_console=level_from_name(cfg('log_level', 'INFO')),
            log_file=cfg('log_file', None)
        )
        log.debug(f"Full logging configured. Parsed args: {args}")
        log.debug(f"Using profile: {args.profile}")

        if args.command == 'config':
            if args.config_command == 'show':
                return show_config(args, config_manager, cfg, console)
            # loading already validated the file and every profile
            if config_manager.config_path.is_file():
                console.print(f"[green]Configuration file '{config_manager.config_path}' is valid.[/green]")
            else:
                console.print(f"Config file '[yellow]{config_manager.config_path}[/yellow]' not found. Nothing to validate.")
            return 0

        if args.command in ('rename', 'undo'):
            undo_manager = UndoManager(cfg, quiet_mode=is_quiet, console_instance=console)
            if undo_manager.is_enabled:
                undo_manager.prune_old_batches()

        if args.command == 'preview':
            processor = MainProcessor(args, cfg)
            records = await processor.run_preview()
            return 1 if any(r.renamer_problems for r in records) else 0

        if args.command == 'rename':
            processor = MainProcessor(args, cfg, undo_manager)
            counts = await processor.run_rename()
            return 1 if processor.has_failures(counts) else 0

        if args.command == 'undo':
            if args.list:
                return list_undo_batches(undo_manager, console, is_quiet)
            if not args.batch_id:
                log.error("Batch ID is required for undo/dry-run unless --list is specified.")
                print_stderr("[bold red]Error:[/bold red] Batch ID is required for undo or dry-run. Use --list to see available batches.")
                return 1
            log.info(f"Performing undo{' (dry run)' if args.dry_run else ''} for batch: {args.batch_id}")
            ok = undo_manager.perform_undo(args.batch_id, dry_run=args.dry_run, confirm=not args.yes)
            return 0 if ok else 1
        return 0

    except (ConfigError, ManifestError) as e_input:
        if log.handlers: log.critical(f"{type(e_input).__name__}: {e_input}")
        print_stderr(f"[bold red]ERROR:[/bold red] {e_input}")
        return 1
    except UserAbortError as e_abort:
        if log.handlers: log.warning(str(e_abort))
        print_stderr(f"\n{e_abort}")
        return 130
    except RenamerError as e_app:
        if log.handlers: log.error(f"Application Error: {e_app}", exc_info=True)
        print_stderr(f"[bold red]ERROR:[/bold red] {e_app}")
        return 1
    except KeyboardInterrupt:
        if log.handlers: log.warning("Operation interrupted by user.")
        print_stderr("\nCancelled by user.")
        return 130


def main(argv=None):
    try:
        exit_code = asyncio.run(main_async(argv))
    except KeyboardInterrupt:
        print_stderr("\nOperation cancelled by user.")
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
