import argparse
from pathlib import Path
from . import __version__

def _add_plan_overrides(parser: argparse.ArgumentParser):
    parser.add_argument("manifest", type=Path, help="Library manifest (JSON) describing the entities to rename.")
    parser.add_argument("--movie-folder-format", type=str, default=None, help="Movie folder template (overrides config).")
    parser.add_argument("--movie-file-format", type=str, default=None, help="Movie filename template (overrides config).")
    parser.add_argument("--episode-folder-format", type=str, default=None, help="Episode folder template (overrides config).")
    parser.add_argument("--episode-file-format", type=str, default=None, help="Episode filename template (overrides config).")
    parser.add_argument("--poster-folder-naming", action=argparse.BooleanOptionalAction, default=None, help="Name artwork after the folder (poster.jpg) instead of the video (overrides config).")
    parser.add_argument("--cleanup-unwanted", action=argparse.BooleanOptionalAction, default=None, help="Trash files matching the unwanted patterns (overrides config).")
    parser.add_argument("--unwanted-patterns", type=str, default=None, help="Comma-separated glob patterns of unwanted files (overrides config).")
    parser.add_argument("--preserved-subfolders", type=str, default=None, help="Comma-separated subfolder names kept verbatim (overrides config).")
    parser.add_argument("--extract-stream-info", action=argparse.BooleanOptionalAction, default=None, help="Read missing video/audio details with MediaInfo (overrides config).")

def create_parser():
    parser = argparse.ArgumentParser(
        prog="media-rename",
        description=f"Template-driven media library renamer (v{__version__}).",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', type=Path, help='Path to TOML config file (overrides default search).')
    parser.add_argument('--profile', type=str, default='default', help='Configuration profile to use.')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default=None, help='Console logging level (overrides config).')
    parser.add_argument('--log-file', type=str, default=None, help='Log file path (overrides config).')
    parser.add_argument('--quiet', '-q', action='store_true', default=False, help='Suppress all non-essential console output (progress bars, summaries, info). Errors still shown.')

    subparsers = parser.add_subparsers(dest='command', required=True, help='Action to perform')

    # --- Preview Subparser ---
    parser_preview = subparsers.add_parser('preview', help='Show the planned renames without touching the disk.', formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    _add_plan_overrides(parser_preview)

    # --- Rename Subparser ---
    parser_rename = subparsers.add_parser('rename', help='Plan and apply renames.', formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    _add_plan_overrides(parser_rename)
    parser_rename.add_argument("--live", action="store_true", default=False, help="Perform live run (Default: dry run).")
    parser_rename.add_argument("--yes", "-y", action="store_true", default=False, help="Do not ask for confirmation before a live run.")
    parser_rename.add_argument("--allow-overwrite", action=argparse.BooleanOptionalAction, default=None, help="Trash existing files that occupy a destination (overrides config).")
    parser_rename.add_argument("--enable-undo", action=argparse.BooleanOptionalAction, default=None, help="Enable/disable undo logging (overrides config).")

    # --- Undo Subparser ---
    parser_undo = subparsers.add_parser('undo', help='Revert rename operations or list batches.')
    parser_undo.add_argument("batch_id", type=str, nargs='?', default=None, help="Batch ID of the run to undo/preview (required unless --list is used).")
    parser_undo.add_argument("--list", action="store_true", help="List available batch IDs and their timestamps from the undo log.")
    parser_undo.add_argument("--dry-run", action="store_true", help="Show which operations would be reverted without taking action.")
    parser_undo.add_argument("--yes", "-y", action="store_true", default=False, help="Do not ask for confirmation.")
    parser_undo.add_argument("--check-integrity", dest="undo_check_integrity", action=argparse.BooleanOptionalAction, default=None, help="Verify size/mtime before reverting.")

    # --- Config Subparser ---
    parser_config = subparsers.add_parser('config', help='Manage application configuration.')
    config_subparsers = parser_config.add_subparsers(dest='config_command', required=True, help='Configuration action to perform')

    parser_config_show = config_subparsers.add_parser('show', help='Show the effective configuration for the selected profile.')
    parser_config_show.add_argument('--raw', action="store_true", help="Show the raw TOML content of the loaded config file without merging or validation.")

    config_subparsers.add_parser('validate', help='Validate the configuration file against the schema.')

    parser_config_generate = config_subparsers.add_parser('generate', help='Generate a default config.toml file.')
    parser_config_generate.add_argument('--output', type=Path, default=None, help='Optional path to save the generated config.toml. Defaults to config.toml in the current directory.')
    parser_config_generate.add_argument('--force', '-f', action='store_true', help='Overwrite the config file if it already exists at the target location.')

    return parser

def parse_arguments(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)
    if not getattr(args, 'profile', None):
        args.profile = 'default'
    return args
