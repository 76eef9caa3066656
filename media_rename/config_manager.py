# media_rename/config_manager.py

import os
import argparse
import logging
from pathlib import Path
from typing import Optional, List, Dict, Any

import platformdirs
import pytomlpp
from dotenv import load_dotenv, find_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from rich.console import Console
from rich.prompt import Confirm

from .exceptions import ConfigError

log = logging.getLogger(__name__)
APP_NAME = "media_rename"
DEFAULT_CONFIG_FILENAME = "config.toml"
ENV_PREFIX = "MEDIA_RENAME_"

class BaseProfileSettings(BaseModel):
    # Templates
    movie_folder_format: Optional[str] = Field(default="${title} ${(,year,)}", description="Folder template for movies, relative to the data source. Empty keeps the current folder.")
    movie_file_format: Optional[str] = Field(default="${title} ${(,year,)}", description="Filename template (without extension) for movie files. Empty keeps the current name.")
    episode_folder_format: Optional[str] = Field(default="${showTitle}/Season ${seasonNr}", description="Folder template for TV episodes, relative to the data source.")
    episode_file_format: Optional[str] = Field(default="${showTitle} - S${seasonNr2}E${episodeNr2} - ${episodeTitle}", description="Filename template (without extension) for TV episode files.")
    first_character_number_replacement: Optional[str] = Field(default="#", description="What the ';first' modifier yields for titles starting with a digit.")

    # File Handling
    poster_folder_naming: Optional[bool] = Field(default=False, description="Name the poster 'folder.<ext>' instead of '<basename>-poster.<ext>'.")
    preserved_subfolders: Optional[List[str]] = Field(default_factory=lambda: ['extras', 'trailer', 'trailers'], description="Subfolders of an entity folder whose content moves along unchanged.")
    cleanup_unwanted: Optional[bool] = Field(default=False, description="Send files matching unwanted_patterns to the trash when renaming.")
    unwanted_patterns: Optional[List[str]] = Field(default_factory=lambda: ['*.url', '*.lnk', 'Thumbs.db', '.DS_Store', '*.sfv'], description="Glob patterns of junk files inside an entity folder.")
    allow_overwrite: Optional[bool] = Field(default=False, description="Trash an existing destination file instead of stopping the apply.")
    temp_file_suffix_prefix: Optional[str] = Field(default=".renametmp_", description="Prefix for temporary filenames used to break rename cycles (e.g., '.tmp_', '_temp_').")
    extract_stream_info: Optional[bool] = Field(default=False, description="Read resolution and codecs from video files (pymediainfo) when the manifest has none.")

    # Undo Options
    enable_undo: Optional[bool] = Field(default=True, description="Enable undo logging.")
    undo_db_path: Optional[str] = Field(default=None, description="Path to undo database file (default: user data dir).")
    undo_expire_days: Optional[int] = Field(default=30, ge=-1, description="Days to keep undo logs (-1 for forever).")
    undo_check_integrity: Optional[bool] = Field(default=False, description="Verify file size and mtime before undoing a move.")

    # Logging Options
    log_file: Optional[str] = Field(default=None, description="Path to log file (e.g., media_rename.log).")
    log_level: Optional[str] = Field(default='INFO', description="Logging level: DEBUG, INFO, WARNING, ERROR.")

    @field_validator('log_level', mode='before')
    @classmethod
    def check_log_level(cls, v: Any) -> Optional[str]:
        if v is not None and isinstance(v, str) and v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
            raise ValueError("log_level must be one of DEBUG, INFO, WARNING, ERROR")
        return v.upper() if isinstance(v, str) else None

    @field_validator('first_character_number_replacement', mode='before')
    @classmethod
    def check_number_replacement(cls, v: Any) -> Optional[str]:
        if v is not None and (not isinstance(v, str) or len(v) > 1 or v in ('/', '\\')):
            raise ValueError("first_character_number_replacement must be a single character (or empty) and not a path separator")
        return v

    @field_validator('preserved_subfolders', 'unwanted_patterns', mode='before')
    @classmethod
    def check_string_list(cls, v: Any) -> Optional[List[str]]:
        if v is None: return v
        if isinstance(v, str):
            return [item.strip() for item in v.split(',') if item.strip()]
        if not isinstance(v, list) or not all(isinstance(item, str) for item in v):
            raise ValueError("must be a list of strings or a comma-separated string")
        return v

    @field_validator('temp_file_suffix_prefix', mode='before')
    @classmethod
    def check_temp_file_suffix_prefix(cls, v: Any) -> Optional[str]:
        if v is not None:
            if not isinstance(v, str):
                raise ValueError("temp_file_suffix_prefix must be a string.")
            if not v:
                raise ValueError("temp_file_suffix_prefix cannot be empty.")
            if any(char in v for char in '/\\'):
                raise ValueError("temp_file_suffix_prefix cannot contain path separators.")
        return v


class DefaultSettings(BaseProfileSettings):
    pass

class RootConfigModel(BaseModel):
    default: DefaultSettings = Field(default_factory=DefaultSettings)
    model_config = {'extra': 'allow'}


def _toml_value(value: Any) -> str:
    if isinstance(value, str):
        escaped = value.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return str(value)

def generate_default_toml_content() -> str:
    default_settings = DefaultSettings()
    content_lines = ["# media_rename Default Configuration File"]
    content_lines.append("# Templates use ${token} placeholders, e.g. ${title}, ${year}, ${videoFormat}, ${titleSortable;first}.\n")

    sections: Dict[str, List[str]] = {
        "Templates": ['movie_folder_format', 'movie_file_format', 'episode_folder_format', 'episode_file_format', 'first_character_number_replacement'],
        "File Handling": ['poster_folder_naming', 'preserved_subfolders', 'cleanup_unwanted', 'unwanted_patterns', 'allow_overwrite', 'temp_file_suffix_prefix', 'extract_stream_info'],
        "Undo Options": ['enable_undo', 'undo_db_path', 'undo_expire_days', 'undo_check_integrity'],
        "Logging Options": ['log_file', 'log_level'],
    }

    content_lines.append("[default]")
    for section_name, keys in sections.items():
        content_lines.append(f"\n  # --- {section_name} ---")
        for key in keys:
            field_info = BaseProfileSettings.model_fields[key]
            default_value = getattr(default_settings, key)
            if field_info.description:
                content_lines.append(f"  # {field_info.description}")
            if default_value is None:
                content_lines.append(f"  # {key} = # (not set, uses internal default or None)")
                continue
            content_lines.append(f"  {key} = {_toml_value(default_value)}")

    content_lines.append("\n# You can create other profiles, e.g.:")
    content_lines.append("# [az]")
    content_lines.append("# movie_folder_format = \"${titleSortable;first}/${title} ${(,year,)}\"")
    content_lines.append("# poster_folder_naming = true")
    return "\n".join(content_lines) + "\n"


class ConfigManager:
    def __init__(self, config_path_override: Optional[Path] = None, interactive_fallback: bool = True, quiet_mode: bool = False):
        self.console = Console(quiet=quiet_mode)
        self.err_console = Console(stderr=True)
        self.quiet_mode = quiet_mode

        self.config_path = self._resolve_config_path(config_path_override)
        self._raw_toml_content_str: Optional[str] = None
        self._config = self._load_config(interactive_fallback=interactive_fallback)
        self._env_overrides = self._load_env_overrides()
        log.debug(f"Config path used: {self.config_path}")

    def _resolve_config_path(self, config_path_override: Optional[Path]) -> Path:
        if config_path_override:
            p = Path(config_path_override)
            log.debug(f"Using explicit config path target: {p.resolve()}")
            return p.resolve()

        cwd_path = Path.cwd() / DEFAULT_CONFIG_FILENAME
        if cwd_path.is_file():
            log.debug(f"Found config file in current directory: {cwd_path}")
            return cwd_path.resolve()

        user_config_path = Path(platformdirs.user_config_dir(APP_NAME, appauthor=False)) / DEFAULT_CONFIG_FILENAME
        if user_config_path.is_file():
            log.debug(f"Found config file in user config directory: {user_config_path}")
            return user_config_path.resolve()

        proj_path = Path(__file__).parent.parent.resolve() / DEFAULT_CONFIG_FILENAME
        if proj_path.is_file():
            log.debug(f"Found config file in project directory: {proj_path}")
            return proj_path

        log.debug(f"No config file found. Preferred default creation location: {user_config_path.resolve()}")
        return user_config_path.resolve()

    def _create_default_config_interactively(self, target_path: Path) -> bool:
        if self.quiet_mode:
            log.info("Quiet mode: Skipping interactive creation of default config file.")
            return False

        self.console.print(f"[yellow]Configuration file not found at an expected location.[/yellow]")
        self.console.print(f"A default configuration file can be created at:")
        self.console.print(f"  [cyan]{target_path}[/cyan]")
        try:
            if not Confirm.ask("Would you like to create a default configuration file now?", default=True, console=self.console):
                self.console.print("[yellow]Skipping default configuration file creation. Using internal defaults.[/yellow]")
                log.info("User opted out of creating a default configuration file.")
                return False
        except (EOFError, KeyboardInterrupt):
            self.err_console.print("\n[yellow]Config creation cancelled by user.[/yellow]")
            log.warning("User cancelled config creation during interactive prompt.")
            return False
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            target_path.write_text(generate_default_toml_content(), encoding="utf-8")
        except OSError as e_io:
            self.err_console.print(f"[bold red]Error creating configuration file: {e_io}[/bold red]")
            log.error(f"Failed to write default config to {target_path}: {e_io}")
            return False
        self.console.print(f"[green]✓ Default configuration file created at: {target_path}[/green]")
        log.info(f"Default configuration file created at {target_path}")
        return True

    def _load_config(self, interactive_fallback: bool = True) -> Dict[str, Any]:
        config_file_existed_initially = self.config_path.is_file()

        if not config_file_existed_initially and interactive_fallback:
            if not self._create_default_config_interactively(self.config_path):
                log.warning(f"Proceeding without a config file. Using internal defaults.")
                self._raw_toml_content_str = "# No configuration file present or created.\n"
                return RootConfigModel().model_dump(exclude_unset=False, by_alias=False)

        if not self.config_path.is_file():
            log.warning(f"Config file not found at '{self.config_path}' and not created (interactive_fallback={interactive_fallback}). Using internal defaults.")
            self._raw_toml_content_str = "# Config file not found or empty.\n"
            return RootConfigModel().model_dump(exclude_unset=False, by_alias=False)

        try:
            self._raw_toml_content_str = self.config_path.read_text(encoding='utf-8')
        except OSError as e_os:
            self._raw_toml_content_str = f"# Error reading config file: {e_os}\n"
            raise ConfigError(f"Failed to read config file '{self.config_path}': {e_os}")
        if not self._raw_toml_content_str.strip():
            log.warning(f"Config file '{self.config_path}' is empty. Using internal defaults.")
            return RootConfigModel().model_dump(exclude_unset=False, by_alias=False)
        try:
            cfg_dict = pytomlpp.loads(self._raw_toml_content_str)
            log.info(f"Loaded configuration from '{self.config_path}'")
        except pytomlpp.DecodeError as e_toml:
            raise ConfigError(f"Failed to parse TOML config '{self.config_path}': {e_toml}")

        try:
            validated_config = RootConfigModel.model_validate(cfg_dict)
        except ValidationError as e_val:
            error_msgs = [f"  - Field `{' -> '.join(map(str, err['loc']))}`: {err['msg']}" for err in e_val.errors()]
            error_summary = f"Config file '{self.config_path}' validation failed:\n" + "\n".join(error_msgs)
            log.error(error_summary)
            raise ConfigError(error_summary) from e_val

        config = validated_config.model_dump(exclude_unset=False, by_alias=False)
        # Named profiles are 'extra' fields and are not validated by RootConfigModel itself
        for profile_name, profile_data in list(config.items()):
            if profile_name == 'default': continue
            if not isinstance(profile_data, dict):
                raise ConfigError(f"Profile '{profile_name}' in '{self.config_path}' must be a table.")
            try:
                BaseProfileSettings.model_validate(profile_data)
            except ValidationError as e_val:
                error_msgs = [f"  - Field `{profile_name} -> {' -> '.join(map(str, err['loc']))}`: {err['msg']}" for err in e_val.errors()]
                raise ConfigError(f"Config file '{self.config_path}' validation failed:\n" + "\n".join(error_msgs)) from e_val
        log.debug("Config validation successful.")
        return config

    def get_raw_toml_content(self) -> Optional[str]:
        return self._raw_toml_content_str

    def _load_env_overrides(self) -> Dict[str, str]:
        """MEDIA_RENAME_<KEY> variables (from the environment or a .env file) override config values."""
        env_path = find_dotenv(usecwd=True)
        if env_path:
            log.debug(f"Loading environment variables from: {env_path}")
            load_dotenv(dotenv_path=env_path)
        overrides: Dict[str, str] = {}
        for key in BaseProfileSettings.model_fields:
            value = os.getenv(f"{ENV_PREFIX}{key.upper()}")
            if value is not None:
                overrides[key] = value
        if overrides:
            log.info(f"Config values overridden from environment: {', '.join(sorted(overrides))}")
        return overrides

    @staticmethod
    def _coerce_env_value(key: str, raw: str) -> Any:
        try:
            validated = BaseProfileSettings.model_validate({key: raw})
            return getattr(validated, key)
        except ValidationError as e:
            log.warning(f"Invalid environment value for {key}: '{raw}' ({e.error_count()} error(s)). Ignoring.")
            return None

    def get_value(self, key: str, profile: str = 'default', command_line_value: Any = None, default_value: Any = None) -> Any:
        if command_line_value is not None:
            return command_line_value

        if key in self._env_overrides:
            env_value = self._coerce_env_value(key, self._env_overrides[key])
            if env_value is not None:
                return env_value

        profile_settings_dict = self._config.get(profile, {})
        if isinstance(profile_settings_dict, dict) and profile_settings_dict.get(key) is not None:
            return profile_settings_dict[key]

        default_settings_dict = self._config.get('default', {})
        if isinstance(default_settings_dict, dict) and default_settings_dict.get(key) is not None:
            return default_settings_dict[key]

        if default_value is None and key in BaseProfileSettings.model_fields:
            field_info = BaseProfileSettings.model_fields[key]
            if field_info.default_factory is not None:
                return field_info.default_factory()
            return field_info.default
        return default_value

    def get_profile_settings(self, profile: str = 'default') -> Dict[str, Any]:
        final_settings = DefaultSettings().model_dump(exclude_unset=False, by_alias=False)
        default_section_settings = self._config.get('default', {})
        if isinstance(default_section_settings, dict):
            for k, v in default_section_settings.items():
                if v is not None or k not in final_settings:
                    final_settings[k] = v

        if profile != 'default' and profile in self._config:
            profile_specific_data = self._config.get(profile, {})
            if isinstance(profile_specific_data, dict):
                for k, v in profile_specific_data.items():
                    if v is not None:
                        final_settings[k] = v
            else:
                log.warning(f"Profile '{profile}' in config is not a dictionary. Skipping merge for this profile.")
        elif profile != 'default':
            log.debug(f"Profile '{profile}' not found in config. Using effectively merged default settings.")

        for key, raw in self._env_overrides.items():
            env_value = self._coerce_env_value(key, raw)
            if env_value is not None:
                final_settings[key] = env_value
        return final_settings

    def profile_names(self) -> List[str]:
        return [name for name, value in self._config.items() if isinstance(value, dict)]


class ConfigHelper:
    def __init__(self, config_manager: ConfigManager, args_ns: argparse.Namespace):
        self.manager = config_manager
        self.args = args_ns
        self.profile = getattr(args_ns, 'profile', 'default') or 'default'

    def __call__(self, key: str, default_value: Any = None, arg_value: Any = None) -> Any:
        cmd_line_val = arg_value if arg_value is not None else getattr(self.args, key, None)
        return self.manager.get_value(key, self.profile, cmd_line_val, default_value)

    def get_list(self, key: str, default_value: Optional[List[Any]] = None) -> List[Any]:
        cmd_line_val_str = getattr(self.args, key, None)
        cmd_line_list: Optional[List[str]] = None
        if isinstance(cmd_line_val_str, str):
            cmd_line_list = [item.strip() for item in cmd_line_val_str.split(',') if item.strip()]

        val = self.manager.get_value(key, self.profile, cmd_line_list, default_value)
        if isinstance(val, list):
            return val
        if isinstance(val, str):
            return [item.strip() for item in val.split(',') if item.strip()]
        return []
