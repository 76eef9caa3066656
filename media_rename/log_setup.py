# media_rename/log_setup.py
import logging
import sys
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional, Union

LOGGER_NAME = "media_rename"

BRIEF_FORMAT = '%(levelname)-8s: %(message)s'
DETAILED_FORMAT = '%(asctime)s %(levelname)-8s [%(name)s:%(lineno)d] %(message)s'
# guessit (and rebulk underneath it) log every parse at DEBUG
NOISY_LIBRARIES = ('guessit', 'rebulk')


def level_from_name(name: Optional[str], default: int = logging.INFO) -> int:
    level = logging.getLevelName(str(name or '').upper())
    return level if isinstance(level, int) else default


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if level <= logging.DEBUG:
        handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt='%H:%M:%S'))
    else:
        handler.setFormatter(logging.Formatter(BRIEF_FORMAT))
    return handler

def _file_handler(log_file: Union[str, Path]) -> logging.Handler:
    """Appending DEBUG handler; raises OSError when the file cannot be opened."""
    path = Path(log_file).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S%z'))
    return handler


def setup_logging(log_level_console=logging.INFO, log_file=None) -> logging.Logger:
    """(Re)configures the package logger. Safe to call again once the config file is known."""
    app_log = logging.getLogger(LOGGER_NAME)
    app_log.setLevel(logging.DEBUG)
    for old in app_log.handlers[:]:
        app_log.removeHandler(old)
        old.close()
    app_log.addHandler(_console_handler(log_level_console))

    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(max(logging.WARNING, log_level_console))

    if not log_file:
        return app_log
    try:
        app_log.addHandler(_file_handler(log_file))
    except OSError as e:
        app_log.error(f"Failed to configure file logging to '{log_file}': {e}")
        return app_log
    started = datetime.now(timezone.utc).isoformat(timespec='seconds')
    app_log.info(f"--- Log session started {started} (console level {logging.getLevelName(log_level_console)}) ---")
    app_log.debug(f"argv: {sys.argv}")
    return app_log
