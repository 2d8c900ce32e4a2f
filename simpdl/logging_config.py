"""
Configures the application's logging setup.

This module sets up a root logger that directs messages to both a file log
and a queue for display in the GUI.
"""

import sys
import queue
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path

from .constants import LOG_DIR

LOG_FORMAT = '%(asctime)s - %(levelname)-8s - %(name)-22s - %(message)s'


def rotate_latest_log(log_dir: Path) -> Path:
    """
    Renames an existing `latest.log` after its modification time.

    Returns:
        The path of `latest.log`, ready to be opened for a new session.
    """
    latest_log_path = log_dir / 'latest.log'
    if latest_log_path.exists():
        try:
            mod_time = latest_log_path.stat().st_mtime
            timestamp_str = datetime.fromtimestamp(mod_time).strftime('%Y-%m-%d_%H-%M-%S')
            latest_log_path.rename(log_dir / f"{timestamp_str}.log")
        except OSError as e:
            print(f"Error rotating log file: {e}", file=sys.stderr)
    return latest_log_path


def setup_logging(gui_queue: queue.Queue, file_log_level_str: str = 'INFO', log_dir: Path = LOG_DIR):
    """
    Configures the root logger for file and GUI logging.

    Args:
        gui_queue: The queue to which log records for the GUI will be sent.
        file_log_level_str: The minimum logging level for the file handler (e.g., 'INFO').
        log_dir: Directory for `latest.log` and the archived logs.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    latest_log_path = rotate_latest_log(log_dir)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels at the root

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    log_formatter = logging.Formatter(LOG_FORMAT)

    file_log_level = getattr(logging, file_log_level_str.upper(), logging.INFO)
    file_handler = logging.FileHandler(str(latest_log_path), encoding='utf-8')
    file_handler.setLevel(file_log_level)
    file_handler.setFormatter(log_formatter)
    root_logger.addHandler(file_handler)

    # The log view shows what the user did and what went wrong, not debug chatter.
    queue_handler = logging.handlers.QueueHandler(gui_queue)
    queue_handler.setLevel(logging.WARNING)
    root_logger.addHandler(queue_handler)

    logging.info("--- Logging initialized ---")
    logging.debug(f"File log level set to: {logging.getLevelName(file_log_level)}")
