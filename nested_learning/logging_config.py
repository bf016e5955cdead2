"""
nested_learning: Logging configuration for training runs

Creates timestamped log files for each run in the log directory.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

_log_file: Optional[str] = None


def setup_logging(
    log_dir: Optional[str] = "logs",
    level: Union[int, str] = logging.INFO,
) -> Optional[str]:
    """
    Setup logging to both console and timestamped file.

    Args:
        log_dir: Directory to store log files (None = console only)
        level: Logging level name or number

    Returns:
        Path to the created log file, or None when file logging is disabled
    """
    global _log_file

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers
    root_logger.handlers.clear()

    log_file = None
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        # Create timestamped filename: dd-mm-yyyy_hh-mm-ss.log
        timestamp = datetime.now().strftime("%d-%m-%Y_%H-%M-%S")
        log_file = log_path / f"nested_run_{timestamp}.log"

        # File handler
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%d/%m/%Y - %H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        fmt='%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    _log_file = str(log_file) if log_file is not None else None

    root_logger.info("=" * 60)
    if _log_file:
        root_logger.info(f"Log file created: {_log_file}")
    root_logger.info(f"Timestamp: {datetime.now().strftime('%d/%m/%Y - %H:%M:%S')}")
    root_logger.info("=" * 60)

    return _log_file


def get_log_file() -> Optional[str]:
    """Get path to current log file."""
    return _log_file
