"""
Logging for sitevault.

One call to ``VaultLogger.setup`` (or ``configure`` with a VaultConfig) attaches a
per-run log file to the ``sitevault`` logger; every component then asks for its
own child logger by name.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional


PACKAGE_LOGGER = "sitevault"

FILE_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s'
CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


def _parse_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


class VaultLogger:
    """Process-wide logging setup shared by the store, tiers and upload workflow."""

    _loggers: Dict[str, logging.Logger] = {}
    _initialized = False
    _log_file: Optional[Path] = None
    _level = logging.INFO

    @classmethod
    def setup(cls, log_dir: str = "./logs", log_level: str = "INFO", console_output: bool = False):
        """Attach the run's log file (and optionally a console) to the package logger. Runs once."""
        if cls._initialized:
            return

        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        cls._level = _parse_level(log_level)
        cls._log_file = directory / f"sitevault_{datetime.now():%Y%m%d_%H%M%S}.log"

        # Handlers live on the package logger so host applications keep their own root setup
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.setLevel(cls._level)
        package_logger.handlers.clear()

        file_handler = logging.FileHandler(cls._log_file)
        file_handler.setLevel(cls._level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        package_logger.addHandler(file_handler)

        if console_output:
            # Console only shows problems; progress goes to the file
            console = logging.StreamHandler(sys.stdout)
            console.setLevel(logging.WARNING)
            console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
            package_logger.addHandler(console)

        cls._initialized = True
        cls.get_logger("VaultLogger").info(
            f"Logging to {cls._log_file} at {logging.getLevelName(cls._level)}"
            f"{' (console: WARNING+)' if console_output else ''}"
        )

    @classmethod
    def configure(cls, config, log_dir: Optional[str] = None):
        """Set up logging from a VaultConfig's logging section."""
        cls.setup(
            log_dir=log_dir or str(config.get_logs_path()),
            log_level=config.logging.level,
            console_output=config.logging.console_output,
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Child logger ``sitevault.<name>``; sets up defaults on first use."""
        if not cls._initialized:
            cls.setup()

        logger = cls._loggers.get(name)
        if logger is None:
            logger = logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
            logger.setLevel(cls._level)
            cls._loggers[name] = logger
        return logger

    @classmethod
    def set_level(cls, level: str):
        cls._level = _parse_level(level)
        logging.getLogger(PACKAGE_LOGGER).setLevel(cls._level)
        for logger in cls._loggers.values():
            logger.setLevel(cls._level)

    @classmethod
    def get_log_file(cls) -> Optional[Path]:
        """The file this run is writing to, or None before setup."""
        if not cls._initialized:
            return None
        return cls._log_file


def get_logger(name: str) -> logging.Logger:
    return VaultLogger.get_logger(name)
