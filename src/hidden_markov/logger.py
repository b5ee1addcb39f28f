"""
Logging infrastructure for hidden_markov.

Provides centralized logging configuration with file and console output.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from .config import get_config

ROOT_LOGGER_NAME = 'hidden_markov'


class HiddenMarkovLogger:
    """Centralized logger for the hidden_markov package."""

    def __init__(self):
        self._loggers = {}
        self._file_handlers = {}
        self._formatter = None
        self._setup_root_logger()

    def _setup_root_logger(self):
        """Configure root logger with settings from config."""
        log_level = get_config('logging', 'level') or 'INFO'
        log_format = get_config('logging', 'format')
        file_logging = get_config('logging', 'file_logging') or False
        log_file = get_config('logging', 'log_file') or 'hidden_markov.log'

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(getattr(logging, log_level.upper()))

        # Clear existing handlers
        root_logger.handlers.clear()

        formatter = logging.Formatter(log_format)
        self._formatter = formatter

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, log_level.upper()))
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        if file_logging:
            self._add_file_handler(root_logger, Path(log_file))

        # Prevent propagation to avoid duplicate messages
        root_logger.propagate = False

    def get_logger(self, name: str) -> logging.Logger:
        """Get or create a logger with the specified name."""
        if name.startswith(ROOT_LOGGER_NAME):
            full_name = name
        else:
            full_name = f'{ROOT_LOGGER_NAME}.{name}'

        if full_name not in self._loggers:
            self._loggers[full_name] = logging.getLogger(full_name)

        return self._loggers[full_name]

    def set_level(self, level: str):
        """Set logging level for all loggers."""
        log_level = getattr(logging, level.upper())

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(log_level)

        for handler in root_logger.handlers:
            handler.setLevel(log_level)

    def enable_file_logging(self, log_file: Optional[str] = None):
        """Enable file logging with optional custom log file path."""
        if log_file is None:
            log_file = get_config('logging', 'log_file') or 'hidden_markov.log'

        self._add_file_handler(logging.getLogger(ROOT_LOGGER_NAME), Path(log_file))

    def _add_file_handler(self, root_logger: logging.Logger, log_path: Path):
        key = str(log_path.resolve())
        if key in self._file_handlers:
            return  # Already writing to this file

        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(root_logger.level)
        file_handler.setFormatter(self._formatter)

        root_logger.addHandler(file_handler)
        self._file_handlers[key] = file_handler

    def disable_file_logging(self):
        """Disable file logging by removing the file handlers added here."""
        root_logger = logging.getLogger(ROOT_LOGGER_NAME)

        for handler in self._file_handlers.values():
            root_logger.removeHandler(handler)
            handler.close()
        self._file_handlers.clear()


# Global logger manager instance
_logger_manager = HiddenMarkovLogger()


def get_logger(name: str = 'main') -> logging.Logger:
    """Get a logger instance for the specified module/component."""
    return _logger_manager.get_logger(name)


def set_log_level(level: str):
    """Set global logging level."""
    _logger_manager.set_level(level)


def enable_file_logging(log_file: Optional[str] = None):
    """Enable file logging globally."""
    _logger_manager.enable_file_logging(log_file)


def disable_file_logging():
    """Disable file logging globally."""
    _logger_manager.disable_file_logging()
