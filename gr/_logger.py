"""Logging functionality for gr operations."""

import logging
import sys
from pathlib import Path

from ._type_check import typecheck_methods


@typecheck_methods
class GrLogger(logging.Logger):
    """Logger for gr operations.

    Always logs to <log_dir>/gr.log; with debug=True also echoes to stderr.
    """

    def __init__(self, log_dir: Path, debug: bool = False):
        """Initialize logger with file handler.
        Args:    log_dir: Directory where log file will be created
                 debug: Also log DEBUG and above to stderr"""
        super().__init__("gr", logging.DEBUG if debug else logging.INFO)

        # Remove existing handlers to avoid duplicates
        self.handlers.clear()

        # Format: timestamp - level - message
        formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_dir / "gr.log")
        except OSError:
            # A read-only cache root must not prevent running programs
            handler = logging.NullHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(formatter)
        self.addHandler(handler)

        if debug:
            console = logging.StreamHandler(sys.stderr)
            console.setLevel(logging.DEBUG)
            console.setFormatter(logging.Formatter('gr: %(levelname)s: %(message)s'))
            self.addHandler(console)

    def flush(self):
        """Flush all handlers. Called before the process image is replaced."""
        for handler in self.handlers:
            handler.flush()

    def close(self):
        for handler in self.handlers:
            handler.close()
        self.handlers.clear()
