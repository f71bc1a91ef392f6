"""
Starting the cached program.

ExecRunner replaces the gr process with the program, so the program inherits the
PID, stdio and signal disposition and its exit status reaches the caller as is.
SpawnRunner is for platforms without exec (and for tests): it runs the program
as a child and passes its exit status on.

Both raise FileNotFoundError when the executable is missing; that is the only
error the caller may treat as a cache miss.
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import List

from ._type_check import typecheck_methods


@typecheck_methods
class ExecRunner:
    """Replace the current process with the program."""

    def __init__(self, logger=None):
        self.logger = logger

    def run(self, path: Path, argv0: str, args: List[str]) -> int:
        """Never returns on success.
        Raises:  OSError if the executable can't be started"""
        # Nothing buffered by gr may be lost or reordered after the image is replaced
        if self.logger is not None:
            self.logger.flush()
        sys.stdout.flush()
        sys.stderr.flush()
        os.execve(path, [argv0] + list(args), os.environ)
        raise AssertionError("execve returned")  # pragma: no cover


@typecheck_methods
class SpawnRunner:
    """Run the program as a child process and return its exit status.

    A child killed by a signal is reported like a shell does, as 128 + signal number.
    """

    def __init__(self, logger=None):
        self.logger = logger

    def run(self, path: Path, argv0: str, args: List[str]) -> int:
        """Returns: Exit status of the program
        Raises:  OSError if the executable can't be started"""
        if self.logger is not None:
            self.logger.flush()
        result = subprocess.run([argv0] + list(args), executable=str(path), check=False)
        if result.returncode < 0:
            return 128 - result.returncode
        return result.returncode


def default_runner(logger=None):
    if os.name == "posix":
        return ExecRunner(logger)
    return SpawnRunner(logger)
