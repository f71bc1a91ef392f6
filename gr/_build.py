"""
Compiler wrapper: builds one Go package into a cache entry with `go build`.
"""

import os
import subprocess
from pathlib import Path
from typing import Dict, List

from ._errors import BuildError
from ._type_check import typecheck_methods


@typecheck_methods
class GoCompiler:
    """Runs `go build` for a package directory.

    The compiler's own output goes straight to the terminal; gr adds nothing to it.
    """

    def __init__(self, go_binary: str = "go", logger=None):
        self.go_binary = go_binary
        self.logger = logger

    def build_command(self, output_path: Path, flags: List[str]) -> List[str]:
        """Build the go command line.
        Args:    output_path: Absolute path of the executable to produce
                 flags: User-supplied compilation flags, in order
        Returns: Command as list of strings"""
        # -trimpath and -buildvcs=false keep the binary independent of where
        # and from which checkout it was built, like the fingerprint
        return [self.go_binary, "build", "-trimpath", "-buildvcs=false",
                "-o", str(output_path)] + list(flags)

    def build(self, package_dir: Path, output_path: Path, flags: List[str], env: Dict[str, str]) -> bool:
        """Compile the package in package_dir into output_path.
        Args:    package_dir: Absolute package directory (the compiler's CWD)
                 output_path: Absolute path of the executable to produce
                 flags: Compilation flags
                 env: Compiler-affecting variables layered over the inherited environment
        Returns: True if the compiler succeeded
        Raises:  BuildError if the compiler can't be started"""
        cmd = self.build_command(output_path, flags)
        run_env = os.environ.copy()
        run_env.update(env)

        if self.logger:
            self.logger.debug(f"running {cmd} in {package_dir}")

        try:
            result = subprocess.run(cmd, cwd=package_dir, env=run_env, check=False)
        except OSError as e:
            raise BuildError(f"can't start {self.go_binary}: {e}") from e

        if result.returncode != 0 and self.logger:
            self.logger.info(f"BUILD FAILED - package: {package_dir}, returncode: {result.returncode}")
        return result.returncode == 0
