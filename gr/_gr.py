"""
Main gr application: fingerprint, lookup, build on miss, run.
"""

import os
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

from ._build import GoCompiler
from ._cache import package_cache_file, update_cache
from ._checksum import checksum
from ._cli import parse_cli
from ._config import GrConfig
from ._errors import EXIT_FAILURE, GrError
from ._exec import default_runner
from ._logger import GrLogger
from ._type_check import typecheck_methods


def _error(message: str):
    print(f"gr: {message}", file=sys.stderr)


@typecheck_methods
class Gr:
    """Runs Go packages from the executable cache."""

    def __init__(self, config: GrConfig, logger, compiler=None, runner=None):
        """Args:    config: Cache locations and tool settings
                 logger: Logger for cache hits, misses and failures
                 compiler: Object with build(package_dir, output_path, flags, env) -> bool
                           (defaults to GoCompiler using config.go_binary)
                 runner: Object with run(path, argv0, args) -> int
                         (defaults to exec on POSIX, a child process elsewhere)"""
        self.config = config
        self.logger = logger
        self.compiler = compiler if compiler is not None else GoCompiler(config.go_binary, logger)
        self.runner = runner if runner is not None else default_runner(logger)

    def run(self, package_path: str, run_args: List[str], compiler_flags: List[str],
            compiler_env: Dict[str, str]) -> int:
        """Run the package, building it first if no cached executable matches.
        Args:    package_path: Package directory as given on the command line
                 run_args: Arguments for the program
                 compiler_flags: go build flags (part of the cache key)
                 compiler_env: Compiler-affecting environment (part of the cache key)
        Returns: Exit status of the program (with a spawning runner), or EXIT_FAILURE"""
        start_time = time.perf_counter()
        try:
            abs_package_path = Path(os.path.abspath(package_path))
        except OSError as e:
            _error(f"can't find absolute path for package {package_path!r}: {e}")
            return EXIT_FAILURE
        argv0 = abs_package_path.name

        try:
            fingerprint = checksum(Path(package_path), compiler_flags, compiler_env)
        except GrError as e:
            _error(f"internal error: can't calculate checksum for package {package_path!r}: {e}")
            self.logger.error(f"CHECKSUM FAILED - package: {abs_package_path}, error: {e}")
            return EXIT_FAILURE

        exe = package_cache_file(self.config.cache_root, abs_package_path, fingerprint)

        try:
            self.logger.info(f"RUN - package: {abs_package_path}, "
                             f"Time: {time.perf_counter()-start_time:.3f} seconds, "
                             f"flags: {compiler_flags}, cache_entry: {fingerprint}")
            return self.runner.run(exe, argv0, run_args)
        except FileNotFoundError:
            pass
        except OSError as e:
            _error(f"failed to run program: {e}")
            self.logger.error(f"RUN FAILED - package: {abs_package_path}, cache_entry: {fingerprint}, error: {e}")
            return EXIT_FAILURE

        # Not in the cache: build it and try again
        self.logger.info(f"CACHE MISS - package: {abs_package_path}, flags: {compiler_flags}, "
                         f"cache_entry: {fingerprint}")
        try:
            updated = update_cache(self.config.cache_root, abs_package_path, fingerprint,
                                   compiler_flags, compiler_env, self.compiler, self.logger)
        except GrError as e:
            _error(f"failed to build program: {e}")
            self.logger.error(f"BUILD FAILED - package: {abs_package_path}, error: {e}")
            return EXIT_FAILURE

        if not updated:
            # The compiler has already explained itself
            return EXIT_FAILURE

        self.logger.info(f"BUILT - package: {abs_package_path}, "
                         f"Time: {time.perf_counter()-start_time:.3f} seconds, cache_entry: {fingerprint}")
        try:
            return self.runner.run(exe, argv0, run_args)
        except OSError as e:
            _error(f"failed to run program: {e}")
            self.logger.error(f"RUN FAILED - package: {abs_package_path}, cache_entry: {fingerprint}, error: {e}")
            return EXIT_FAILURE


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the gr command.
    Returns: Exit status (argparse exits with 2 on usage errors by itself)"""
    cli = parse_cli(argv)

    try:
        config = GrConfig.from_environment()
    except GrError as e:
        _error(f"can't run: {e}")
        return EXIT_FAILURE

    logger = GrLogger(config.log_dir, debug=cli.debug)
    try:
        gr = Gr(config, logger)
        return gr.run(cli.package_path, cli.run_args, cli.compiler_flags, cli.compiler_env)
    except GrError as e:
        # tools.json problems surface lazily
        _error(f"can't run: {e}")
        return EXIT_FAILURE
    finally:
        logger.close()
