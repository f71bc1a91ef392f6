"""
Executable cache for gr.

Layout: <cache_root>/gr/exe/<absolute package path>/<fingerprint>, one immutable
executable per (package, fingerprint). Lookups are lock-free: an entry is written
once at its own content-addressed path and never modified. Builds and cleanup for
one package are serialized across processes by an exclusive lock on the
package's cache directory.

Locks are advisory (flock on POSIX, a ".lock" file with msvcrt on Windows) and
are not reliable on network filesystems.
"""

import os
import stat
import time
from pathlib import Path
from typing import Dict, List, Optional

from ._config import NAMESPACE, KEEP_CACHE_ENTRIES
from ._errors import CacheError, LockAcquisitionError
from ._type_check import typecheck, typecheck_methods

if os.name == "posix":
    import fcntl
else:
    import msvcrt

LOCK_FILE = ".lock"
_LOCK_POLL_SECONDS = 0.1
_OPEN_ATTEMPTS = 10


def exe_cache_dir(cache_root: Path) -> Path:
    return cache_root / NAMESPACE / "exe"


def package_cache_dir(cache_root: Path, abs_package_path: Path) -> Path:
    """Directory holding all cached executables of one package."""
    relative = abs_package_path.relative_to(abs_package_path.anchor)
    drive = abs_package_path.drive.rstrip(":\\/")
    if drive:
        return exe_cache_dir(cache_root) / drive / relative
    return exe_cache_dir(cache_root) / relative


def package_cache_file(cache_root: Path, abs_package_path: Path, fingerprint: str) -> Path:
    return package_cache_dir(cache_root, abs_package_path) / fingerprint


def _create_package_cache_dir(path: Path):
    """Raises:  CacheError if the directory can't be created"""
    try:
        os.makedirs(path, 0o755, exist_ok=True)
    except OSError as e:
        raise CacheError(f"failed to create cache dir {str(path)!r}: {e}") from e


def open_package_cache_dir(path: Path) -> int:
    """Open (creating if needed) a package cache directory.
    Returns: Open file descriptor of the directory
    Raises:  CacheError if the directory can't be created or opened"""
    flags = os.O_RDONLY | getattr(os, "O_DIRECTORY", 0)
    if os.name != "posix":
        # Directories can't be opened on Windows; the lock lives in a file inside
        _create_package_cache_dir(path)
        try:
            return os.open(path / LOCK_FILE, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise CacheError(f"failed to open cache dir {str(path)!r}: {e}") from e

    # Other gr processes may be creating the same directory, and gr-cleanup
    # may be removing empty ones, at the same time
    for _ in range(_OPEN_ATTEMPTS):
        try:
            return os.open(path, flags)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CacheError(f"failed to open cache dir {str(path)!r}: {e}") from e

        try:
            os.makedirs(path, 0o755, exist_ok=True)
        except FileNotFoundError:
            continue  # a parent was pruned underneath
        except OSError as e:
            raise CacheError(f"failed to create cache dir {str(path)!r}: {e}") from e

    raise CacheError(f"failed to open cache dir {str(path)!r}: removed repeatedly while opening")


@typecheck_methods
class PackageLock:
    """Exclusive, cross-process lock on one package cache directory.

    The lock is tied to the open directory handle and goes away when the handle
    is closed, including when the process dies, so stale locks never need
    recovery.
    """

    def __init__(self, path: Path, logger=None):
        self.path = path
        self.logger = logger
        self._fd: Optional[int] = None

    def acquire(self):
        while True:
            fd = open_package_cache_dir(self.path)
            try:
                self._lock(fd)
                if self._still_linked(fd):
                    self._fd = fd
                    return
            except OSError as e:
                os.close(fd)
                raise LockAcquisitionError(f"failed to lock cache dir {str(self.path)!r}: {e}") from e
            # Pruned by gr-cleanup while waiting: lock the new directory instead
            os.close(fd)

    def _still_linked(self, fd: int) -> bool:
        """Report whether the locked handle still is the directory at self.path."""
        if os.name != "posix":
            return True
        try:
            current = os.stat(self.path)
        except FileNotFoundError:
            return False
        held = os.fstat(fd)
        return (current.st_dev, current.st_ino) == (held.st_dev, held.st_ino)

    def _lock(self, fd: int):
        if os.name == "posix":
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                pass
            if self.logger:
                self.logger.debug(f"waiting for lock on {self.path}")
            fcntl.flock(fd, fcntl.LOCK_EX)
            return

        waited = False
        while True:
            try:
                msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
                return
            except OSError:
                if not waited and self.logger:
                    self.logger.debug(f"waiting for lock on {self.path}")
                waited = True
                time.sleep(_LOCK_POLL_SECONDS)

    def release(self):
        if self._fd is not None:
            os.close(self._fd)  # drops the lock
            self._fd = None

    def __enter__(self) -> 'PackageLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


def list_cache_entries(package_cache_path: Path) -> Dict[str, int]:
    """Return {fingerprint: mtime in ns} of the executables cached for one package.
    Entries disappearing while listing are skipped.
    Raises:  CacheError on other filesystem errors"""
    try:
        names = os.listdir(package_cache_path)
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise CacheError(f"failed to list cache entries in {str(package_cache_path)!r}: {e}") from e

    entries = {}
    for name in names:
        if name.startswith("."):
            continue  # lock file
        try:
            st = os.lstat(package_cache_path / name)
        except FileNotFoundError:
            continue  # removed by someone else meanwhile
        except OSError as e:
            raise CacheError(f"failed to read cache entry {name!r}: {e}") from e
        # Subdirectories hold the caches of nested packages
        if not stat.S_ISREG(st.st_mode):
            continue
        entries[name] = st.st_mtime_ns
    return entries


@typecheck
def cache_cleanup(package_cache_path: Path, keep: int = KEEP_CACHE_ENTRIES, logger=None) -> List[str]:
    """Delete all but the `keep` most recently modified entries of one package.
    Must be called with the package lock held. Errors are not ignored (a cache that
    can't be cleaned fills the disk), but entries vanishing underneath are.
    Returns: Names of deleted entries
    Raises:  CacheError"""
    entries = list_cache_entries(package_cache_path)
    by_age = sorted(entries, key=lambda name: (entries[name], name))

    deleted = []
    for name in by_age[:max(len(by_age) - keep, 0)]:
        try:
            os.remove(package_cache_path / name)
        except FileNotFoundError:
            continue
        except OSError as e:
            raise CacheError(f"failed to clean old entries from cache: failed to remove entry {name!r}: {e}") from e
        deleted.append(name)
        if logger:
            logger.debug(f"removed old cache entry {package_cache_path / name}")
    return deleted


@typecheck
def update_cache(cache_root: Path, abs_package_path: Path, fingerprint: str,
                 compiler_flags: List[str], compiler_env: Dict[str, str],
                 compiler, logger=None) -> bool:
    """Build the package into the cache under the package lock.
    Only called after the lock-free lookup missed, so it is not on the fast path.
    Args:    cache_root: User cache root
             abs_package_path: Absolute package directory
             fingerprint: Cache key of the current sources
             compiler_flags: go build flags
             compiler_env: Environment overrides for the compiler
             compiler: Object with build(package_dir, output_path, flags, env) -> bool
             logger: Optional logger
    Returns: True if the build succeeded
    Raises:  CacheError (LockAcquisitionError included) if the cache can't be prepared"""
    package_dir = package_cache_dir(cache_root, abs_package_path)
    output_path = package_dir / fingerprint

    with PackageLock(package_dir, logger):
        cache_cleanup(package_dir, logger=logger)

        built = compiler.build(abs_package_path, output_path, compiler_flags, compiler_env)

        if built:
            # The new entry is the most recent one; trim back to the retention bound
            cache_cleanup(package_dir, logger=logger)
        return built


