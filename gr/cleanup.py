#!/usr/bin/env python3
"""
gr Cache Cleanup Tool

CLI for inspecting and trimming the gr executable cache. gr itself keeps at most
two executables per package; this tool removes whole packages or old entries.

Usage:
    gr-cleanup --stats                                   # Show per-package statistics
    gr-cleanup --clear --all                             # Delete entire cache
    gr-cleanup --clear --package ./cmd/tool              # Delete cache for one package
    gr-cleanup --clear --older-than 30                   # Delete entries older than 30 days
    gr-cleanup --clear --package . --older-than 30       # Combine filters (AND logic)
    gr-cleanup --clear --all --dry-run                   # Preview what would be deleted
"""
import argparse
import os
import re
import sys
import time
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, List, Optional, Tuple

from ._cache import LOCK_FILE, PackageLock, exe_cache_dir
from ._config import user_cache_dir
from ._errors import GrError

VERSION = "1.0.0"

_FINGERPRINT_RE = re.compile(r"^[0-9a-f]{64}$")


class CleanupCacheEntry:
    """A single cached executable."""

    def __init__(self, path: Path, package: str, age_days: float, size_bytes: int):
        self.path = path
        self.package = package
        self.age_days = age_days
        self.size_bytes = size_bytes


class PackageStats:
    """Statistics for a single package."""

    def __init__(self, package: str):
        self.package = package
        self.entries: List[CleanupCacheEntry] = []

    def add_entry(self, entry: CleanupCacheEntry):
        self.entries.append(entry)

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    @property
    def total_size(self) -> int:
        return sum(e.size_bytes for e in self.entries)

    @property
    def oldest_days(self) -> float:
        if not self.entries:
            return 0
        return max(e.age_days for e in self.entries)

    @property
    def newest_days(self) -> float:
        if not self.entries:
            return 0
        return min(e.age_days for e in self.entries)


def package_for_cache_dir(exe_dir: Path, package_cache_path: Path) -> str:
    """Recover the absolute package path a package cache directory belongs to."""
    parts = package_cache_path.relative_to(exe_dir).parts
    if os.name != "posix" and parts and len(parts[0]) == 1:
        return parts[0] + ":\\" + "\\".join(parts[1:])
    return str(PurePosixPath("/", *parts))


class CacheCleanup:
    """Manages cache cleanup operations."""

    def __init__(self, cache_root: Path):
        self.cache_root = cache_root
        self.exe_dir = exe_cache_dir(cache_root)

    def iter_entries(self) -> Iterator[CleanupCacheEntry]:
        """Iterate over all cached executables, in directory walk order."""
        if not self.exe_dir.is_dir():
            return

        now = time.time()

        for dirpath, _, filenames in os.walk(self.exe_dir):
            entry_names = [name for name in sorted(filenames) if _FINGERPRINT_RE.match(name)]
            if not entry_names:
                continue
            package_cache_path = Path(dirpath)
            package = package_for_cache_dir(self.exe_dir, package_cache_path)
            for name in entry_names:
                path = package_cache_path / name
                try:
                    st = os.lstat(path)
                except FileNotFoundError:
                    continue  # removed by gr meanwhile
                yield CleanupCacheEntry(path, package, (now - st.st_mtime) / 86400, st.st_size)

    def get_stats(self) -> Dict[str, PackageStats]:
        """Get statistics grouped by package."""
        stats: Dict[str, PackageStats] = {}

        for entry in self.iter_entries():
            if entry.package not in stats:
                stats[entry.package] = PackageStats(entry.package)
            stats[entry.package].add_entry(entry)

        return stats

    def find_entries(
        self,
        package: Optional[Path] = None,
        older_than_days: Optional[float] = None,
    ) -> List[CleanupCacheEntry]:
        """Find entries matching all specified filters (AND logic)."""
        matches = []

        normalized_package = None
        if package is not None:
            normalized_package = os.path.abspath(package)

        for entry in self.iter_entries():
            if normalized_package is not None and entry.package != normalized_package:
                continue

            if older_than_days is not None and entry.age_days < older_than_days:
                continue

            matches.append(entry)

        return matches

    def delete_entries(self, entries: List[CleanupCacheEntry], dry_run: bool = False) -> Tuple[int, int, int]:
        """Delete specified entries. Returns (deleted_count, failed_count, deleted_bytes).
        Entries of one package are deleted under that package's lock, so a
        concurrent gr never sees a half-cleaned directory."""
        if dry_run:
            return len(entries), 0, sum(e.size_bytes for e in entries)

        deleted = 0
        failed = 0
        deleted_bytes = 0

        by_dir: Dict[Path, List[CleanupCacheEntry]] = {}
        for entry in entries:
            by_dir.setdefault(entry.path.parent, []).append(entry)

        for package_cache_path, dir_entries in by_dir.items():
            try:
                with PackageLock(package_cache_path):
                    for entry in dir_entries:
                        try:
                            os.remove(entry.path)
                        except FileNotFoundError:
                            pass  # gr's own cleanup got there first
                        except OSError:
                            failed += 1
                            continue
                        deleted += 1
                        deleted_bytes += entry.size_bytes
                    # A gr waiting for this lock notices the removal and starts over
                    self._prune_empty_dirs(package_cache_path)
            except GrError as e:
                print(f"Warning: {e}", file=sys.stderr)
                failed += len(dir_entries)

        return deleted, failed, deleted_bytes

    def _prune_empty_dirs(self, package_cache_path: Path):
        """Remove the package directory and empty parents, best-effort."""
        d = package_cache_path
        while d != self.exe_dir and self.exe_dir in d.parents:
            try:
                os.remove(d / LOCK_FILE)
            except OSError:
                pass
            try:
                os.rmdir(d)
            except OSError:
                return  # not empty, or in use
            d = d.parent


def format_size(size_bytes: int) -> str:
    """Format byte size as human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    if size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"


def format_age(days: float) -> str:
    """Format age as human-readable string."""
    if days < 1:
        hours = days * 24
        if hours < 1:
            return f"{int(hours * 60)} minutes ago"
        return f"{int(hours)} hours ago"
    if days < 30:
        return f"{int(days)} days ago"
    return f"{int(days / 30)} months ago"


def cmd_stats(cleanup: CacheCleanup) -> int:
    """Show per-package statistics."""
    stats = cleanup.get_stats()

    if not stats:
        print("Cache is empty.")
        return 0

    print("gr Cache Statistics")
    print("=" * 60)
    print()

    total_entries = 0
    total_size = 0

    for package, package_stats in sorted(stats.items()):
        print(package)
        print(f"  Entries: {package_stats.entry_count}")
        print(f"  Size: {format_size(package_stats.total_size)}")
        print(f"  Oldest: {format_age(package_stats.oldest_days)}")
        print(f"  Newest: {format_age(package_stats.newest_days)}")
        print()

        total_entries += package_stats.entry_count
        total_size += package_stats.total_size

    print("-" * 60)
    print(f"Total: {total_entries} entries, {format_size(total_size)}")

    return 0


def cmd_clear(
    cleanup: CacheCleanup,
    package: Optional[Path],
    older_than_days: Optional[float],
    dry_run: bool,
) -> int:
    """Clear matching cache entries."""
    entries = cleanup.find_entries(package=package, older_than_days=older_than_days)

    if not entries:
        print("No matching entries found.")
        return 0

    if dry_run:
        total_size = sum(e.size_bytes for e in entries)
        print(f"Would delete {len(entries)} entries ({format_size(total_size)})")
        print()
        by_package: Dict[str, int] = {}
        for entry in entries:
            by_package[entry.package] = by_package.get(entry.package, 0) + 1

        for package_path, count in sorted(by_package.items()):
            print(f"{package_path}: {count} entries")
    else:
        deleted, failed, deleted_bytes = cleanup.delete_entries(entries)
        print(f"Deleted {deleted} entries ({format_size(deleted_bytes)})")
        if failed > 0:
            print(f"Warning: {failed} entries could not be deleted (permission denied or in use)")

    return 0


def main(args: List[str] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(prog="gr-cleanup", description="gr Cache Cleanup Tool",
                                     formatter_class=argparse.RawDescriptionHelpFormatter)

    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--stats",   action="store_true", help="Show per-package cache statistics")
    parser.add_argument("--clear",   action="store_true", help="Delete matching cache entries")
    parser.add_argument("--all",     action="store_true", help="Delete all cache entries (requires --clear)")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be deleted without deleting")

    parser.add_argument("--package",    type=str,   metavar="PATH", help="Filter: entries for this package directory")
    parser.add_argument("--older-than", type=float, metavar="DAYS", help="Filter: entries older than N days")
    parser.add_argument("--cache-dir",  type=str,   metavar="PATH", help="Cache root (default: user cache directory)")

    parsed = parser.parse_args(args)

    if parsed.stats and parsed.clear:
        print("Error: Cannot use --stats and --clear together.")
        return 1

    if parsed.dry_run and not parsed.clear:
        print("Error: --dry-run requires --clear.")
        return 1

    if parsed.all and not parsed.clear:
        print("Error: --all requires --clear.")
        return 1

    if parsed.clear and not (parsed.all or parsed.package or parsed.older_than is not None):
        print("Error: --clear requires a filter (--package, --older-than) or --all.")
        return 1

    if parsed.older_than is not None and parsed.older_than < 0:
        print("Error: --older-than cannot be negative.")
        return 1

    if not parsed.stats and not parsed.clear:
        parser.print_help()
        return 1

    if parsed.cache_dir:
        cache_root = Path(parsed.cache_dir).absolute()
    else:
        try:
            cache_root = user_cache_dir()
        except GrError as e:
            print(f"Error: {e}")
            return 1

    cleanup = CacheCleanup(cache_root)
    package = Path(parsed.package) if parsed.package else None

    if parsed.stats:
        return cmd_stats(cleanup)
    return cmd_clear(cleanup, package=package, older_than_days=parsed.older_than, dry_run=parsed.dry_run)


if __name__ == "__main__":
    sys.exit(main())
