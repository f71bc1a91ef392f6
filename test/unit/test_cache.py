#!/usr/bin/env python3
"""Unit tests for the executable cache: layout, locking and retention."""
import os
import threading
import time
from pathlib import Path

import pytest

from conftest import FakeCompiler
from gr._cache import (PackageLock, _create_package_cache_dir, cache_cleanup, list_cache_entries,
                       open_package_cache_dir, package_cache_dir, package_cache_file, update_cache)
from gr._errors import CacheError

posix_lock = pytest.mark.skipif(os.name != "posix", reason="flock")


def make_entries(directory: Path, names, start: float = 1_000_000_000):
    """Create entries with strictly increasing mtimes, in the given order."""
    directory.mkdir(parents=True, exist_ok=True)
    for i, name in enumerate(names):
        path = directory / name
        path.write_text(name)
        os.utime(path, (start + i, start + i))


class TestLayout:

    @pytest.mark.skipif(os.name != "posix", reason="POSIX paths")
    def test_paths(self, tmp_path):
        cache_root = tmp_path / "cache"
        assert package_cache_dir(cache_root, Path("/home/u/app/cmd")) == cache_root / "gr" / "exe" / "home/u/app/cmd"
        assert package_cache_file(cache_root, Path("/home/u/app"), "ab" * 32) == \
            cache_root / "gr" / "exe" / "home" / "u" / "app" / ("ab" * 32)

    def test_open_creates_directory(self, tmp_path):
        target = tmp_path / "a" / "b"
        fd = open_package_cache_dir(target)
        try:
            assert target.is_dir()
        finally:
            os.close(fd)

    def test_open_existing_directory(self, tmp_path):
        fd = open_package_cache_dir(tmp_path)
        os.close(fd)

    def test_open_fails_on_file(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(CacheError):
            open_package_cache_dir(blocker / "sub")

    def test_create_fails_below_file(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(CacheError, match="failed to create cache dir"):
            _create_package_cache_dir(blocker / "sub")


class TestCacheCleanup:

    def test_keeps_two_most_recent(self, tmp_path):
        make_entries(tmp_path, ["old", "older_but_later_name", "new1", "new2"])
        deleted = cache_cleanup(tmp_path)
        assert deleted == ["old", "older_but_later_name"]
        assert sorted(os.listdir(tmp_path)) == ["new1", "new2"]

    def test_nothing_to_do(self, tmp_path):
        make_entries(tmp_path, ["a", "b"])
        assert cache_cleanup(tmp_path) == []
        assert sorted(os.listdir(tmp_path)) == ["a", "b"]

    def test_custom_keep(self, tmp_path):
        make_entries(tmp_path, ["a", "b", "c"])
        cache_cleanup(tmp_path, keep=0)
        assert os.listdir(tmp_path) == []

    def test_missing_directory(self, tmp_path):
        assert cache_cleanup(tmp_path / "missing") == []

    def test_nested_package_directories_untouched(self, tmp_path):
        # /x's cache directory also holds the cache directory of package /x/sub
        make_entries(tmp_path, ["a", "b", "c"])
        make_entries(tmp_path / "sub", ["d"])
        (tmp_path / ".lock").write_text("")
        cache_cleanup(tmp_path)
        assert sorted(os.listdir(tmp_path)) == [".lock", "b", "c", "sub"]
        assert os.listdir(tmp_path / "sub") == ["d"]

    def test_list_entries(self, tmp_path):
        make_entries(tmp_path, ["a", "b"])
        entries = list_cache_entries(tmp_path)
        assert sorted(entries) == ["a", "b"]
        assert entries["a"] < entries["b"]


class TestPackageLock:

    @posix_lock
    def test_excludes_other_holders(self, tmp_path):
        """A second lock holder waits until the first one releases."""
        order = []
        first_locked = threading.Event()

        def second():
            first_locked.wait()
            with PackageLock(tmp_path):
                order.append("second")

        t = threading.Thread(target=second)
        with PackageLock(tmp_path):
            first_locked.set()
            t.start()
            time.sleep(0.2)
            order.append("first")
        t.join(timeout=10)

        assert order == ["first", "second"]

    @posix_lock
    def test_waiter_relocks_removed_directory(self, tmp_path):
        """
        Steps:
        1. Hold the lock and let a second holder start waiting on the same directory
        2. Remove the directory (as gr-cleanup does) and release
        3. The second holder ends up locking a recreated directory at the same path
        """
        target = tmp_path / "pkg"
        waiting = PackageLock(target)
        locked_inode = []

        def second():
            with waiting:
                locked_inode.append(os.fstat(waiting._fd).st_ino)

        t = threading.Thread(target=second)
        with PackageLock(target):
            t.start()
            time.sleep(0.2)
            os.rmdir(target)
        t.join(timeout=10)

        assert target.is_dir()
        assert locked_inode == [os.stat(target).st_ino]

    def test_reacquire_after_release(self, tmp_path):
        lock = PackageLock(tmp_path / "pkg")
        with lock:
            pass
        with lock:
            assert (tmp_path / "pkg").is_dir()


class TestUpdateCache:

    def test_builds_into_fingerprinted_path(self, tmp_path):
        compiler = FakeCompiler()
        pkg = tmp_path / "src" / "app"
        pkg.mkdir(parents=True)
        cache_root = tmp_path / "cache"

        assert update_cache(cache_root, pkg, "f" * 64, ["-race"], {"GOOS": "linux"}, compiler)

        output = package_cache_file(cache_root, pkg, "f" * 64)
        assert output.is_file()
        assert compiler.builds == [(pkg, output, ["-race"], {"GOOS": "linux"})]

    def test_build_failure(self, tmp_path):
        compiler = FakeCompiler(succeed=False)
        pkg = tmp_path / "app"
        assert not update_cache(tmp_path / "cache", pkg, "f" * 64, [], {}, compiler)
        assert not package_cache_file(tmp_path / "cache", pkg, "f" * 64).exists()

    def test_retention_after_build(self, tmp_path):
        """At most two executables stay cached per package, the new one included."""
        pkg = tmp_path / "app"
        cache_root = tmp_path / "cache"
        make_entries(package_cache_dir(cache_root, pkg), ["1" * 64, "2" * 64, "3" * 64])

        assert update_cache(cache_root, pkg, "4" * 64, [], {}, FakeCompiler())

        assert sorted(list_cache_entries(package_cache_dir(cache_root, pkg))) == ["3" * 64, "4" * 64]
