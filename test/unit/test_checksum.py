#!/usr/bin/env python3
"""
Fingerprint tests: the same inputs always give the same fingerprint, and every
input the compiler depends on changes it.
"""
import os
import time

import pytest

from conftest import main_go, write_tree
from gr._checksum import COMPILER_ENV_VARS, checksum, compiler_env, fingerprint, package_source_checksums
from gr._errors import ResolutionError
from gr._walker import builtin_import, package_file


@pytest.fixture
def workspace(tmp_path):
    """app/cmd/tool imports app/internal/util (same module) and example.com/lib (replaced)."""
    return write_tree(tmp_path, {
        "app/go.mod": "module example.com/app\n"
                      "require (\n"
                      "\texample.com/lib v0.0.0\n"
                      "\tgithub.com/remote/dep v1.0.0\n"
                      ")\n"
                      "replace example.com/lib => ../lib\n",
        "app/go.sum": "github.com/remote/dep v1.0.0 h1:xyz=\n",
        "app/cmd/tool/main.go": main_go(["fmt", "example.com/app/internal/util", "example.com/lib",
                                         "github.com/remote/dep"]),
        "app/cmd/tool/main_test.go": "package main\n",
        "app/cmd/tool/_ignored.go": "package main\n",
        "app/cmd/tool/.hidden.go": "package main\n",
        "app/cmd/tool/README.md": "docs\n",
        "app/cmd/tool/helper.c": "int x;\n",
        "app/internal/util/util.go": "package util\n",
        "app/unrelated/unrelated.go": "package unrelated\n",
        "lib/go.mod": "module example.com/lib\n",
        "lib/lib.go": "package lib\n",
    })


def tool_dir(workspace):
    return workspace / "app" / "cmd" / "tool"


class TestPackageSourceChecksums:

    def test_traced_files(self, workspace):
        files = package_source_checksums(tool_dir(workspace))
        expected = {
            "app/go.mod", "app/go.sum",
            "app/cmd/tool/main.go", "app/cmd/tool/helper.c",
            "app/internal/util/util.go",
            "lib/go.mod", "lib/lib.go",
        }
        assert set(files) == {str(workspace.joinpath(*rel.split("/"))) for rel in expected}
        assert all(len(digest) == 64 for digest in files.values())

    def test_relative_directory(self, workspace, monkeypatch):
        monkeypatch.chdir(workspace / "app")
        assert package_source_checksums("cmd/tool") == package_source_checksums(tool_dir(workspace))

    def test_embedded_files(self, workspace):
        write_tree(tool_dir(workspace), {
            "embed.go": 'package main\n\nimport _ "embed"\n\n//go:embed data/*.txt main.go\nvar s string\n',
            "data/a.txt": "a",
        })
        files = package_source_checksums(tool_dir(workspace))
        assert str(tool_dir(workspace) / "data" / "a.txt") in files

    def test_wraps_errors(self, tmp_path):
        write_tree(tmp_path, {"go.mod": "module example.com/x\n", "main.go": main_go(["example.org/nowhere"])})
        with pytest.raises(ResolutionError, match="failed to calculate checksum for .*outside of every module"):
            package_source_checksums(tmp_path)

    def test_missing_directory(self, tmp_path):
        write_tree(tmp_path, {"go.mod": "module example.com/x\n"})
        with pytest.raises(ResolutionError, match="failed to calculate checksum"):
            package_source_checksums(tmp_path / "nope")


class TestChecksum:

    def test_deterministic(self, workspace):
        first = checksum(tool_dir(workspace), ["-race"], {"GOOS": "linux"})
        second = checksum(tool_dir(workspace), ["-race"], {"GOOS": "linux"})
        assert first == second
        assert len(first) == 64

    @pytest.mark.parametrize("rel", [
        "app/cmd/tool/main.go", "app/cmd/tool/helper.c", "app/internal/util/util.go",
        "lib/lib.go", "lib/go.mod", "app/go.mod", "app/go.sum",
    ])
    def test_sensitive_to_traced_files(self, workspace, rel):
        before = checksum(tool_dir(workspace), [], {})
        path = workspace.joinpath(*rel.split("/"))
        path.write_text(path.read_text() + "// changed\n")
        assert checksum(tool_dir(workspace), [], {}) != before

    @pytest.mark.parametrize("rel", [
        "app/cmd/tool/main_test.go", "app/cmd/tool/_ignored.go", "app/cmd/tool/.hidden.go",
        "app/cmd/tool/README.md", "app/unrelated/unrelated.go",
    ])
    def test_insensitive_to_untraced_files(self, workspace, rel):
        before = checksum(tool_dir(workspace), [], {})
        path = workspace.joinpath(*rel.split("/"))
        path.write_text("garbage that would not even parse")
        assert checksum(tool_dir(workspace), [], {}) == before

    def test_insensitive_to_mtime(self, workspace):
        before = checksum(tool_dir(workspace), [], {})
        later = time.time() + 3600
        os.utime(tool_dir(workspace) / "main.go", (later, later))
        assert checksum(tool_dir(workspace), [], {}) == before

    def test_sensitive_to_new_source_file(self, workspace):
        before = checksum(tool_dir(workspace), [], {})
        write_tree(tool_dir(workspace), {"extra.go": "package main\n"})
        assert checksum(tool_dir(workspace), [], {}) != before

    def test_flags_are_ordered(self, workspace):
        d = tool_dir(workspace)
        assert checksum(d, ["-race", "-v"], {}) != checksum(d, ["-v", "-race"], {})
        assert checksum(d, ["-race"], {}) != checksum(d, [], {})

    def test_env(self, workspace):
        d = tool_dir(workspace)
        assert checksum(d, [], {"GOOS": "linux"}) != checksum(d, [], {"GOOS": "darwin"})
        # An empty value is still a value
        assert checksum(d, [], {"CGO_ENABLED": ""}) != checksum(d, [], {})
        assert checksum(d, [], {"A": "1", "B": "2"}) == checksum(d, [], {"B": "2", "A": "1"})


class TestFingerprint:

    def test_file_order_irrelevant(self):
        assert fingerprint({"/a": "1", "/b": "2"}, [], {}) == fingerprint({"/b": "2", "/a": "1"}, [], {})

    def test_no_ambiguous_concatenation(self):
        assert fingerprint({}, ["-gcflags", "a b"], {}) != fingerprint({}, ["-gcflags a", "b"], {})
        assert fingerprint({"/a": "1"}, [], {}) != fingerprint({}, [], {"/a": "1"})


class TestCompilerEnv:

    def test_picks_tracked_variables_only(self):
        environ = {"GOOS": "linux", "CGO_ENABLED": "", "HOME": "/root", "PATH": "/bin"}
        assert compiler_env(environ) == {"GOOS": "linux", "CGO_ENABLED": ""}

    def test_tracked_variables(self):
        assert "GOFLAGS" in COMPILER_ENV_VARS
        assert "GOTOOLCHAIN" in COMPILER_ENV_VARS
        assert "HOME" not in COMPILER_ENV_VARS


class TestSourceSelection:

    @pytest.mark.parametrize("name, expected", [
        ("main.go", True), ("asm_amd64.s", True), ("x.S", True), ("x.c", True), ("x.cc", True),
        ("x.cpp", True), ("x.cxx", True), ("x.m", True), ("x.h", True), ("x.hh", True),
        ("x.hpp", True), ("x.hxx", True), ("x.f", True), ("x.F", True), ("x.for", True), ("x.f90", True),
        ("main_test.go", False), ("_x.go", False), (".x.go", False), ("x.txt", False),
        ("x.go.orig", False), ("x.syso", False),
    ])
    def test_package_file(self, name, expected):
        assert package_file(name) is expected

    @pytest.mark.parametrize("path, expected", [
        ("fmt", True), ("net/http", True), ("C", True), ("embed", True),
        ("example.com/x", False), ("github.com/a/b", False), ("myMod/x", False), ("a1/b", False),
    ])
    def test_builtin_import(self, path, expected):
        assert builtin_import(path) is expected
