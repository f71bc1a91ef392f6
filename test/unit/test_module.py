#!/usr/bin/env python3
"""Unit tests for module lookup and import resolution."""
from pathlib import Path

import pytest

from conftest import write_tree
from gr._errors import ResolutionError
from gr._module import find_module, parse_module
from gr._resolver import dir_for_package_in_module, package_inside_of, resolve_import
from gr._state import TraversalState, hash_file


@pytest.fixture
def workspace(tmp_path):
    """app requires a remote module and replaces example.com/lib with a sibling directory."""
    write_tree(tmp_path, {
        "app/go.mod": (
            "module example.com/app\n"
            "go 1.22\n"
            "require (\n"
            "\texample.com/lib v1.0.0\n"
            "\tgithub.com/remote/dep v1.2.3\n"
            ")\n"
            "replace example.com/lib => ../lib\n"
        ),
        "app/go.sum": "github.com/remote/dep v1.2.3 h1:abc=\n",
        "app/cmd/tool/main.go": "package main\n",
        "lib/go.mod": "module example.com/lib\n",
        "lib/util/util.go": "package util\n",
    })
    return tmp_path


class TestParseModule:

    def test_packages_map(self, workspace):
        state = TraversalState()
        info = parse_module(state, workspace / "app")
        assert info.path == "example.com/app"
        assert info.dir == workspace / "app"
        assert info.packages == {
            "example.com/app": workspace / "app",
            "example.com/lib": workspace / "lib",
            "github.com/remote/dep": None,
        }

    def test_hashes_go_mod_and_go_sum(self, workspace):
        state = TraversalState()
        parse_module(state, workspace / "app")
        assert state.checksums == {
            str(workspace / "app" / "go.mod"): hash_file(workspace / "app" / "go.mod"),
            str(workspace / "app" / "go.sum"): hash_file(workspace / "app" / "go.sum"),
        }

    def test_missing_go_sum_is_fine(self, workspace):
        state = TraversalState()
        parse_module(state, workspace / "lib")
        assert list(state.checksums) == [str(workspace / "lib" / "go.mod")]

    def test_absolute_replacement_kept_verbatim(self, tmp_path):
        write_tree(tmp_path, {"app/go.mod": f"module example.com/app\nreplace example.com/lib => {tmp_path}/x/../lib\n"})
        info = parse_module(TraversalState(), tmp_path / "app")
        assert info.packages["example.com/lib"] == Path(f"{tmp_path}/x/../lib")

    def test_versioned_replacement_ignored(self, tmp_path):
        write_tree(tmp_path, {"app/go.mod": "module example.com/app\n"
                                            "replace example.com/lib => example.com/fork v1.0.0\n"})
        info = parse_module(TraversalState(), tmp_path / "app")
        assert "example.com/lib" not in info.packages

    def test_malformed(self, tmp_path):
        write_tree(tmp_path, {"go.mod": "module\n"})
        with pytest.raises(ResolutionError, match="failed to parse module"):
            parse_module(TraversalState(), tmp_path)


class TestFindModule:

    def test_climbs_and_memoizes(self, workspace):
        state = TraversalState()
        pkg_dir = workspace / "app" / "cmd" / "tool"
        info = find_module(state, pkg_dir)
        assert info.path == "example.com/app"
        for d in (pkg_dir, pkg_dir.parent, workspace / "app"):
            assert state.modules[d] is info

        # Second lookup comes from the memo; go.mod is not hashed twice
        assert find_module(state, pkg_dir.parent) is info

    def test_no_module(self, tmp_path):
        (tmp_path / "orphan").mkdir()
        with pytest.raises(ResolutionError, match="failed to find go.mod anywhere upwards of"):
            find_module(TraversalState(), tmp_path / "orphan")

    def test_enclosing_module_broken(self, tmp_path):
        write_tree(tmp_path, {"go.mod": "module a.com/x\nbogus\n", "pkg/a.go": "package a\n"})
        with pytest.raises(ResolutionError, match="failed to parse enclosing go.mod for directory"):
            find_module(TraversalState(), tmp_path / "pkg")


class TestResolveImport:

    def test_own_module(self, workspace):
        state = TraversalState()
        d = resolve_import(state, workspace / "app", "example.com/app/cmd/tool")
        assert d == workspace / "app" / "cmd" / "tool"

    def test_replaced_module(self, workspace):
        state = TraversalState()
        d = resolve_import(state, workspace / "app" / "cmd" / "tool", "example.com/lib/util")
        assert d == workspace / "lib" / "util"
        # The replacement target's go.mod was parsed on the way
        assert str(workspace / "lib" / "go.mod") in state.checksums

    def test_remote(self, workspace):
        assert resolve_import(TraversalState(), workspace / "app", "github.com/remote/dep/sub") is None

    def test_outside_every_module(self, workspace):
        with pytest.raises(ResolutionError, match="is outside of every module"):
            resolve_import(TraversalState(), workspace / "app", "example.org/unknown")

    def test_longest_prefix_wins(self, tmp_path):
        write_tree(tmp_path, {
            "app/go.mod": "module example.com/app\n"
                          "replace example.com/lib => ../lib\n"
                          "replace example.com/lib/v2 => ../lib2\n",
            "lib/go.mod": "module example.com/lib\n",
            "lib2/go.mod": "module example.com/lib/v2\n",
        })
        d = resolve_import(TraversalState(), tmp_path / "app", "example.com/lib/v2/pkg")
        assert d == tmp_path / "lib2" / "pkg"

    def test_replacement_cycle(self, tmp_path):
        # a sends example.com/c to b, b sends it back to a
        write_tree(tmp_path, {
            "a/go.mod": "module example.com/a\nreplace example.com/c => ../b\n",
            "b/go.mod": "module example.com/b\nreplace example.com/c => ../a\n",
        })
        with pytest.raises(ResolutionError, match="replacement leads back into module"):
            resolve_import(TraversalState(), tmp_path / "a", "example.com/c")


class TestPathHelpers:

    @pytest.mark.parametrize("path, base, expected", [
        ("example.com/a", "example.com/a", True),
        ("example.com/a/b", "example.com/a", True),
        ("example.com/ab", "example.com/a", False),
        ("example.com", "example.com/a", False),
    ])
    def test_package_inside_of(self, path, base, expected):
        assert package_inside_of(path, base) is expected

    def test_dir_for_package_in_module(self, tmp_path):
        assert dir_for_package_in_module("example.com/a", tmp_path, "example.com/a") == tmp_path
        assert dir_for_package_in_module("example.com/a", tmp_path, "example.com/a/x/y") == tmp_path / "x" / "y"
