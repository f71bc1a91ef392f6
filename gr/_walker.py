"""
Package source walking.

Hashes the files of one package directory that the go command would feed to the
compiler, follows its local imports into other packages and expands its
//go:embed patterns.
"""

import re
from pathlib import Path

from ._embed import parse_go_embed, resolve_embed
from ._errors import EmbedError
from ._module import find_module
from ._resolver import resolve_import
from ._gosource import scan_go_source
from ._state import TraversalState
from ._type_check import typecheck

# The Go compiler reads .go; cgo reads the rest
_SOURCE_RE = re.compile(r'\.(go|s|S|c|cc|cpp|cxx|m|h|hh|hpp|hxx|f|F|for|f90)$')

# First path element made of lowercase letters only: standard library
_STDLIB_IMPORT_RE = re.compile(r'^[a-z]+(/|$)')

_CGO_PSEUDO_PACKAGE = "C"


def package_file(name: str) -> bool:
    """Report whether a file name is part of a package's compiled sources."""
    if name.endswith("_test.go"):
        return False
    if name.startswith(("_", ".")):
        return False
    return _SOURCE_RE.search(name) is not None


def builtin_import(import_path: str) -> bool:
    """Report whether an import is versioned with the toolchain rather than the source tree."""
    return import_path == _CGO_PSEUDO_PACKAGE or _STDLIB_IMPORT_RE.match(import_path) is not None


def _read_source(path: Path) -> str:
    with open(path, 'r', encoding='utf-8', errors='surrogateescape') as f:
        return f.read()


@typecheck
def parse_package(state: TraversalState, dir: Path):
    """Hash a package and, recursively, every local package it imports.
    Args:    state: Traversal state receiving checksums
             dir: Absolute package directory
    Raises:  ResolutionError (including EmbedError) on unresolvable sources
             OSError if a source file can't be read"""
    if dir in state.packages:
        return
    state.packages.add(dir)

    # Resolve the module even for packages that import only the standard
    # library, so that go.mod/go.sum end up in the checksum
    find_module(state, dir)

    embed_patterns = []

    entries = sorted(dir.iterdir(), key=lambda p: p.name)
    for path in entries:
        if not path.is_file() or path.is_symlink():
            continue
        if not package_file(path.name):
            continue

        # Already hashed as an embed of a package walked earlier
        if not state.has_checksum(path):
            state.add_checksum(path)

        if path.suffix != ".go":
            continue

        source = scan_go_source(str(path), _read_source(path))

        for import_path in source.imports:
            if builtin_import(import_path):
                continue
            import_dir = resolve_import(state, dir, import_path)
            if import_dir is None:
                continue  # remote: pinned by go.mod/go.sum
            parse_package(state, import_dir)

        for directive in source.embed_directives:
            try:
                embed_patterns.extend(parse_go_embed(directive))
            except EmbedError as e:
                raise EmbedError(f"failed to parse //go:embed comment in {str(path)!r}: {e}") from e

    try:
        files = resolve_embed(dir, embed_patterns)
    except EmbedError as e:
        raise EmbedError(f"failed to resolve //go:embed patterns in {str(dir)!r}: {e}") from e

    for rel in files:
        embedded = dir / rel
        # Embedding a source file or go.mod must not count it twice
        if state.has_checksum(embedded):
            continue
        state.add_checksum(embedded)
