"""Import path resolution across module boundaries."""

import os
from pathlib import Path
from typing import Optional

from ._errors import ResolutionError
from ._module import find_module
from ._state import TraversalState
from ._type_check import typecheck


def package_inside_of(path: str, base: str) -> bool:
    """Report whether import path lies inside base, element-wise."""
    return path == base or path.startswith(base + "/")


def dir_for_package_in_module(module_path: str, module_dir: Path, import_path: str) -> Path:
    if import_path == module_path:
        return module_dir
    return Path(os.path.normpath(module_dir / import_path[len(module_path) + 1:]))


@typecheck
def resolve_import(state: TraversalState, dir: Path, import_path: str) -> Optional[Path]:
    """Find the directory holding an imported package.
    Args:    state: Traversal state (module cache)
             dir: Directory of the importing package
             import_path: Import path as written in the source
    Returns: Local package directory, or None for remote packages (not traced)
    Raises:  ResolutionError if no known module contains the import path"""
    visited = []
    while True:
        module = find_module(state, dir)
        if any(m is module for m in visited):
            raise ResolutionError(
                f"package {import_path!r}: replacement leads back into module {module.path!r}")
        visited.append(module)

        longest_path = ""
        longest_dir = None
        for package_path, package_dir in module.packages.items():
            if package_inside_of(import_path, package_path) and len(package_path) > len(longest_path):
                longest_path = package_path
                longest_dir = package_dir

        if not longest_path:
            raise ResolutionError(f"package {import_path!r} is outside of every module")

        # Remote: go.mod/go.sum of the importing module already pin it
        if longest_dir is None:
            return None

        if longest_path == module.path:
            return dir_for_package_in_module(longest_path, longest_dir, import_path)

        # Replacement pointing into another module: resolve from there
        dir = longest_dir
