"""
Go module lookup.

find_module() climbs from a package directory to the nearest go.mod and memoizes
the answer for every directory on the way; parse_module() turns that go.mod into
a ModuleInfo and folds go.mod/go.sum into the traversal checksums.
"""

import os
from pathlib import Path
from typing import Dict, Optional

from ._errors import ModFileError, ResolutionError
from ._modfile import parse_modfile
from ._state import TraversalState
from ._type_check import typecheck, typecheck_methods

GO_MOD = "go.mod"
GO_SUM = "go.sum"


@typecheck_methods
class ModuleInfo:
    """Module path plus the import-path prefixes it knows how to place.

    packages maps an import path prefix to a local directory, or to None for
    modules that are required from a remote source and therefore not traced.
    packages[path] is always the module root directory.
    """

    def __init__(self, path: str, dir: Path, packages: Optional[Dict[str, Optional[Path]]] = None):
        self.path = path
        self.dir = dir
        self.packages = {} if packages is None else packages
        self.packages[path] = dir

    def __repr__(self):
        return f"ModuleInfo({self.path!r}, {str(self.dir)!r})"


def _join_clean(base: Path, rel: str) -> Path:
    return Path(os.path.normpath(os.path.join(base, rel)))


@typecheck
def parse_module(state: TraversalState, dir: Path) -> ModuleInfo:
    """Parse <dir>/go.mod and hash go.mod and go.sum.
    Args:    state: Traversal state receiving the checksums
             dir: Module root (absolute)
    Returns: ModuleInfo for the module
    Raises:  ResolutionError if go.mod can't be read or parsed"""
    go_mod = dir / GO_MOD
    try:
        contents = go_mod.read_bytes()
    except OSError as e:
        raise ResolutionError(f"failed to parse module: {e}") from e

    try:
        mod = parse_modfile(str(go_mod), contents)
    except ModFileError as e:
        raise ResolutionError(f"failed to parse module: {e}") from e

    info = ModuleInfo(mod.module, dir)

    for req in mod.requires:
        info.packages[req.path] = None

    for rep in mod.replaces:
        if not rep.is_local:
            continue  # replaced by another remote module, pinned by go.sum
        if os.path.isabs(rep.new_path):
            info.packages[rep.old_path] = Path(rep.new_path)
        else:
            info.packages[rep.old_path] = _join_clean(dir, rep.new_path)

    state.add_checksum(go_mod)
    try:
        state.add_checksum(dir / GO_SUM)
    except FileNotFoundError:
        pass

    return info


@typecheck
def find_module(state: TraversalState, dir: Path) -> ModuleInfo:
    """Find the module enclosing an (absolute) directory.
    Every directory climbed through is remembered in state.modules.
    Raises:  ResolutionError if there is no go.mod upwards of dir"""
    orig_dir = dir
    uncached_dirs = []

    while True:
        info = state.modules.get(dir)
        if info is not None:
            break

        uncached_dirs.append(dir)

        try:
            os.stat(dir / GO_MOD)
        except (FileNotFoundError, NotADirectoryError):
            pass
        except OSError as e:
            raise ResolutionError(f"failed to read {dir}/{GO_MOD}: {e}") from e
        else:
            try:
                info = parse_module(state, dir)
            except ResolutionError as e:
                raise ResolutionError(
                    f"failed to parse enclosing {GO_MOD} for directory {str(orig_dir)!r}: {e}") from e
            break

        parent = dir.parent
        if parent == dir:
            raise ResolutionError(f"failed to find {GO_MOD} anywhere upwards of {str(orig_dir)!r}")
        dir = parent

    for d in uncached_dirs:
        state.modules[d] = info
    return info
