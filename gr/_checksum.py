"""
Fingerprint calculation.

Walks the source tree of a package and its local dependencies (without asking
`go list`, which is too slow for every run) and folds file contents, compiler
flags and compiler-affecting environment into one digest.

The fingerprint is a cache key, not a proof: returning a fresh random value on
every call would be correct but useless. The only failure that matters is the
same value for different inputs.
"""

import hashlib
import json
import os
from pathlib import Path
from typing import Dict, List, Mapping

from ._errors import ResolutionError
from ._state import TraversalState
from ._type_check import typecheck
from ._walker import parse_package

# Environment variables that change what the go command builds
COMPILER_ENV_VARS = (
    "AR",
    "CC",
    "CGO_CFLAGS",
    "CGO_CPPFLAGS",
    "CGO_CXXFLAGS",
    "CGO_ENABLED",
    "CGO_FFLAGS",
    "CGO_LDFLAGS",
    "CXX",
    "GCCGO",
    "GO111MODULE",
    "GOARCH",
    "GOARM64",
    "GODEBUG",
    "GOEXE",
    "GOEXPERIMENT",
    "GOFLAGS",
    "GOHOSTARCH",
    "GOHOSTOS",
    "GOMOD",
    "GOOS",
    "GOPATH",
    "GOROOT",
    "GOTOOLCHAIN",
    "GOTOOLDIR",
    "GOVERSION",
)


def compiler_env(environ: Mapping[str, str] = os.environ) -> Dict[str, str]:
    """Pick the compiler-affecting variables that are set. Unset ones are left out,
    so setting a variable to "" still changes the fingerprint."""
    return {name: environ[name] for name in COMPILER_ENV_VARS if name in environ}


@typecheck
def package_source_checksums(dir: Path) -> Dict[str, str]:
    """Hash every file that the build of the package in dir depends on.
    Returns: Mapping of absolute filename to SHA-256 hex digest
    Raises:  ResolutionError if the source graph can't be resolved"""
    abs_dir = Path(os.path.abspath(dir))
    state = TraversalState()
    try:
        parse_package(state, abs_dir)
    except (ResolutionError, OSError) as e:
        raise ResolutionError(f"failed to calculate checksum for {str(dir)!r}: {e}") from e
    return state.checksums


def fingerprint(file_checksums: Dict[str, str], compiler_flags: List[str], env: Dict[str, str]) -> str:
    """Fold file checksums, ordered compiler flags and environment into one hex digest."""
    canonical = json.dumps(
        [file_checksums, list(compiler_flags), env],
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode('utf-8', 'surrogateescape')).hexdigest()


@typecheck
def checksum(dir: Path, compiler_flags: List[str], env: Dict[str, str]) -> str:
    """Calculate the cache key of the package in dir.
    Args:    dir: Package directory (absolute or relative to CWD)
             compiler_flags: go build flags, already in canonical order
             env: Compiler-affecting environment (see compiler_env)
    Returns: 64-character hex fingerprint
    Raises:  ResolutionError if the source graph can't be resolved"""
    return fingerprint(package_source_checksums(dir), compiler_flags, env)
