"""
Per-computation traversal state.

One TraversalState is created for every fingerprint computation and discarded
afterwards; nothing here is shared between computations, so no locking is needed.
"""

import hashlib
from pathlib import Path
from typing import Dict, Set, TYPE_CHECKING

from ._errors import InternalError
from ._type_check import typecheck_methods

if TYPE_CHECKING:
    from ._module import ModuleInfo

_CHUNK_SIZE = 1 << 16


def hash_file(path: Path) -> str:
    """Calculate SHA-256 of the file contents.
    Returns: 64-character hex string
    Raises:  OSError if the file can't be read"""
    h = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


@typecheck_methods
class TraversalState:
    """Mutable context threaded through module lookup, import resolution and package walking."""

    def __init__(self):
        # absolute filename -> content hash; only ever grows
        self.checksums: Dict[str, str] = {}
        # package directories already walked
        self.packages: Set[Path] = set()
        # directory -> enclosing module, for every directory climbed through
        self.modules: Dict[Path, "ModuleInfo"] = {}

    def add_checksum(self, filename: Path):
        """Hash a file into the state.
        Raises:  InternalError if the file has been hashed already
                 OSError if the file can't be read"""
        key = str(filename)
        if key in self.checksums:
            raise InternalError(f"internal error: a checksum has been requested twice for file {key!r}")
        self.checksums[key] = hash_file(filename)

    def has_checksum(self, filename: Path) -> bool:
        return str(filename) in self.checksums
