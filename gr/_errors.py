"""
Error taxonomy for gr.

Every fatal condition is raised as a GrError subclass at the seam where it is
detected and reported exactly once by the orchestrator as a single "gr: ..." line.
"""

# Exit statuses reserved by gr. They may collide with the statuses of the wrapped
# program; there is no way to tell them apart from the outside.
EXIT_USAGE = 2
EXIT_FAILURE = 255


class GrError(Exception):
    """Base class for all gr failures."""


class ConfigError(GrError):
    """The environment does not allow gr to locate its cache."""


class ResolutionError(GrError):
    """Source graph can't be resolved: missing/malformed go.mod, bad imports, bad embeds."""


class ModFileError(ResolutionError):
    """go.mod text does not parse."""

    def __init__(self, filename: str, line: int, message: str):
        super().__init__(f"{filename}:{line}: {message}")
        self.filename = filename
        self.line = line


class EmbedError(ResolutionError):
    """A //go:embed directive is malformed or its patterns can't be satisfied."""


class CacheError(GrError):
    """The executable cache can't be opened or cleaned."""


class LockAcquisitionError(CacheError):
    """The per-package cache lock can't be taken."""


class InternalError(GrError):
    """An internal invariant was violated."""


class BuildError(GrError):
    """The compiler could not be started at all."""
