"""gr - Cached `go run`

gr runs a Go main package like `go run`, but keeps the built executable in a
per-user cache keyed by a fingerprint of everything the build depends on: the
package's local sources (transitively, across locally replaced modules), go.mod
and go.sum files, embedded files, compilation flags and compiler-affecting
environment. When nothing changed the program is started directly, without
invoking the Go toolchain.

Example usage:
    from gr import Gr, GrConfig, GrLogger

    config = GrConfig.from_environment()
    gr = Gr(config, GrLogger(config.log_dir))
    returncode = gr.run("./cmd/tool", ["--verbose"], compiler_flags=["-race"], compiler_env={})
"""

from ._checksum import checksum, compiler_env
from ._config import GrConfig
from ._errors import GrError
from ._gr import Gr, main
from ._logger import GrLogger

__all__ = ['Gr', 'GrConfig', 'GrLogger', 'GrError', 'checksum', 'compiler_env', 'main']
