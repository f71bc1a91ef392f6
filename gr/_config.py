"""
Configuration for gr.

Locates the per-user cache root the same way the Go toolchain does and loads the
optional tools.json that overrides the go binary.
"""

import json
import os
import sys
from pathlib import Path
from typing import Dict, Mapping, Optional

from ._errors import ConfigError
from ._type_check import typecheck_methods


NAMESPACE = "gr"
KEEP_CACHE_ENTRIES = 2


def user_cache_dir(environ: Mapping[str, str] = os.environ, platform: str = sys.platform) -> Path:
    """Return the per-user cache root.
    Args:    environ: Environment to read (defaults to os.environ)
             platform: sys.platform value to emulate
    Returns: Absolute cache root path
    Raises:  ConfigError if the environment does not define one"""
    if platform.startswith("win"):
        local_app_data = environ.get("LocalAppData", "")
        if not local_app_data:
            raise ConfigError("%LocalAppData% is not defined")
        return Path(local_app_data).absolute()

    if platform == "darwin":
        home = environ.get("HOME", "")
        if not home:
            raise ConfigError("$HOME is not defined")
        return (Path(home) / "Library" / "Caches").absolute()

    xdg_cache_home = environ.get("XDG_CACHE_HOME", "")
    if xdg_cache_home:
        if not os.path.isabs(xdg_cache_home):
            raise ConfigError("path in $XDG_CACHE_HOME is relative")
        return Path(xdg_cache_home)

    home = environ.get("HOME", "")
    if not home:
        raise ConfigError("neither $XDG_CACHE_HOME nor $HOME are defined")
    return (Path(home) / ".cache").absolute()


@typecheck_methods
class GrConfig:
    """Paths and tool settings derived from the cache root.

    <cache_root>/gr/            data_dir: gr.log, tools.json
    <cache_root>/gr/exe/...     exe_dir: cached executables
    """

    def __init__(self, cache_root: Path, environ: Optional[Dict[str, str]] = None):
        self.cache_root = Path(cache_root)
        self.environ = dict(os.environ) if environ is None else environ
        self.data_dir = self.cache_root / NAMESPACE
        self.exe_dir = self.data_dir / "exe"
        self.log_dir = self.data_dir
        self.keep_entries = KEEP_CACHE_ENTRIES
        self._tools = None

    @classmethod
    def from_environment(cls, environ: Optional[Dict[str, str]] = None) -> 'GrConfig':
        environ = dict(os.environ) if environ is None else environ
        return cls(user_cache_dir(environ), environ)

    def _load_tools(self) -> Dict:
        """Load tools.json (lazy, cached). A missing file means no overrides."""
        if self._tools is None:
            tools_file = self.data_dir / "tools.json"
            try:
                with open(tools_file, 'r', encoding="utf-8") as f:
                    self._tools = json.load(f)
            except FileNotFoundError:
                self._tools = {}
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigError(f"failed to read {tools_file}: {e}") from e
        return self._tools

    @property
    def go_binary(self) -> str:
        """go binary to build with: $GO, then tools.json "go", then "go" from PATH."""
        if "GO" in self.environ:
            return self.environ["GO"]
        return self._load_tools().get("go", "go")
