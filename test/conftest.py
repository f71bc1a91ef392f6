"""
Shared pytest fixtures for gr tests.

Runtime argument type checking is switched on here, before gr is imported.
"""
import os
import stat
import sys
import time
from pathlib import Path
from typing import Dict, List

import pytest

os.environ["GR_TYPECHECK"] = "1"

# Add project root to Python path
root_dir = Path(__file__).parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

from gr import GrConfig, GrLogger  # noqa: E402


posix_only = pytest.mark.skipif(os.name != "posix", reason="fake executables are shell scripts")

# Written next to the cache entries by fake executables; dotfiles are not entries
LAST_RUN = ".last_run"


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    """Create files below root. Keys are slash-separated relative paths."""
    for rel, content in files.items():
        path = root.joinpath(*rel.split("/"))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def main_go(imports: List[str] = (), body: str = "") -> str:
    lines = ["package main", ""]
    if imports:
        lines.append("import (")
        lines.extend(f'\t"{imp}"' for imp in imports)
        lines.append(")")
        lines.append("")
    lines.append("func main() {")
    if body:
        lines.append("\t" + body)
    lines.append("}")
    return "\n".join(lines) + "\n"


class FakeCompiler:
    """Stands in for GoCompiler: writes a shell script that exits with a fixed status."""

    def __init__(self, exit_code: int = 0, succeed: bool = True, executable: bool = True):
        self.exit_code = exit_code
        self.succeed = succeed
        self.executable = executable
        self.builds = []

    def build(self, package_dir, output_path, flags, env) -> bool:
        self.builds.append((Path(package_dir), Path(output_path), list(flags), dict(env)))
        if not self.succeed:
            return False
        output_path = Path(output_path)
        output_path.write_text(
            "#!/bin/sh\n"
            f'echo "$*" > "{output_path.parent / LAST_RUN}"\n'
            f"exit {self.exit_code}\n"
        )
        mode = 0o755 if self.executable else 0o644
        os.chmod(output_path, mode)
        # Strictly increasing mtimes keep retention order independent of timestamp granularity
        stamp = time.time() + len(self.builds)
        os.utime(output_path, (stamp, stamp))
        return True


@pytest.fixture
def module_tree(tmp_path):
    """A minimal main module: example.com/app with one main package."""
    root = tmp_path / "src" / "app"
    write_tree(root, {
        "go.mod": "module example.com/app\n\ngo 1.22\n",
        "main.go": main_go(["fmt"], 'fmt.Println("hello")'),
    })
    return root


@pytest.fixture
def cache_root(tmp_path):
    root = tmp_path / "cache"
    root.mkdir()
    return root


@pytest.fixture
def gr_config(cache_root):
    return GrConfig(cache_root, environ={})


@pytest.fixture
def gr_logger(gr_config):
    logger = GrLogger(gr_config.log_dir)
    yield logger
    logger.close()


@pytest.fixture
def fake_compiler():
    return FakeCompiler()


def is_executable(path: Path) -> bool:
    return bool(os.stat(path).st_mode & stat.S_IXUSR)
