"""
Command line of gr.

    gr [go build opts] <pkg> [arguments]

Options are accepted before the package only; everything after the package is
passed to the program untouched. Options are spelled with a single dash as in
`go build` (-race, -gcflags=...); the double-dash spelling works too.
"""

import argparse
import os
from typing import Dict, List, Mapping, Optional

from ._checksum import compiler_env
from ._type_check import typecheck_methods

USAGE = "gr [go build opts] <pkg> [arguments]"

# Passed through to go build
BOOL_FLAGS = ("race", "msan", "asan", "cover", "v", "work", "x")
STRING_FLAGS = ("covermode", "coverpkg", "asmflags", "gcflags", "ldflags")

# Useless for a `go run` replacement or not trivial to implement. Rejected
# instead of being silently ignored.
UNSUPPORTED_FLAGS = (
    "a", "C", "n", "p", "buildmode", "buildvcs", "compiler", "gccgoflags", "installsuffix", "linkshared",
    "mod", "modcacherw", "modfile", "overlay", "pgo", "pkgdir", "tags", "trimpath", "toolexec",
)

UNSUPPORTED_MESSAGE = "this compilation flag is not (yet) supported by gr"


@typecheck_methods
class ParsedCLI:
    """Result of command line parsing."""

    def __init__(self, package_path: str, run_args: List[str], compiler_flags: List[str],
                 compiler_env: Dict[str, str], debug: bool = False):
        self.package_path = package_path
        self.run_args = run_args
        self.compiler_flags = compiler_flags
        self.compiler_env = compiler_env
        self.debug = debug

    def __repr__(self):
        return (f"ParsedCLI(package_path={self.package_path!r}, run_args={self.run_args!r}, "
                f"compiler_flags={self.compiler_flags!r}, debug={self.debug!r})")


class _UnsupportedFlag(argparse.Action):
    def __call__(self, parser, namespace, values, option_string=None):
        parser.error(f'invalid value "{values}" for flag {option_string}: {UNSUPPORTED_MESSAGE}')


def _spellings(name: str) -> List[str]:
    return [f"-{name}", f"--{name}"]


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gr",
        usage=USAGE,
        description="Run a Go program, building it only when its sources have changed.",
        allow_abbrev=False,
    )

    for name in BOOL_FLAGS:
        parser.add_argument(*_spellings(name), dest=f"bool_{name}", action="store_true",
                            help="as in 'go build'")
    for name in STRING_FLAGS:
        parser.add_argument(*_spellings(name), dest=f"string_{name}", default="", metavar="VALUE",
                            help="as in 'go build'")
    for name in UNSUPPORTED_FLAGS:
        parser.add_argument(*_spellings(name), dest=f"unsupported_{name}", action=_UnsupportedFlag,
                            metavar="VALUE", help=argparse.SUPPRESS)

    parser.add_argument("-debug", "--debug", action="store_true", help="enable debug output")

    parser.add_argument("package", metavar="pkg", help="directory of the main package")
    parser.add_argument("arguments", nargs=argparse.REMAINDER, help="arguments passed to the program")
    return parser


def parse_cli(argv: Optional[List[str]] = None, environ: Mapping[str, str] = os.environ) -> ParsedCLI:
    """Parse gr's command line.
    Args:    argv: Arguments without the program name (defaults to sys.argv[1:])
             environ: Environment to pick compiler-affecting variables from
    Returns: ParsedCLI
    Raises:  SystemExit(2) on usage errors, SystemExit(0) for --help"""
    args = create_parser().parse_args(argv)

    # Canonical order: bool flags, then string flags, each in table order
    compiler_flags = [f"-{name}" for name in BOOL_FLAGS if getattr(args, f"bool_{name}")]
    for name in STRING_FLAGS:
        value = getattr(args, f"string_{name}")
        if value:
            compiler_flags.extend([f"-{name}", value])

    return ParsedCLI(
        package_path=args.package,
        run_args=list(args.arguments),
        compiler_flags=compiler_flags,
        compiler_env=compiler_env(environ),
        debug=args.debug,
    )
