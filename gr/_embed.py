"""
//go:embed support.

parse_go_embed() reads the directive arguments; resolve_embed() expands the
patterns of one package into the files the compiler will embed. The rules follow
the go command: glob syntax of path.Match, module boundaries stop directory
walks, hidden files are skipped unless the pattern starts with "all:", and names
that can't appear in a module zip are rejected.

glob() is usable on its own as a generic "expand slash-separated glob relative to
a directory" helper.
"""

import os
import re
import stat
from pathlib import Path
from typing import Dict, List, Set

from ._errors import EmbedError
from ._module import GO_MOD
from ._strconv import unquote
from ._type_check import typecheck

ALL_PREFIX = "all:"

_VCS_DIRS = {".bzr", ".hg", ".git", ".svn"}

_BAD_WINDOWS_NAMES = {"CON", "PRN", "AUX", "NUL"} | \
    {f"COM{i}" for i in range(1, 10)} | {f"LPT{i}" for i in range(1, 10)}

_FILE_NAME_PUNCT = "!#$%&()+,-.=@[]^_{}~ "

_GLOB_META = "*?[\\"


def parse_go_embed(args: str) -> List[str]:
    """Split the text following "//go:embed" into patterns.
    Accepts unquoted space-separated patterns as well as double-quoted and
    back-quoted Go strings.
    Raises:  EmbedError on malformed quoting"""
    patterns = []
    args = args.strip()
    while args:
        if args[0] == '`':
            end = args.find('`', 1)
            if end < 0:
                raise EmbedError(f"invalid quoted string in //go:embed: {args}")
            path = args[1:end]
            args = args[end + 1:]

        elif args[0] == '"':
            i = 1
            while i < len(args):
                if args[i] == '\\':
                    i += 2
                    continue
                if args[i] == '"':
                    break
                i += 1
            if i >= len(args):
                raise EmbedError(f"invalid quoted string in //go:embed: {args}")
            try:
                path = unquote(args[:i + 1])
            except ValueError:
                raise EmbedError(f"invalid quoted string in //go:embed: {args[:i + 1]}") from None
            args = args[i + 1:]

        else:
            end = len(args)
            for j, c in enumerate(args):
                if c.isspace():
                    end = j
                    break
            path = args[:end]
            args = args[end:]

        if args and not args[0].isspace():
            raise EmbedError(f"invalid quoted string in //go:embed: {args}")
        patterns.append(path)
        args = args.strip()

    return patterns


def _class_char(segment: str, i: int):
    """Read one (possibly escaped) character of a [...] class. Returns (char, next index)."""
    if i >= len(segment) or segment[i] in "-]":
        raise ValueError("syntax error in pattern")
    if segment[i] == '\\':
        i += 1
        if i >= len(segment):
            raise ValueError("syntax error in pattern")
    return segment[i], i + 1


def _translate_segment(segment: str) -> str:
    """Translate one path element of a path.Match pattern into a regular expression.
    Raises:  ValueError on malformed patterns"""
    out = []
    i = 0
    n = len(segment)
    while i < n:
        c = segment[i]
        if c == '*':
            out.append('.*')
            i += 1
        elif c == '?':
            out.append('.')
            i += 1
        elif c == '\\':
            if i + 1 >= n:
                raise ValueError("syntax error in pattern")
            out.append(re.escape(segment[i + 1]))
            i += 2
        elif c == '[':
            i += 1
            negate = i < n and segment[i] == '^'
            if negate:
                i += 1
            items = []
            nranges = 0
            while True:
                if i < n and segment[i] == ']' and nranges > 0:
                    i += 1
                    break
                lo, i = _class_char(segment, i)
                hi = lo
                if i < n and segment[i] == '-':
                    hi, i = _class_char(segment, i + 1)
                nranges += 1
                if lo == hi:
                    items.append(re.escape(lo))
                elif lo < hi:
                    items.append(f"{re.escape(lo)}-{re.escape(hi)}")
                # lo > hi is accepted and matches nothing
            if items:
                out.append(f"[{'^' if negate else ''}{''.join(items)}]")
            else:
                out.append('.' if negate else '(?!)')
        else:
            out.append(re.escape(c))
            i += 1
    return ''.join(out)


def _compile_pattern(pattern: str) -> List["re.Pattern"]:
    return [re.compile(_translate_segment(s), re.DOTALL) for s in pattern.split('/')]


def _has_meta(segment: str) -> bool:
    return any(c in _GLOB_META for c in segment)


def valid_path(name: str) -> bool:
    """Report whether name is an unrooted, slash-separated path without empty, "." or ".." elements."""
    try:
        name.encode('utf-8')
    except UnicodeEncodeError:
        return False
    if name == ".":
        return True
    return all(elem not in ("", ".", "..") for elem in name.split('/'))


def valid_embed_pattern(pattern: str) -> bool:
    return pattern != "." and valid_path(pattern)


def _file_name_char_ok(c: str) -> bool:
    if c.isascii():
        return c.isalnum() or c in _FILE_NAME_PUNCT
    return c.isalpha()


def check_file_name(name: str) -> str:
    """Check one element of a module file path.
    Returns: Empty string if the name is acceptable, otherwise the reason"""
    try:
        name.encode('utf-8')
    except UnicodeEncodeError:
        return "invalid UTF-8"
    if not name:
        return "empty path element"
    if name.count('.') == len(name):
        return f"invalid path element {name!r}"
    if name.endswith('.'):
        return "trailing dot in path element"
    for c in name:
        if not _file_name_char_ok(c):
            return f"invalid char {c!r}"
    short = name.split('.', 1)[0]
    if short.upper() in _BAD_WINDOWS_NAMES:
        return f"{short!r} disallowed as path element component on Windows"
    tilde = short.rfind("~")
    if 0 <= tilde < len(short) - 1 and all("0" <= c <= "9" for c in short[tilde + 1:]):
        return "trailing tilde and digits in path element"
    return ""


def is_bad_embed_name(name: str) -> bool:
    """Report whether a file or directory name can't be part of a module and so can't be embedded."""
    if check_file_name(name):
        return True
    return name in _VCS_DIRS


@typecheck
def glob(dir: Path, pattern: str) -> List[Path]:
    """Expand a slash-separated path.Match pattern relative to dir.
    Matches are returned sorted within each directory, hidden names included.
    Raises:  ValueError on malformed patterns"""
    segments = pattern.split('/')
    regexes = _compile_pattern(pattern)

    if not any(_has_meta(s) for s in segments):
        target = dir.joinpath(*segments)
        try:
            os.lstat(target)
        except OSError:
            return []
        return [target]

    def expand(depth: int) -> List[Path]:
        # matches for segments[:depth]
        if depth == 0:
            return [dir]
        if not any(_has_meta(s) for s in segments[:depth]):
            return [dir.joinpath(*segments[:depth])]

        matches = []
        for parent in expand(depth - 1):
            try:
                if not stat.S_ISDIR(os.stat(parent).st_mode):
                    continue
                names = sorted(os.listdir(parent))
            except OSError:
                continue  # I/O errors just mean no matches
            regex = regexes[depth - 1]
            for name in names:
                if regex.fullmatch(name):
                    matches.append(parent / name)
        return matches

    return expand(len(segments))


def _dir_has_module(dir: Path) -> bool:
    try:
        os.stat(dir / GO_MOD)
    except OSError:
        return False
    return True


@typecheck
def resolve_embed(pkgdir: Path, patterns: List[str]) -> List[str]:
    """Expand //go:embed patterns of one package.
    Args:    pkgdir: Absolute package directory
             patterns: Patterns as written in the directives, "all:" prefixes included
    Returns: Sorted, deduplicated slash-separated paths relative to pkgdir
    Raises:  EmbedError if a pattern is invalid, matches nothing, or matches
             something that can't be embedded"""
    have: Dict[str, int] = {}
    dir_ok: Set[Path] = set()
    pkgdir_len = len(str(pkgdir))

    def rel_path(path: Path) -> str:
        return path.relative_to(pkgdir).as_posix()

    for pid, pattern in enumerate(patterns, start=1):
        glob_pattern = pattern
        include_all = pattern.startswith(ALL_PREFIX)
        if include_all:
            glob_pattern = pattern[len(ALL_PREFIX):]

        try:
            _compile_pattern(glob_pattern)
        except ValueError:
            raise EmbedError(f"pattern {pattern}: invalid pattern syntax") from None
        if not valid_embed_pattern(glob_pattern):
            raise EmbedError(f"pattern {pattern}: invalid pattern syntax")

        files = []
        for match in glob(pkgdir, glob_pattern):
            rel = rel_path(match)

            try:
                info = os.lstat(match)
            except OSError as e:
                raise EmbedError(f"pattern {pattern}: {e}") from e
            what = "directory" if stat.S_ISDIR(info.st_mode) else "file"

            # Checked in order, from the match up to the package directory:
            # module boundary, non-directory ancestor, invalid name.
            d = match
            while len(str(d)) > pkgdir_len + 1 and d not in dir_ok:
                if _dir_has_module(d):
                    raise EmbedError(f"pattern {pattern}: cannot embed {what} {rel}: in different module")
                if d != match:
                    try:
                        if not stat.S_ISDIR(os.lstat(d).st_mode):
                            raise EmbedError(f"pattern {pattern}: cannot embed {what} {rel}: "
                                             f"in non-directory {rel_path(d)}")
                    except OSError:
                        pass
                dir_ok.add(d)
                if is_bad_embed_name(d.name):
                    if d == match:
                        raise EmbedError(f"pattern {pattern}: cannot embed {what} {rel}: invalid name {d.name}")
                    raise EmbedError(f"pattern {pattern}: cannot embed {what} {rel}: "
                                     f"in invalid directory {d.name}")
                d = d.parent

            if stat.S_ISREG(info.st_mode):
                if have.get(rel) != pid:
                    have[rel] = pid
                    files.append(rel)

            elif stat.S_ISDIR(info.st_mode):
                count = _walk_embed_dir(match, include_all, pid, have, files, rel_path)
                if count == 0:
                    raise EmbedError(f"pattern {pattern}: cannot embed directory {rel}: "
                                     f"contains no embeddable files")

            else:
                raise EmbedError(f"pattern {pattern}: cannot embed irregular file {rel}")

        if not files:
            raise EmbedError(f"pattern {pattern}: no matching files found")

    return sorted(have)


def _walk_embed_dir(root: Path, include_all: bool, pid: int, have: Dict[str, int],
                    files: List[str], rel_path) -> int:
    """Collect regular files under root, stopping at nested modules and skipping
    names that wouldn't be packaged into a module. Returns the number of files seen."""
    count = 0

    def visit(path: Path, mode: int):
        nonlocal count
        name = path.name
        if path != root and (is_bad_embed_name(name) or (name[0] in "._" and not include_all)):
            return

        if stat.S_ISDIR(mode):
            if _dir_has_module(path):
                return
            try:
                names = sorted(os.listdir(path))
            except FileNotFoundError:
                return
            except OSError as e:
                raise EmbedError(f"cannot embed directory {rel_path(root)}: {e}") from e
            for child_name in names:
                child = path / child_name
                try:
                    child_mode = os.lstat(child).st_mode
                except FileNotFoundError:
                    continue  # vanished while walking
                visit(child, child_mode)
            return

        if not stat.S_ISREG(mode):
            return

        count += 1
        rel = rel_path(path)
        if have.get(rel) != pid:
            have[rel] = pid
            files.append(rel)

    visit(root, os.lstat(root).st_mode)
    return count
