"""
go.mod parsing.

A conformant reading of the module-declaration file: lexes tokens line by line,
expands factored "verb ( ... )" blocks and validates each directive. Only the
module path, requirements and replacements are kept; other directives are checked
for shape and dropped.
"""

import re
from typing import List, NamedTuple, Optional

from ._errors import ModFileError
from ._strconv import unquote


class Require(NamedTuple):
    path: str
    version: str
    indirect: bool


class Replace(NamedTuple):
    old_path: str
    old_version: Optional[str]
    new_path: str
    new_version: Optional[str]

    @property
    def is_local(self) -> bool:
        """A replacement without a version points at a directory on disk."""
        return self.new_version is None


class ModFile:
    """Parsed go.mod contents."""

    def __init__(self, module: str, go_version: Optional[str], requires: List[Require], replaces: List[Replace]):
        self.module = module
        self.go_version = go_version
        self.requires = requires
        self.replaces = replaces

    def __repr__(self):
        return f"ModFile({self.module!r}, requires={len(self.requires)}, replaces={len(self.replaces)})"


class _Token(NamedTuple):
    kind: str  # 'punct', 'str' or 'ident'
    text: str


_TOKEN_RE = re.compile(r'''
      (?P<space>[ \t\r]+)
    | (?P<comment>//.*)
    | (?P<block_comment>/\*)
    | (?P<punct>[()\[\]{},])
    | (?P<quoted>"(?:[^"\\\n]|\\.)*"?)
    | (?P<raw>`[^`]*`?)
    | (?P<ident>(?:[^\s()\[\]{},"`/]|/(?!/))+)
''', re.VERBOSE)

_GO_VERSION_RE = re.compile(r'^([1-9][0-9]*)\.(0|[1-9][0-9]*)(\.(0|[1-9][0-9]*))?([a-z]+[0-9]+)?$')

# Pre-release identifier; all-zero numbers other than "0" are invalid
_SEMVER_IDENT = r'(?!00+(?![0-9A-Za-z-]))[0-9A-Za-z-]+'

# Canonical semantic versions only; build metadata other than +incompatible is rejected
_SEMVER_RE = re.compile(rf'''^v(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)
    (?:-{_SEMVER_IDENT}(?:\.{_SEMVER_IDENT})*)?
    (?:\+incompatible)?$''', re.VERBOSE)

_BLOCK_VERBS = {"require", "exclude", "replace", "retract", "godebug", "tool", "ignore"}


def is_directory_path(path: str) -> bool:
    """Report whether a replacement target names a directory rather than a module."""
    return (path in (".", "..")
            or path.startswith(("./", ".\\", "../", "..\\", "/", "\\"))
            or (len(path) >= 2 and path[0].isascii() and path[0].isalpha() and path[1] == ":"))


def _lex_line(filename: str, lineno: int, line: str):
    """Split one line into tokens. Returns (tokens, comment_text)."""
    tokens = []
    comment = ""
    pos = 0
    while pos < len(line):
        m = _TOKEN_RE.match(line, pos)
        if m is None:
            raise ModFileError(filename, lineno, f"unexpected input character {line[pos]!r}")
        pos = m.end()
        kind = m.lastgroup
        text = m.group()
        if kind == "space":
            continue
        if kind == "comment":
            comment = text[2:].strip()
            break
        if kind == "block_comment":
            raise ModFileError(filename, lineno, "mod files must use // comments, not /* */ comments")
        if kind in ("quoted", "raw"):
            try:
                text = unquote(text)
            except ValueError:
                raise ModFileError(filename, lineno, f"unterminated or invalid quoted string {text}") from None
            tokens.append(_Token("str", text))
            continue
        tokens.append(_Token(kind, text))
    return tokens, comment


def _statements(filename: str, text: str):
    """Yield (lineno, verb, args, comment) with factored blocks expanded."""
    block_verb = None
    block_line = 0
    for lineno, line in enumerate(text.splitlines(), start=1):
        tokens, comment = _lex_line(filename, lineno, line)
        if not tokens:
            continue

        if block_verb is not None:
            if tokens == [_Token("punct", ")")]:
                block_verb = None
                continue
            if any(t.kind == "punct" and t.text in "()" for t in tokens):
                raise ModFileError(filename, lineno, "unexpected parenthesis inside block")
            yield lineno, block_verb, tokens, comment
            continue

        head = tokens[0]
        if head.kind != "ident":
            raise ModFileError(filename, lineno, f"unexpected {head.text!r} at start of line")

        if len(tokens) >= 2 and tokens[1] == _Token("punct", "("):
            if head.text not in _BLOCK_VERBS:
                raise ModFileError(filename, lineno, f"{head.text} directive cannot be a block")
            if tokens[2:] == [_Token("punct", ")")]:
                continue  # "require ()"
            if len(tokens) != 2:
                raise ModFileError(filename, lineno, "block opening parenthesis must end the line")
            block_verb = head.text
            block_line = lineno
            continue

        if any(t.kind == "punct" and t.text in "()" for t in tokens[1:]):
            raise ModFileError(filename, lineno, "unexpected parenthesis")
        yield lineno, head.text, tokens[1:], comment

    if block_verb is not None:
        raise ModFileError(filename, block_line, f"unterminated {block_verb} block")


def _string_args(filename: str, lineno: int, verb: str, args, count: int) -> List[str]:
    if len(args) != count or any(a.kind == "punct" for a in args):
        raise ModFileError(filename, lineno, f"usage: {verb} takes {count} argument{'s' if count > 1 else ''}")
    return [a.text for a in args]


def _check_version(filename: str, lineno: int, verb: str, path: str, version: str) -> str:
    if not _SEMVER_RE.match(version):
        raise ModFileError(filename, lineno,
                           f"{verb} {path}: version {version!r} invalid: must be of the form v1.2.3")
    return version


def _parse_replace(filename: str, lineno: int, args) -> Replace:
    usage = ("usage: replace module/path [v1.2.3] => other/module v1.4\n"
             "\t or replace module/path [v1.2.3] => ../local/directory")
    texts = [a.text if a.kind != "punct" else None for a in args]
    if None in texts or "=>" not in texts:
        raise ModFileError(filename, lineno, usage)
    arrow = texts.index("=>")
    before, after = texts[:arrow], texts[arrow + 1:]
    if len(before) not in (1, 2) or len(after) not in (1, 2):
        raise ModFileError(filename, lineno, usage)

    old_path = before[0]
    old_version = None
    if len(before) == 2:
        old_version = _check_version(filename, lineno, "replace", old_path, before[1])

    new_path = after[0]
    if len(after) == 1:
        if not is_directory_path(new_path):
            raise ModFileError(filename, lineno,
                               "replacement module without version must be directory path "
                               "(rooted or starting with ./ or ../)")
        return Replace(old_path, old_version, new_path, None)

    if is_directory_path(new_path):
        raise ModFileError(filename, lineno,
                           f"replacement module directory path {new_path!r} cannot have version")
    new_version = _check_version(filename, lineno, "replace", new_path, after[1])
    return Replace(old_path, old_version, new_path, new_version)


def _check_retract(filename: str, lineno: int, args):
    texts = [a.text for a in args]
    if len(texts) == 1 and args[0].kind != "punct":
        _check_version(filename, lineno, "retract", "", texts[0])
        return
    if (len(texts) == 5 and texts[0] == "[" and texts[2] == "," and texts[4] == "]"
            and args[1].kind != "punct" and args[3].kind != "punct"):
        _check_version(filename, lineno, "retract", "", texts[1])
        _check_version(filename, lineno, "retract", "", texts[3])
        return
    raise ModFileError(filename, lineno, "usage: retract v1.2.3 or retract [v1.2.3, v1.3.0]")


def parse_modfile(filename: str, data: bytes) -> ModFile:
    """Parse go.mod contents.
    Args:    filename: Name used in error messages
             data: Raw file contents
    Returns: ModFile
    Raises:  ModFileError on malformed contents"""
    try:
        text = data.decode('utf-8')
    except UnicodeDecodeError:
        raise ModFileError(filename, 1, "invalid UTF-8") from None

    module = None
    go_version = None
    requires = []
    replaces = []

    for lineno, verb, args, comment in _statements(filename, text):
        if verb == "module":
            path, = _string_args(filename, lineno, verb, args, 1)
            if module is not None:
                raise ModFileError(filename, lineno, "repeated module statement")
            if not path:
                raise ModFileError(filename, lineno, "empty module path")
            module = path
        elif verb == "go":
            version, = _string_args(filename, lineno, verb, args, 1)
            if go_version is not None:
                raise ModFileError(filename, lineno, "repeated go statement")
            if not _GO_VERSION_RE.match(version):
                raise ModFileError(filename, lineno,
                                   f"invalid go version {version!r}: must match format 1.23.0")
            go_version = version
        elif verb in ("toolchain", "godebug", "tool", "ignore"):
            _string_args(filename, lineno, verb, args, 1)
        elif verb in ("require", "exclude"):
            path, version = _string_args(filename, lineno, verb, args, 2)
            _check_version(filename, lineno, verb, path, version)
            if verb == "require":
                requires.append(Require(path, version, comment == "indirect" or comment.startswith("indirect;")))
        elif verb == "replace":
            replaces.append(_parse_replace(filename, lineno, args))
        elif verb == "retract":
            _check_retract(filename, lineno, args)
        else:
            raise ModFileError(filename, lineno, f"unknown directive: {verb}")

    if module is None:
        raise ModFileError(filename, 1, "no module directive found")

    return ModFile(module, go_version, requires, replaces)
