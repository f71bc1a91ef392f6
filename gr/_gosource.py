"""
Go source scanning.

Tokenizes a Go file just enough to read its package clause and import
declarations, and to find //go:embed line comments anywhere in the file.
Comments, string literals and rune literals are recognized so that import-like
or directive-like text inside them is never picked up.
"""

import re
from typing import List, NamedTuple

from ._errors import ResolutionError
from ._strconv import unquote

EMBED_DIRECTIVE = "//go:embed "

_BOM = "\ufeff"

_GO_TOKEN_RE = re.compile(r'''
      (?P<space>\s+)
    | (?P<line_comment>//[^\n]*)
    | (?P<block_comment>/\*.*?\*/)
    | (?P<raw>`[^`]*`)
    | (?P<string>"(?:[^"\\\n]|\\.)*")
    | (?P<rune>'(?:[^'\\\n]|\\.)*')
    | (?P<ident>[^\W\d]\w*)
    | (?P<number>\d[\w.]*)
    | (?P<other>.)
''', re.VERBOSE | re.DOTALL)


class GoSource(NamedTuple):
    package: str
    imports: List[str]
    embed_directives: List[str]  # text following "//go:embed "


class _Token(NamedTuple):
    kind: str
    text: str
    line: int


def _tokenize(text: str):
    """Yield (tokens without whitespace/comments, embed directive texts)."""
    tokens = []
    embeds = []
    line = 1
    for m in _GO_TOKEN_RE.finditer(text):
        kind = m.lastgroup
        value = m.group()
        if kind == "line_comment":
            if value.startswith(EMBED_DIRECTIVE):
                embeds.append(value[len(EMBED_DIRECTIVE):].rstrip('\r'))
        elif kind not in ("space", "block_comment"):
            tokens.append(_Token(kind, value, line))
        line += value.count('\n')
    return tokens, embeds


class _HeaderParser:
    """Recursive-descent reader for the package clause and import declarations."""

    def __init__(self, filename: str, tokens: List[_Token]):
        self.filename = filename
        self.tokens = tokens
        self.pos = 0

    def _error(self, message: str):
        line = self.tokens[self.pos].line if self.pos < len(self.tokens) else \
            (self.tokens[-1].line if self.tokens else 1)
        return ResolutionError(f"failed to parse {self.filename}:{line}: {message}")

    def _peek(self):
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self):
        tok = self._peek()
        if tok is None:
            raise self._error("unexpected end of file")
        self.pos += 1
        return tok

    def _skip_semicolons(self):
        while self._peek() is not None and self._peek().text == ';':
            self.pos += 1

    def _import_spec(self) -> str:
        tok = self._next()
        if tok.kind == "ident" or tok.text == '.':
            tok = self._next()  # named, dot or blank import
        if tok.kind not in ("string", "raw"):
            raise self._error(f"expected import path, found {tok.text!r}")
        try:
            path = unquote(tok.text)
        except ValueError:
            raise self._error(f"invalid import path {tok.text}") from None
        if not path:
            raise self._error("empty import path")
        return path

    def parse(self):
        self._skip_semicolons()
        tok = self._next()
        if tok.text != "package":
            raise self._error(f"expected 'package', found {tok.text!r}")
        name = self._next()
        if name.kind != "ident":
            raise self._error(f"expected package name, found {name.text!r}")

        imports = []
        while True:
            self._skip_semicolons()
            tok = self._peek()
            if tok is None or tok.text != "import":
                break
            self.pos += 1

            if self._peek() is not None and self._peek().text == '(':
                self.pos += 1
                while True:
                    self._skip_semicolons()
                    tok = self._peek()
                    if tok is None:
                        raise self._error("unterminated import block")
                    if tok.text == ')':
                        self.pos += 1
                        break
                    imports.append(self._import_spec())
            else:
                imports.append(self._import_spec())

        return name.text, imports


def scan_go_source(filename: str, text: str) -> GoSource:
    """Read imports and //go:embed directives from Go source text.
    Raises:  ResolutionError if the package clause or imports are malformed"""
    if text.startswith(_BOM):
        text = text[1:]
    tokens, embeds = _tokenize(text)
    package, imports = _HeaderParser(filename, tokens).parse()
    return GoSource(package, imports, embeds)
