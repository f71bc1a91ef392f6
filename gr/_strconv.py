"""Go string literal decoding, shared by the go.mod, Go source and //go:embed parsers."""

_SIMPLE_ESCAPES = {
    'a': 0x07, 'b': 0x08, 'f': 0x0c, 'n': 0x0a, 'r': 0x0d, 't': 0x09, 'v': 0x0b,
    '\\': 0x5c, '"': 0x22,
}

_HEX_DIGITS = "0123456789abcdefABCDEF"


def unquote(literal: str) -> str:
    """Decode a Go interpreted ("...") or raw (`...`) string literal.

    Byte escapes producing invalid UTF-8 are kept as surrogate escapes so that
    they round-trip to the filesystem unchanged.
    Raises ValueError if the literal is not a valid Go string."""
    if len(literal) < 2:
        raise ValueError(f"invalid string literal {literal!r}")

    quote = literal[0]
    if quote != literal[-1] or quote not in '"`':
        raise ValueError(f"invalid string literal {literal!r}")
    body = literal[1:-1]

    if quote == '`':
        if '`' in body:
            raise ValueError(f"invalid string literal {literal!r}")
        return body.replace('\r', '')

    if '\n' in body:
        raise ValueError(f"invalid string literal {literal!r}")

    out = bytearray()
    i = 0
    n = len(body)
    while i < n:
        c = body[i]
        if c == '"':
            raise ValueError(f"invalid string literal {literal!r}")
        if c != '\\':
            out += c.encode('utf-8', 'surrogateescape')
            i += 1
            continue

        if i + 1 >= n:
            raise ValueError(f"invalid string literal {literal!r}")
        e = body[i + 1]
        i += 2
        if e in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[e])
        elif e in '01234567':
            digits = body[i - 1:i + 2]
            if len(digits) != 3 or any(d not in '01234567' for d in digits):
                raise ValueError(f"invalid octal escape in {literal!r}")
            value = int(digits, 8)
            if value > 255:
                raise ValueError(f"octal escape value > 255 in {literal!r}")
            out.append(value)
            i += 2
        elif e in 'xuU':
            width = {'x': 2, 'u': 4, 'U': 8}[e]
            digits = body[i:i + width]
            if len(digits) != width or any(d not in _HEX_DIGITS for d in digits):
                raise ValueError(f"invalid \\{e} escape in {literal!r}")
            value = int(digits, 16)
            i += width
            if e == 'x':
                out.append(value)
            else:
                if value > 0x10FFFF or 0xD800 <= value <= 0xDFFF:
                    raise ValueError(f"escape is invalid Unicode code point in {literal!r}")
                out += chr(value).encode('utf-8')
        else:
            raise ValueError(f"unknown escape sequence \\{e} in {literal!r}")

    return out.decode('utf-8', 'surrogateescape')
