"""Delimiter splitting that respects brackets and quotes."""

from __future__ import annotations

_OPENERS = "([{"
_CLOSERS = ")]}"
_QUOTES = "'\""
_ESCAPE = "\\"


def split_balanced(text: str, delimiter: str = ",") -> list[str]:
    """
    Split ``text`` on ``delimiter`` only at the top nesting level.

    Delimiters inside (), [], {} or inside a quoted section are kept.
    Brackets inside quotes do not count. A backslash before a bracket, a
    quote or the delimiter makes that character literal and is dropped;
    any other backslash is kept as is. Parts are not trimmed.

    Example:
        >>> split_balanced("a(b,c),d", ",")
        ['a(b,c)', 'd']
        >>> split_balanced("lower(name), 'x, y'", ",")
        ['lower(name)', " 'x, y'"]
    """
    if not delimiter:
        raise ValueError("delimiter must not be empty")

    structural = _OPENERS + _CLOSERS + _QUOTES
    parts: list[str] = []
    buffer: list[str] = []
    stack: list[str] = []
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch == _ESCAPE and i + 1 < n:
            nxt = text[i + 1]
            if nxt in structural:
                buffer.append(nxt)
                i += 2
                continue
            if text.startswith(delimiter, i + 1):
                buffer.append(delimiter)
                i += 1 + len(delimiter)
                continue

        if stack and stack[-1] in _QUOTES:
            # Inside a quote only the matching quote is structural
            if ch == stack[-1]:
                stack.pop()
            buffer.append(ch)
            i += 1
            continue

        if ch in _QUOTES or ch in _OPENERS:
            stack.append(ch)
        elif ch in _CLOSERS:
            if stack:
                stack.pop()
        elif not stack and text.startswith(delimiter, i):
            parts.append("".join(buffer))
            buffer = []
            i += len(delimiter)
            continue

        buffer.append(ch)
        i += 1

    parts.append("".join(buffer))
    return parts
