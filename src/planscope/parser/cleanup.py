"""
Source normalization for pasted plan reports.

Plans rarely arrive clean. They are copied out of psql with ``|`` frames
and ``+`` continuation marks, out of pgAdmin with quoted lines and ``↵``
markers, out of box-drawing table renderers, and with a ``(N rows)`` footer
in whatever language the client speaks. ``cleanup_source`` strips all of
that so format sniffing and the grammar only see the report itself.

Each transform is a plain ``re.sub``; a pattern that does not occur is a
no-op, so cleanup never fails.
"""

from __future__ import annotations

import re

_EOL = r"\r?\n"

# (pattern, replacement, count) applied in order; count 0 means all
_TRANSFORMS: tuple[tuple[re.Pattern[str], str, int], ...] = (
    # Frames around a line: | ... |, ║ ... ║, │ ... │
    (re.compile(r"^(\||║|│)(.*)\1" + _EOL, re.M), r"\2\n", 0),
    # Frame only at the end of a line
    (re.compile(r"^(.*)(\||║|│)" + _EOL, re.M), r"\1\n", 0),
    # Separator lines
    (re.compile(r"^\+-+\+" + _EOL, re.M), "", 0),
    (re.compile(r"^(-|─|═)\1+" + _EOL, re.M), "", 0),
    (re.compile(r"^(├|╟|╠|╞)(─|═)\2*(┤|╢|╣|╡)" + _EOL, re.M), "", 0),
    (re.compile(r"^└─+┘" + _EOL, re.M), "", 0),
    (re.compile(r"^╚═+╝" + _EOL, re.M), "", 0),
    (re.compile(r"^┌─+┐" + _EOL, re.M), "", 0),
    (re.compile(r"^╔═+╗" + _EOL, re.M), "", 0),
    # Quotes wrapping a whole line, ' or "
    (re.compile(r"^([\"'])(.*)\1\r?$", re.M), r"\2", 0),
    # "+" line continuations
    (re.compile(r"\s*\+" + _EOL), "\n", 0),
    # "↵" line continuations
    (re.compile(r"↵\r?"), "\n", 0),
    # Header
    (re.compile(r"^\s*QUERY PLAN\s*" + _EOL, re.M), "", 1),
    # Row count footer, possibly translated: (8 rows), (1 row), (8 lignes)
    (re.compile(r"^\(\d+\s+[a-z]*s?\)(?:\r?\n|$)", re.M), "\n", 0),
)


def cleanup_source(source: str) -> str:
    """
    Strip borders, quoting, continuation marks, header and footer from a report.

    Args:
        source: Raw report text as pasted by the user

    Returns:
        Text ready for format sniffing.

    Example:
        >>> cleanup_source("QUERY PLAN\\n----------\\n Result  (cost=0.00..0.01 rows=1 width=4)\\n(1 row)\\n")
        ' Result  (cost=0.00..0.01 rows=1 width=4)\\n\\n'
    """
    for pattern, replacement, count in _TRANSFORMS:
        source = pattern.sub(replacement, source, count=count)
    return source
