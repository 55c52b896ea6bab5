"""
Migration file parsing.

Two small jobs:

1. ``extract_section`` cuts the ``-- @up`` or ``-- @down`` part out of a
   migration file.
2. ``split_statements`` turns a section into single statements, because
   the async drivers (aiosqlite, asyncpg) run one statement per call.

Example:
    content = path.read_text()
    for statement in split_statements(extract_section(content, "up")):
        ...
"""

from __future__ import annotations

import re
from typing import Any

import sqlparse
from sqlparse import lexer, tokens as T

from strata.migrations.migration import Direction


# Markers are literal, case-insensitive; "-- @update" is not a marker
UP_MARKER = re.compile(r"-- @up\b", re.IGNORECASE)
DOWN_MARKER = re.compile(r"-- @down\b", re.IGNORECASE)


def extract_section(content: str, direction: Direction | str) -> str:
    """
    Return the SQL of one direction, stripped.

    A section runs from its marker to the other marker or end of file,
    whichever comes first, so reversed markers work too.

    Without an ``@up`` marker the up section is everything before
    ``@down`` (the whole file when there are no markers at all). Without
    a ``@down`` marker the down section is empty.
    """
    direction = Direction(direction)
    up = UP_MARKER.search(content)
    down = DOWN_MARKER.search(content)

    if direction is Direction.UP:
        if up is None:
            return (content if down is None else content[:down.start()]).strip()
        end = down.start() if down is not None and down.start() > up.start() else len(content)
        return content[up.end():end].strip()

    if down is None:
        return ""
    end = up.start() if up is not None and up.start() > down.start() else len(content)
    return content[down.end():end].strip()


def split_statements(sql: str) -> list[str]:
    """
    Split SQL into individual statements (without trailing semicolons).

    Statement boundaries come from sqlparse, which keeps semicolons
    inside strings, quoted identifiers, comments, ``$$`` bodies and the
    BEGIN ... END blocks of CREATE TRIGGER / FUNCTION / PROCEDURE
    (including ``END IF`` and ``END CASE``).

    Leading and trailing comments are trimmed from each statement;
    chunks that hold only comments or whitespace are dropped.
    """
    statements: list[str] = []
    for chunk in sqlparse.split(sql):
        tokens = list(lexer.tokenize(chunk))
        significant = [i for i, (ttype, value) in enumerate(tokens) if not _is_filler(ttype, value)]
        if not significant:
            continue
        first, last = significant[0], significant[-1]
        statements.append("".join(value for _ttype, value in tokens[first:last + 1]))
    return statements


def _is_filler(ttype: Any, value: str) -> bool:
    return (
        ttype in T.Whitespace
        or ttype in T.Comment
        or (ttype in T.Punctuation and value == ";")
    )


__all__ = [
    "DOWN_MARKER",
    "UP_MARKER",
    "extract_section",
    "split_statements",
]
