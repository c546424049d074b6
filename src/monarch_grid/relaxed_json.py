"""Relaxed JSON: strict JSON plus ``//`` / ``/* */`` comments and trailing commas.

Screen schemas are hand-edited on the server and routinely contain
commented-out entries and trailing commas.  They are cleaned in two
string-literal-aware passes and then handed to :func:`json.loads`:

1. comments are removed (``//`` to end of line, ``/* ... */`` across lines);
2. commas followed only by whitespace and a closing ``]`` or ``}`` are removed.

Comments go first because a comment may sit between a trailing comma and
the bracket that closes it.  Nothing inside a double-quoted string is ever
touched, so ``"http://host"`` or ``"/* kept */"`` survive unchanged.
"""

import json
import re
from typing import Any

# Group 1 is a complete double-quoted string literal (backslash escapes
# allowed).  Strings are matched first so that comment markers and commas
# inside them are consumed as part of the literal and put back verbatim.
_STRING_LITERAL = r'("[^"\\]*(?:\\.[^"\\]*)*")'

_STRING_OR_COMMENT = re.compile(_STRING_LITERAL + r"|(//.*|/\*[\s\S]*?\*/)")
_STRING_OR_TRAILING_COMMA = re.compile(_STRING_LITERAL + r"|,\s*(?=[\]}])")


def _keep_strings(match: re.Match[str]) -> str:
    return match.group(0) if match.group(1) is not None else ""


def strip_comments(text: str) -> str:
    """Remove ``//`` and ``/* */`` comments outside string literals."""
    return _STRING_OR_COMMENT.sub(_keep_strings, text)


def strip_trailing_commas(text: str) -> str:
    """Remove commas that directly precede a closing ``]`` or ``}``."""
    return _STRING_OR_TRAILING_COMMA.sub(_keep_strings, text)


def to_strict_json(text: str) -> str:
    """Return *text* with comments and trailing commas removed, in that order."""
    return strip_trailing_commas(strip_comments(text))


def loads(text: str | bytes) -> Any:
    """Parse relaxed JSON.

    Raises:
        json.JSONDecodeError: If the cleaned text is still not valid JSON.
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8-sig")
    return json.loads(to_strict_json(text))
