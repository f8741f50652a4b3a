# properties.py
# Reader for the line-oriented properties format shared by gate parameter
# text and the properties files harvested from triggered runs' artifacts.
#
#   # comment            ! comment
#   key=value            key: value          key value
#   long=first \
#        second          (continuation)
#   uni=caf\u00e9        (escapes: \t \n \r \f \uXXXX, \x -> x)
from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Iterator, Mapping, Tuple

from .errors import ParseError

_WHITESPACE = " \t\f"
_SEPARATORS = "=:"
_NEWLINES = re.compile(r"\r\n|\r|\n")
_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}

# $NAME or ${NAME}; unknown names are left alone
_VARIABLE = re.compile(r"\$(\{[A-Za-z0-9_.]+\}|[A-Za-z0-9_]+)")


def expand_variables(text: str, env: Mapping[str, str]) -> str:
    """Replace $NAME / ${NAME} with values from env."""
    def _sub(m: re.Match) -> str:
        name = m.group(1)
        if name.startswith("{"):
            name = name[1:-1]
        value = env.get(name)
        return m.group(0) if value is None else str(value)

    return _VARIABLE.sub(_sub, text or "")


def _continues(line: str) -> bool:
    # odd number of trailing backslashes
    count = len(line) - len(line.rstrip("\\"))
    return count % 2 == 1


def _logical_lines(text: str) -> Iterator[Tuple[int, str]]:
    natural = _NEWLINES.split(text)
    i = 0
    while i < len(natural):
        line_number = i + 1
        line = natural[i].lstrip(_WHITESPACE)
        i += 1
        if not line or line[0] in "#!":
            continue
        while _continues(line):
            line = line[:-1]
            if i >= len(natural):
                break
            line += natural[i].lstrip(_WHITESPACE)
            i += 1
        yield line_number, line


def _rstrip_unescaped(s: str) -> str:
    stripped = s.rstrip(_WHITESPACE)
    if stripped != s and _continues(stripped):
        # "\ " at the end is an escaped space
        return s[: len(stripped) + 1]
    return stripped


def _unescape(raw: str, line_number: int, line: str) -> str:
    out = []
    i = 0
    n = len(raw)
    while i < n:
        c = raw[i]
        if c != "\\":
            out.append(c)
            i += 1
            continue
        i += 1
        if i >= n:
            break
        c = raw[i]
        if c == "u":
            digits = raw[i + 1:i + 5]
            if len(digits) != 4 or not all(d in "0123456789abcdefABCDEF" for d in digits):
                raise ParseError("Malformed \\uxxxx encoding", line_number, line)
            out.append(chr(int(digits, 16)))
            i += 5
            continue
        out.append(_ESCAPES.get(c, c))
        i += 1
    return "".join(out)


def _split_key_value(line: str) -> Tuple[str, str]:
    n = len(line)
    i = 0
    while i < n:
        c = line[i]
        if c == "\\":
            i += 2
            continue
        if c in _SEPARATORS or c in _WHITESPACE:
            break
        i += 1
    i = min(i, n)
    key = line[:i]

    j = i
    while j < n and line[j] in _WHITESPACE:
        j += 1
    if j < n and line[j] in _SEPARATORS:
        j += 1
    while j < n and line[j] in _WHITESPACE:
        j += 1

    return key, _rstrip_unescaped(line[j:])


def parse_properties(text: str) -> Dict[str, str]:
    """
    Parse properties text into an ordered dict.

    Keys keep the position of their first occurrence; a repeated key
    takes the later value.

    Raises:
        ParseError: on a malformed escape, naming the offending line.
    """
    props: Dict[str, str] = {}
    for line_number, line in _logical_lines(text or ""):
        raw_key, raw_value = _split_key_value(line)
        key = _unescape(raw_key, line_number, line)
        props[key] = _unescape(raw_value, line_number, line)
    return props


def load_properties(path: str | Path) -> Dict[str, str]:
    """Read a properties file (ISO-8859-1, escapes for everything else)."""
    data = Path(path).read_bytes()
    return parse_properties(data.decode("iso-8859-1"))
