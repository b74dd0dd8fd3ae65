"""
Intcode Program Loader
======================
Turns program text into initial machine memory.

Program text is a comma-separated list of signed integers which may be
split across lines; whitespace around tokens is ignored, as is a single
comma after the final value.

Usage:
  from loader import parse_program, load_program
  memory = parse_program("1,0,0,0,99")
  memory = load_program("input.txt")
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from intcode import Memory, SIGN64

log = logging.getLogger(__name__)

_INT_RE = re.compile(r"[+-]?\d+")

INT64_MIN = -SIGN64
INT64_MAX = SIGN64 - 1

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class ParseError(ValueError):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}")

# ---------------------------------------------------------------------------
#  Parser helpers
# ---------------------------------------------------------------------------

def _parse_int(lineno: int, tok: str) -> int:
    """Parse one decimal token as a signed 64-bit integer."""
    if not _INT_RE.fullmatch(tok):
        raise ParseError(lineno, f"Invalid integer: {tok!r}")
    val = int(tok, 10)
    if not INT64_MIN <= val <= INT64_MAX:
        raise ParseError(lineno, f"Value out of 64-bit range: {tok}")
    return val


def _split_line(lineno: int, line: str) -> list[str]:
    """Split one line on commas.  Every token must be non-empty."""
    toks = [s.strip() for s in line.split(",")]
    if not all(toks):
        raise ParseError(lineno, f"Empty value in {line!r}")
    return toks

# ---------------------------------------------------------------------------
#  Loader
# ---------------------------------------------------------------------------

def parse_program(text: str) -> Memory:
    """Parse program text into memory, one value per address from 0.

    Lines are parsed independently; blank lines are skipped.  A single
    comma after the last value in the text is tolerated.
    """
    lines = [(lineno, raw.strip())
             for lineno, raw in enumerate(text.splitlines(), 1)
             if raw.strip()]
    if lines and lines[-1][1].endswith(","):
        lineno, last = lines[-1]
        lines[-1] = (lineno, last[:-1].rstrip())
        if not lines[-1][1]:
            raise ParseError(lineno, "Empty value before trailing comma")

    values: list[int] = []
    for lineno, line in lines:
        for tok in _split_line(lineno, line):
            values.append(_parse_int(lineno, tok))
    if not values:
        raise ParseError(0, "Empty program")
    log.debug("Parsed %d values", len(values))
    return Memory.from_values(values)


def load_program(path: str | Path) -> Memory:
    """Read and parse a program file."""
    text = Path(path).read_text()
    memory = parse_program(text)
    log.info("Loaded %d values from '%s'", len(memory), path)
    return memory
