"""
AGI header block parsing.

Asterisk opens every FastAGI connection with ``key: value`` lines followed by
an empty line. The parser reads that block and folds it into a mapping of raw
strings; typing the values is left to the coercion pipeline.
"""

from __future__ import annotations

import asyncio
import re
from typing import Dict, Iterable, List, Tuple

from agi_gateway.errors import ProtocolParseError

HEADER_LINE = re.compile(r"^([^:]+):\s?(.*)$", re.DOTALL)
# Guards against a peer that never sends the terminating blank line
MAX_HEADER_LINES = 1024


def separate_line_into_key_value_pair(line: str) -> Tuple[str, str]:
    match = HEADER_LINE.match(line)
    if match is None:
        raise ProtocolParseError(f"Malformed AGI header line: {line!r}", line=line)
    return match.group(1), match.group(2)


def parse_header_lines(lines: Iterable[str]) -> Dict[str, str]:
    """
    Parse header lines up to the first empty line.

    Args:
        lines: Lines without their line terminators

    Returns:
        Raw variables; a repeated key keeps its last value

    Raises:
        ProtocolParseError: On a malformed line or if ``lines`` runs out
            before the empty line
    """
    pairs: List[Tuple[str, str]] = []
    for line in lines:
        if line == "":
            return dict(pairs)
        pairs.append(separate_line_into_key_value_pair(line))
    raise ProtocolParseError("AGI header block ended before the terminating blank line")


def _decode_line(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


async def read_header_block(reader: asyncio.StreamReader) -> Dict[str, str]:
    """Read and parse the header block from an AGI connection."""
    lines: List[str] = []
    while True:
        try:
            raw = await reader.readline()
        except ValueError as e:
            raise ProtocolParseError("AGI header line exceeds the stream buffer limit") from e
        if not raw.endswith(b"\n"):
            # EOF, possibly after a partial line
            if raw:
                lines.append(_decode_line(raw))
            break
        line = _decode_line(raw)
        lines.append(line)
        if line == "":
            break
        if len(lines) > MAX_HEADER_LINES:
            raise ProtocolParseError(f"AGI header block exceeds {MAX_HEADER_LINES} lines")
    return parse_header_lines(lines)
