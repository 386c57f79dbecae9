"""FastAGI protocol handling: header parsing, dispatch and the listener."""

from agi_gateway.agi.dispatcher import AgiCallDispatcher, CallOutcome, DispatchResult
from agi_gateway.agi.parser import parse_header_lines, read_header_block
from agi_gateway.agi.server import AgiServer

__all__ = [
    "AgiCallDispatcher",
    "AgiServer",
    "CallOutcome",
    "DispatchResult",
    "parse_header_lines",
    "read_header_block",
]
