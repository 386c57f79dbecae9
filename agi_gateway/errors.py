"""
Exception types raised while accepting and handling AGI connections.

Parse and coercion failures abort a connection before its call is registered.
HangupSignal and NoDialplanContextError are raised by call-handling
collaborators and are turned into call outcomes by the dispatcher.
"""


class AgiGatewayError(Exception):
    """Base class for gateway errors."""


class ProtocolParseError(AgiGatewayError):
    """The AGI header block was malformed or truncated."""

    def __init__(self, message: str, line: str = None):
        super().__init__(message)
        self.line = line


class CoercionError(AgiGatewayError):
    """A call variable did not have the shape a coercion stage requires."""

    def __init__(self, key: str, value, reason: str):
        super().__init__(f"Cannot coerce variable {key!r} ({value!r}): {reason}")
        self.key = key
        self.value = value
        self.reason = reason


class HangupSignal(Exception):
    """Request to stop handling a call; not a defect."""


class NoDialplanContextError(AgiGatewayError):
    """The dialplan has no entry point for the call's context."""
