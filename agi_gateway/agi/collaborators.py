"""
Interfaces of the components a dispatched call is handed to.

A dialplan runs the application logic for an ordinary call. It signals the end
of a call by raising HangupSignal, and a missing entry point by raising
NoDialplanContextError; any other exception is treated as a failure. ``handle``
may be a coroutine function or a plain function; a plain function runs on a
worker thread and may block.
"""

from typing import Any, Awaitable, Protocol, Union

from agi_gateway.core.models import AgiCall
from agi_gateway.errors import AgiGatewayError, NoDialplanContextError


class Dialplan(Protocol):
    def handle(self, call: AgiCall) -> Union[Awaitable[Any], Any]:
        ...


class ConfirmationHandler(Protocol):
    def is_confirmation_call(self, call: AgiCall) -> bool:
        ...

    def handle(self, call: AgiCall) -> Union[Awaitable[Any], Any]:
        ...


class NullDialplan:
    """Dialplan used when none is configured; every call lacks a context."""

    async def handle(self, call: AgiCall) -> None:
        raise NoDialplanContextError(f"No dialplan loaded to handle context {call.context!r}")


class NoConfirmationCalls:
    """Confirmation handler that never claims a call."""

    def is_confirmation_call(self, call: AgiCall) -> bool:
        return False

    async def handle(self, call: AgiCall) -> None:
        raise AgiGatewayError(f"Call {call.unique_identifier!r} is not a confirmation call")
