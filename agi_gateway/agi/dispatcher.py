"""
Per-connection AGI call handling.

The dispatcher reads the header block of one connection, builds the call,
registers it, decides what kind of connection it is and hands it to the right
collaborator. Every outcome is reported as a DispatchResult; nothing raised
while handling a call escapes to the listener, and a registered call is always
removed from the registry when handling ends.

Collaborators written as plain functions run on a worker thread so that a
blocking dialplan only holds up its own connection.
"""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import functools
import inspect
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, List, Mapping, Optional

from prometheus_client import Counter

from agi_gateway.agi.collaborators import ConfirmationHandler, Dialplan, NoConfirmationCalls, NullDialplan
from agi_gateway.agi.parser import read_header_block
from agi_gateway.core.call_registry import CallRegistry
from agi_gateway.core.coercion import coerce_variables
from agi_gateway.core.events import BEFORE_CALL, FAILED_CALL, HUNGUP_CALL, EventBus, EventNotifier, Topic
from agi_gateway.core.models import AgiCall
from agi_gateway.core.types import Q931_TYPE_OF_NUMBER, TypeOfNumber
from agi_gateway.errors import CoercionError, HangupSignal, NoDialplanContextError, ProtocolParseError
from agi_gateway.logging_config import bind_call_id, get_logger, reset_call_id

logger = get_logger(__name__)

FAILED_EXTENSION = "failed"
HUNGUP_EXTENSION = "h"
TIMEOUT_EXTENSION = "t"

_CALLS_TOTAL = Counter(
    "agi_gateway_calls_total",
    "AGI connections handled, by outcome",
    ["outcome"],
)


class CallOutcome(Enum):
    """How handling of one AGI connection ended."""
    NORMAL = "normal"              # collaborator returned
    HANGUP = "hangup"              # collaborator raised HangupSignal
    NO_CONTEXT = "no_context"      # dialplan had no entry point
    FAILED_META = "failed_meta"    # extension "failed"
    HUNGUP_META = "hungup_meta"    # extension "h"
    USELESS_META = "useless_meta"  # extension "t"
    REJECTED = "rejected"          # header block could not be parsed or coerced
    ERROR = "error"                # anything else


@dataclass
class DispatchResult:
    outcome: CallOutcome
    call: Optional[AgiCall] = None
    error: Optional[BaseException] = None
    confirmation: bool = False


def describe_cause_chain(exc: BaseException) -> List[str]:
    """Render an exception and the exceptions it was raised from."""
    chain = []
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        chain.append(f"{type(current).__name__}: {current}")
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
    return chain


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class AgiCallDispatcher:
    """Connection handler for the AGI listener."""

    def __init__(
        self,
        registry: CallRegistry,
        *,
        dialplan: Optional[Dialplan] = None,
        confirmation: Optional[ConfirmationHandler] = None,
        events: Optional[EventNotifier] = None,
        type_of_number_table: Mapping[int, Optional[TypeOfNumber]] = Q931_TYPE_OF_NUMBER,
        executor: Optional[Executor] = None,
    ) -> None:
        self.registry = registry
        self.dialplan = dialplan or NullDialplan()
        self.confirmation = confirmation or NoConfirmationCalls()
        self.events = events if events is not None else EventBus()
        self._type_of_number_table = type_of_number_table
        self._executor = executor

    async def __call__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> DispatchResult:
        return await self.handle_connection(reader, writer)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    async def handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> DispatchResult:
        peer = writer.get_extra_info("peername")
        try:
            call = await self.receive_call(reader, writer)
        except (ProtocolParseError, CoercionError) as exc:
            logger.warning("Rejected AGI connection", peer=peer, error=str(exc))
            writer.close()
            return self._finish(DispatchResult(CallOutcome.REJECTED, error=exc))
        except Exception as exc:  # noqa: BLE001
            self._log_unhandled("AGI connection failed before call setup", exc, peer=peer)
            writer.close()
            return self._finish(DispatchResult(CallOutcome.ERROR, error=exc))

        token = bind_call_id(call.unique_identifier)
        try:
            logger.debug("Handling call", variables=_loggable(call.variables))
            with self.registered(call):
                result = await self.dispatch(call)
        except Exception as exc:  # noqa: BLE001
            self._log_unhandled("Unhandled error while handling call", exc, channel=call.channel)
            result = DispatchResult(CallOutcome.ERROR, call, error=exc)
        finally:
            reset_call_id(token)
        return self._finish(result)

    async def receive_call(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> AgiCall:
        """Read the header block and build the call it describes."""
        raw_variables = await read_header_block(reader)
        variables = coerce_variables(raw_variables, self._type_of_number_table)
        return AgiCall(variables, writer=writer, loop=asyncio.get_running_loop())

    @contextlib.contextmanager
    def registered(self, call: AgiCall) -> Iterator[AgiCall]:
        """Keep ``call`` in the registry for the duration of the block."""
        self.registry.add(call)
        try:
            yield call
        finally:
            try:
                self.registry.remove(call)
            except Exception:  # noqa: BLE001
                logger.debug("Failed to deregister call", exc_info=True)

    def _finish(self, result: DispatchResult) -> DispatchResult:
        _CALLS_TOTAL.labels(outcome=result.outcome.value).inc()
        return result

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------
    async def dispatch(self, call: AgiCall) -> DispatchResult:
        """Route a registered call and report how its handling ended."""
        try:
            if await self._run_collaborator(self.confirmation.is_confirmation_call, call):
                return await self._hand_off(call, self.confirmation, confirmation=True)

            extension = call.extension
            if extension == FAILED_EXTENSION:
                logger.info(
                    "Received \"failed\" meta-call, running failed_call event callbacks",
                    failed_reason=call.failed_reason,
                )
                await self._notify_and_hangup(call, FAILED_CALL)
                return DispatchResult(CallOutcome.FAILED_META, call)
            if extension == HUNGUP_EXTENSION:
                logger.info("Received \"h\" meta-call, running hungup_call event callbacks")
                await self._notify_and_hangup(call, HUNGUP_CALL)
                return DispatchResult(CallOutcome.HUNGUP_META, call)
            if extension == TIMEOUT_EXTENSION:
                logger.info("Ignoring meta-AGI request")
                call.hangup()
                return DispatchResult(CallOutcome.USELESS_META, call)

            return await self._hand_off(call, self.dialplan)
        except Exception as exc:  # noqa: BLE001
            self._log_unhandled("Unhandled error while dispatching call", exc, channel=call.channel)
            return DispatchResult(CallOutcome.ERROR, call, error=exc)

    async def _hand_off(self, call: AgiCall, handler: Any, confirmation: bool = False) -> DispatchResult:
        try:
            await _resolve(self.events.notify(BEFORE_CALL, call))
        except Exception as exc:  # noqa: BLE001
            logger.error("before_call event callbacks failed", error=str(exc), causes=describe_cause_chain(exc))

        try:
            await self._run_collaborator(handler.handle, call)
        except HangupSignal:
            logger.info("HANGUP event for call", uniqueid=call.uniqueid, channel=call.channel)
            call.hangup()
            return DispatchResult(CallOutcome.HANGUP, call, confirmation=confirmation)
        except NoDialplanContextError as exc:
            logger.info(str(exc), context=call.context)
            call.hangup()
            return DispatchResult(CallOutcome.NO_CONTEXT, call, error=exc, confirmation=confirmation)
        except Exception as exc:  # noqa: BLE001
            # The connection is left as the handler left it
            self._log_unhandled("Call handling failed", exc, channel=call.channel)
            return DispatchResult(CallOutcome.ERROR, call, error=exc, confirmation=confirmation)
        return DispatchResult(CallOutcome.NORMAL, call, confirmation=confirmation)

    async def _run_collaborator(self, func: Callable[..., Any], *args: Any) -> Any:
        """
        Invoke a collaborator callable without blocking the event loop.

        Coroutine functions are awaited directly. Plain functions run on the
        executor with the caller's context, so log lines keep the call id; an
        awaitable they return is then awaited here.
        """
        if inspect.iscoroutinefunction(func):
            return await func(*args)
        loop = asyncio.get_running_loop()
        context = contextvars.copy_context()
        result = await loop.run_in_executor(self._executor, functools.partial(context.run, func, *args))
        return await _resolve(result)

    async def _notify_and_hangup(self, call: AgiCall, topic: Topic) -> None:
        try:
            await _resolve(self.events.notify(topic, call))
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Meta-call event callbacks failed",
                topic="/".join(topic),
                error=str(exc),
                causes=describe_cause_chain(exc),
                exc_info=True,
            )
        call.hangup()

    def _log_unhandled(self, event: str, exc: BaseException, **fields: Any) -> None:
        logger.error(event, error=str(exc), causes=describe_cause_chain(exc), exc_info=exc, **fields)


def _loggable(variables: Mapping[str, Any]) -> dict:
    return {key: value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
            for key, value in variables.items()}
