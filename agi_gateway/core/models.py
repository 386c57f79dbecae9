"""
Core data model for calls handed to the gateway over AGI.

An AgiCall owns the typed variables produced by the coercion pipeline, a set
of application tags and an inbox other threads can post messages to.
"""

import asyncio
import queue
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Set, TYPE_CHECKING

from agi_gateway.core.types import PhoneNumber, TypeOfNumber

if TYPE_CHECKING:
    from urllib.parse import SplitResult

ASTERISK_PLATFORM = "asterisk"


def _local_identifier() -> str:
    return f"local-{uuid.uuid4().hex}"


@dataclass(eq=False)
class AgiCall:
    """State for one inbound AGI connection."""
    variables: Dict[str, Any]
    writer: Optional["asyncio.StreamWriter"] = None
    originating_voip_platform: str = ASTERISK_PLATFORM
    loop: Optional[asyncio.AbstractEventLoop] = field(default=None, repr=False)

    inbox: "queue.Queue[Any]" = field(default_factory=queue.Queue, init=False, repr=False)
    _tags: Set[str] = field(default_factory=set, init=False, repr=False)
    _tag_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _hungup: bool = field(default=False, init=False, repr=False)
    _hangup_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        self.variables = dict(self.variables)
        self._unique_identifier = self._derive_unique_identifier()

    def _derive_unique_identifier(self) -> str:
        # The channel wins over uniqueid because bridged calls share a channel name
        channel = self.variables.get("channel")
        if channel:
            return str(channel)
        uniqueid = self.variables.get("uniqueid")
        if uniqueid is not None and str(uniqueid):
            return str(uniqueid)
        return _local_identifier()

    @property
    def unique_identifier(self) -> str:
        return self._unique_identifier

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------
    def get(self, key: str, default: Any = None) -> Any:
        return self.variables.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.variables[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.variables[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.variables

    @property
    def channel(self) -> Optional[str]:
        return self.variables.get("channel")

    @property
    def uniqueid(self) -> Optional[str]:
        return self.variables.get("uniqueid")

    @property
    def extension(self) -> Optional[PhoneNumber]:
        return self.variables.get("extension")

    @property
    def context(self) -> Optional[str]:
        return self.variables.get("context")

    @property
    def callerid(self) -> Any:
        return self.variables.get("callerid")

    @property
    def language(self) -> Optional[str]:
        return self.variables.get("language")

    @property
    def request(self) -> Optional["SplitResult"]:
        return self.variables.get("request")

    @property
    def query(self) -> Dict[str, str]:
        return self.variables.get("query") or {}

    @property
    def type_of_calling_number(self) -> Optional[TypeOfNumber]:
        return self.variables.get("type_of_calling_number")

    @property
    def failed_reason(self) -> Any:
        return self.variables.get("failed_reason")

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------
    @property
    def tags(self) -> FrozenSet[str]:
        with self._tag_lock:
            return frozenset(self._tags)

    def tag(self, label: str) -> None:
        if not isinstance(label, str):
            raise TypeError(f"tag must be a string, got {type(label).__name__}")
        with self._tag_lock:
            self._tags.add(label)

    def remove_tag(self, label: str) -> None:
        with self._tag_lock:
            self._tags.discard(label)

    def tagged_with(self, label: str) -> bool:
        with self._tag_lock:
            return label in self._tags

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------
    def deliver_message(self, message: Any) -> None:
        """Queue a message for this call; never blocks the sender."""
        self.inbox.put_nowait(message)

    def __lshift__(self, message: Any) -> "AgiCall":
        self.deliver_message(message)
        return self

    def receive_message(self, timeout: Optional[float] = None) -> Any:
        """
        Wait for the next message delivered to this call.

        Blocks the calling thread, so it belongs in a synchronous dialplan,
        which the dispatcher runs off the event loop.

        Raises:
            queue.Empty: If ``timeout`` elapses with no message
        """
        return self.inbox.get(timeout=timeout)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------
    def hangup(self) -> None:
        """
        Close the AGI connection; calling it again does nothing.

        Safe to call from a worker thread: when the call knows the event loop
        that owns its connection, the close is scheduled on that loop.
        """
        with self._hangup_lock:
            if self._hungup:
                return
            self._hungup = True
        if self.writer is None:
            return
        if self.loop is not None and not self._on_loop_thread():
            self.loop.call_soon_threadsafe(self.writer.close)
        else:
            self.writer.close()

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self.loop
        except RuntimeError:
            return False

    @property
    def closed(self) -> bool:
        if self._hungup:
            return True
        return self.writer is not None and self.writer.is_closing()
