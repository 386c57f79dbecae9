"""
Call registry - the set of calls currently being handled by this process.

One registry is created at startup and handed to the listener and the
dispatcher. Each registry reports its size on the registered calls gauge under
its own ``registry`` label. Every operation runs under a single lock so that tag filtering
sees a consistent view of all registered calls.
"""

import threading
from typing import Dict, List, Optional

from prometheus_client import Gauge

from agi_gateway.core.models import AgiCall
from agi_gateway.logging_config import get_logger

logger = get_logger(__name__)

_REGISTERED_CALLS = Gauge(
    "agi_gateway_registered_calls",
    "Number of calls currently present in the call registry",
    ["registry"],
)


class CallRegistry:
    """
    Thread-safe mapping of unique identifier to AgiCall.

    Registering a second call under an identifier that is already present
    replaces the first one.

    Args:
        name: Label for the registered calls gauge; registries that run side
            by side in one process need distinct names
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._lock = threading.RLock()
        self._calls: Dict[str, AgiCall] = {}
        self._gauge = _REGISTERED_CALLS.labels(registry=name)
        self._gauge.set(0)

    def add(self, call: AgiCall) -> None:
        """
        Register a call under its unique identifier.

        Args:
            call: Call to register
        """
        call_id = call.unique_identifier
        with self._lock:
            previous = self._calls.get(call_id)
            self._calls[call_id] = call
            self._gauge.set(len(self._calls))
        if previous is not None and previous is not call:
            logger.warning("Call identifier already registered, overwriting", call_id=call_id)

    def __lshift__(self, call: AgiCall) -> "CallRegistry":
        self.add(call)
        return self

    def remove(self, call: AgiCall) -> bool:
        """
        Remove a call; removing an absent call is not an error.

        Only the exact call object registered under the identifier is
        removed, so a call that was overwritten cannot evict its successor.

        Returns:
            True if the call was registered and has been removed
        """
        call_id = call.unique_identifier
        with self._lock:
            if self._calls.get(call_id) is not call:
                return False
            del self._calls[call_id]
            self._gauge.set(len(self._calls))
            return True

    def find(self, call_id: str) -> Optional[AgiCall]:
        """
        Look up a call by unique identifier.

        Returns:
            AgiCall or None if not registered
        """
        with self._lock:
            return self._calls.get(call_id)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._calls)

    def __len__(self) -> int:
        return self.size

    def any(self) -> bool:
        with self._lock:
            return bool(self._calls)

    def is_empty(self) -> bool:
        return not self.any()

    def clear(self) -> None:
        with self._lock:
            self._calls.clear()
            self._gauge.set(0)

    def with_tag(self, tag: str) -> List[AgiCall]:
        """
        Calls currently tagged with ``tag``.

        Returns:
            A new list; later tagging does not change it
        """
        with self._lock:
            return [call for call in self._calls.values() if call.tagged_with(tag)]

    def to_list(self) -> List[AgiCall]:
        with self._lock:
            return list(self._calls.values())
