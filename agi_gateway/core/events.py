"""In-process event bus used for call lifecycle notifications."""

import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Protocol, Tuple

from agi_gateway.logging_config import get_logger

logger = get_logger(__name__)

Topic = Tuple[str, ...]
Subscriber = Callable[[Any], None]

BEFORE_CALL = ("asterisk", "before_call")
FAILED_CALL = ("asterisk", "failed_call")
HUNGUP_CALL = ("asterisk", "hungup_call")


class EventNotifier(Protocol):
    """Anything the dispatcher can publish call events to."""

    def notify(self, topic: Topic, payload: Any) -> None:
        ...


class EventBus:
    """
    Topic based publish/subscribe.

    Subscribers run synchronously in registration order. The first
    subscriber error is raised to the publisher.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[Topic, List[Subscriber]] = defaultdict(list)

    def subscribe(self, topic: Topic, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers[tuple(topic)].append(callback)

    def unsubscribe(self, topic: Topic, callback: Subscriber) -> None:
        with self._lock:
            callbacks = self._subscribers.get(tuple(topic), [])
            if callback in callbacks:
                callbacks.remove(callback)

    def notify(self, topic: Topic, payload: Any) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(tuple(topic), []))
        logger.debug("Publishing event", topic="/".join(topic), subscribers=len(callbacks))
        for callback in callbacks:
            callback(payload)
