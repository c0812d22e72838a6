"""
In-process message broker - Implements MessagePublisher protocol.

Subscribers register a callback per channel (``conversation:{id}``); a
WebSocket gateway or test can listen without the domain knowing about
it. Publishing to a channel with no subscribers is a no-op.
"""

import logging
import threading
from collections import defaultdict
from collections.abc import Callable

from src.domain.exceptions import DeliveryError

logger = logging.getLogger(__name__)

Handler = Callable[[str, dict[str, object]], None]


class InProcessBroker:
    """
    Implements MessagePublisher protocol with synchronous fan-out.

    Every subscriber is called even if an earlier one fails; the failures
    are then reported together as one DeliveryError.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, channel: str, handler: Handler) -> Callable[[], None]:
        """
        Register handler(event, payload) for a channel.

        Returns:
            A callable that removes the subscription
        """
        with self._lock:
            self._subscribers[channel].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._subscribers.get(channel, [])
                if handler in handlers:
                    handlers.remove(handler)
                if not handlers:
                    self._subscribers.pop(channel, None)

        return unsubscribe

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, ()))

    def publish(self, channel: str, event: str, payload: dict[str, object]) -> None:
        with self._lock:
            handlers = list(self._subscribers.get(channel, ()))
        if not handlers:
            logger.debug("No subscribers for %s on %s", event, channel)
            return

        failures = 0
        for handler in handlers:
            try:
                handler(event, payload)
            except Exception:
                failures += 1
                logger.exception("Subscriber failed for %s on %s", event, channel)
        if failures:
            raise DeliveryError(f"{failures} subscriber(s) failed on {channel}")
