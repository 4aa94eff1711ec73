"""Callback registry with fan-out delivery.

Each component owns one :class:`EventHub`. Subscribers may be plain callables
or coroutine functions; they are invoked in subscription order and a failing
subscriber is logged without affecting the others.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from enum import Enum
from typing import Any

from ..logs.logger import logger

Handler = Callable[..., Any]


class EventHub:
    def __init__(self, domain: str) -> None:
        self.domain = domain
        self._subscribers: dict[Enum, list[Handler]] = defaultdict(list)

    def subscribe(self, event: Enum, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event`` and return an unsubscribe callable."""
        self._subscribers[event].append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def emit(self, event: Enum, *args: Any) -> None:
        # Snapshot so handlers may unsubscribe while being notified
        for handler in list(self._subscribers.get(event, [])):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:  # noqa: BLE001
                logger.log_event(
                    self.domain,
                    "subscriber_error",
                    level=logging.ERROR,
                    human=f"Subscriber for {event.value} failed: {type(e).__name__}: {e}",
                    event=event.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
