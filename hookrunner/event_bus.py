"""Event bus - in-process publish/subscribe for engine and run lifecycle events."""
import asyncio
import inspect
import itertools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

logger = logging.getLogger("hookrunner.events")


class EventKind(str, Enum):
    """Closed set of topics published by the engine."""

    START = "start"  # engine ready
    CLOSE = "close"  # engine shutting down
    RUN = "run"  # command spawned
    EXIT = "exit"  # command settled with an exit status
    ERROR = "error"  # command could not be launched or observed


RUN_EVENTS = (EventKind.RUN, EventKind.EXIT, EventKind.ERROR)


def jsonable(value: Any) -> Any:
    """Reduce event payload values to JSON-safe data."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, BaseException):
        return {"type": type(value).__name__, "message": str(value)}
    if hasattr(value, "to_dict"):
        return jsonable(value.to_dict())
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [jsonable(v) for v in value]
    return str(value)


@dataclass(frozen=True)
class LifecycleEvent:
    kind: EventKind
    hook_name: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "hookName": self.hook_name,
            "date": int(self.timestamp * 1000),
            "data": jsonable(self.payload),
        }


Handler = Callable[[LifecycleEvent], Awaitable[None] | None]


@dataclass(frozen=True)
class Subscription:
    id: int
    kind: EventKind | None
    handler: Handler


class EventBus:
    """Fire-and-forget broadcast. Each handler call runs in its own task, so a
    slow or failing subscriber never blocks the publisher or other subscribers.

    publish() must be called from inside the running event loop.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, kind: EventKind | str, handler: Handler) -> Subscription:
        """Call handler for every event of kind. Returns the unsubscribe token."""
        sub = Subscription(next(self._ids), EventKind(kind), handler)
        self._subscriptions[sub.id] = sub
        logger.debug("Subscribed %s to %s", getattr(handler, "__name__", handler), sub.kind.value)
        return sub

    def subscribe_all(self, handler: Handler) -> Subscription:
        sub = Subscription(next(self._ids), None, handler)
        self._subscriptions[sub.id] = sub
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self._subscriptions.pop(subscription.id, None) is not None

    def subscribers(self, kind: EventKind | str) -> list[Subscription]:
        kind = EventKind(kind)
        return [s for s in self._subscriptions.values() if s.kind in (None, kind)]

    def publish(self, event: LifecycleEvent) -> int:
        """Schedule every matching handler. Returns how many were scheduled."""
        loop = asyncio.get_running_loop()
        subs = self.subscribers(event.kind)
        for sub in subs:
            task = loop.create_task(self._invoke(sub, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return len(subs)

    def emit(self, kind: EventKind | str, hook_name: str | None = None, **payload: Any) -> LifecycleEvent:
        event = LifecycleEvent(EventKind(kind), hook_name, payload)
        self.publish(event)
        return event

    async def join(self) -> None:
        """Wait for handler calls already in flight (including ones they publish)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _invoke(self, sub: Subscription, event: LifecycleEvent) -> None:
        try:
            result = sub.handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.error(
                "Event handler %s failed for %s",
                getattr(sub.handler, "__name__", sub.handler),
                event.kind.value,
                exc_info=True,
            )
