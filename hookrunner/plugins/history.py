"""History plugin - keeps run/exit/error events in memory, served at GET /history."""
from collections import deque

from hookrunner.event_bus import RUN_EVENTS, LifecycleEvent
from hookrunner.plugins import Plugin, PluginContext


class History:
    """Bounded, oldest-first record of run lifecycle events. limit=0 keeps all."""

    def __init__(self, limit: int = 1000):
        self._events: deque = deque(maxlen=limit or None)

    def record(self, event: LifecycleEvent) -> None:
        self._events.append({
            "date": int(event.timestamp * 1000),
            "type": event.kind.value,
            "data": event.to_dict()["data"],
        })

    def entries(self) -> list[dict]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)


def setup(ctx: PluginContext) -> None:
    history = History(ctx.settings.plugins.history_limit)
    for kind in RUN_EVENTS:
        ctx.events.subscribe(kind, history.record)
    ctx.app.state.history = history

    @ctx.app.get("/history")
    async def get_history():
        return history.entries()


plugin = Plugin("history", setup)
