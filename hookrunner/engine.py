"""Engine - wires the event bus, process orchestrator and dispatcher together."""
import logging
from pathlib import Path

from hookrunner.event_bus import EventBus, EventKind
from hookrunner.orchestrator.core import ProcessOrchestrator
from hookrunner.orchestrator.dispatch import Dispatcher

logger = logging.getLogger("hookrunner")


class Engine:
    def __init__(self, hooks_root: Path, logs_root: Path):
        self.hooks_root = Path(hooks_root)
        self.logs_root = Path(logs_root)
        self.events = EventBus()
        self.runner = ProcessOrchestrator(self.logs_root, self.events)
        self.dispatcher = Dispatcher(self.hooks_root, self.runner)

    @property
    def closed(self) -> bool:
        return self.dispatcher.closed

    def prepare(self) -> None:
        """Create the hooks and logs roots."""
        self.hooks_root.mkdir(parents=True, exist_ok=True)
        self.logs_root.mkdir(parents=True, exist_ok=True)

    def start(self) -> None:
        self.events.emit(EventKind.START)
        logger.info("Serving hooks from %s, logs in %s", self.hooks_root, self.logs_root)

    async def close(self) -> None:
        """Publish close, refuse new dispatches, then signal live runs.
        Does not wait for the processes to exit."""
        if self.dispatcher.closed:
            return
        self.events.emit(EventKind.CLOSE)
        self.dispatcher.closed = True
        count = self.runner.cancel_all()
        if count:
            logger.info("Cancelled %d running command(s)", count)
        await self.events.join()
