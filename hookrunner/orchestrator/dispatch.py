"""Dispatch coordinator - resolve -> match -> start -> respond, once per request."""
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from hookrunner.hooks.models import HookResponse, HookRunnerError, RequestSnapshot
from hookrunner.hooks.rules import compile_rules
from hookrunner.hooks.store import load_hook, resolve_hook_path, working_directory
from hookrunner.orchestrator.core import ProcessOrchestrator, RunHandle

logger = logging.getLogger("hookrunner.dispatch")


class DispatchState(str, Enum):
    ROUTED = "routed"
    RESOLVED = "resolved"
    MATCHED = "matched"
    REJECTED = "rejected"
    DISPATCHED = "dispatched"
    RESPONDED = "responded"


class EngineClosedError(HookRunnerError):
    """Dispatch attempted after shutdown began."""


@dataclass
class DispatchResult:
    hook_name: str
    state: DispatchState
    response: HookResponse | None = None
    run: RunHandle | None = None

    @property
    def matched(self) -> bool:
        """False for a routing miss (unknown hook or rules not satisfied)."""
        return self.state == DispatchState.RESPONDED


class Dispatcher:
    """Per-request entry point. Never waits for the command to finish."""

    def __init__(self, hooks_root: Path, runner: ProcessOrchestrator):
        self.hooks_root = Path(hooks_root)
        self.runner = runner
        self.closed = False

    async def dispatch(self, hook_name: str, snapshot: RequestSnapshot) -> DispatchResult:
        """Raises HookDefinitionError for a malformed definition or rule and
        EngineClosedError after close; a miss is returned, not raised."""
        if self.closed:
            raise EngineClosedError("Engine is shutting down")
        result = DispatchResult(hook_name, DispatchState.ROUTED)

        path = resolve_hook_path(self.hooks_root, hook_name)
        if path is None:
            logger.debug("[%s] No hook definition", hook_name)
            result.state = DispatchState.REJECTED
            return result

        try:
            hook = load_hook(path)
            predicate = compile_rules(hook.rules)
        except HookRunnerError:
            logger.error("[%s] Cannot load hook %s", hook_name, path, exc_info=True)
            raise
        result.state = DispatchState.RESOLVED

        if not predicate.test(snapshot):
            logger.debug("[%s] Request did not satisfy rules", hook_name)
            result.state = DispatchState.REJECTED
            return result
        result.state = DispatchState.MATCHED

        result.run = await self.runner.start(
            hook_name,
            hook.command,
            working_directory=working_directory(hook, path),
            shell=hook.shell,
            context=snapshot,
            events=hook.events,
        )
        result.state = DispatchState.DISPATCHED

        result.response = hook.response or HookResponse()
        result.state = DispatchState.RESPONDED
        return result
